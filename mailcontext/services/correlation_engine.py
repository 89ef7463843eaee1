"""
Correlation Grouping Engine: groups emails that belong to the same business thread.
"""

import uuid
from typing import List, Optional, Sequence

from ..models.core import (CorrelationGroup, CorrelationRecord, CorrelationType, Email, GroupAnalysis, GroupMember,
                           build_metadata)
from ..utils.errors import TransientProviderError, ValidationError
from ..utils.logging_config import get_logger
from ..utils.timestamp_utils import utc_now
from .classification import ClassificationService
from .correlation_log import CorrelationLog
from .email_source import EmailSource
from .group_analysis import GroupAnalysisService
from .schemas import CorrelationProposal, parse_proposals

logger = get_logger(__name__)

DETECTION_SYSTEM_PROMPT = """
You are an expert at spotting emails that belong to the same business thread.

Decide whether the new email correlates with any of the existing emails. Look for:
1. Quotes for the same product or service (competing vendors or revised quotes)
2. Invoices related to earlier quotes or orders
3. Order confirmations, shipping and delivery notices for the same order
4. Follow-ups to inquiries
5. Responses to requests

Return a JSON object with this exact format:
```json
{
  "correlations": [
    {
      "related_email_id": 123,
      "correlation_type": "quote|invoice|order|inquiry|response",
      "subject": "what this thread is about",
      "confidence": 0.9,
      "metadata": {
        "price": 0.0,
        "vendor": "vendor name",
        "product": "product/service name",
        "reference": "order or invoice number",
        "notes": "any relevant notes"
      }
    }
  ]
}
```

Only use ids from the existing emails list. Metadata describes the new email.
Confidence should be between 0.0 and 1.0.
Return {"correlations": []} if nothing correlates."""


def new_group_id() -> str:
    return uuid.uuid4().hex


class CorrelationEngine:
    """Detect correlations, record group membership and serve group views."""

    def __init__(self,
                 correlation_log: CorrelationLog,
                 email_source: EmailSource,
                 classifier: ClassificationService,
                 candidate_strategy,
                 analysis: GroupAnalysisService,
                 body_excerpt: int = 500):
        """
        Args:
            correlation_log: Append-only record store
            email_source: Source of raw emails
            classifier: Classification provider
            candidate_strategy: Object with ``candidates(email, owner_id) -> List[Email]``
            analysis: Group analysis dispatcher
            body_excerpt: Characters of the new email's body sent to the classifier
        """
        self.correlation_log = correlation_log
        self.email_source = email_source
        self.classifier = classifier
        self.candidate_strategy = candidate_strategy
        self.analysis = analysis
        self.body_excerpt = body_excerpt

        logger.info(f'Initialized CorrelationEngine with {type(candidate_strategy).__name__}')

    def detect(self, email: Email, owner_id: str) -> List[CorrelationRecord]:
        """Correlate a new email with the owner's existing emails.

        Proposals are applied in the order the classifier returns them. A
        related email already in a group of the proposed type lends its group
        id; otherwise a group is minted and seeded with both emails.

        Returns:
            The records appended by this call

        Raises:
            TransientProviderError: If the classification call fails; nothing is appended
        """
        candidates = self.candidate_strategy.candidates(email, owner_id)
        if not candidates:
            logger.debug(f'No candidates for email {email.id}, skipping correlation detection')
            return []

        try:
            proposals = self.classifier.classify(DETECTION_SYSTEM_PROMPT,
                                                 self._detection_prompt(email, candidates),
                                                 parse_proposals,
                                                 label='correlation detection')
        except TransientProviderError as e:
            logger.error(f'Correlation detection failed for email {email.id}: {e}')
            raise

        if not proposals:
            logger.debug(f'No correlations proposed for email {email.id}')
            return []

        candidate_ids = {candidate.id for candidate in candidates}
        appended = []
        for proposal in proposals:
            if proposal.related_email_id == email.id or proposal.related_email_id not in candidate_ids:
                logger.warning(f'Ignoring proposal for email {email.id}: '
                               f'related email {proposal.related_email_id} is not a candidate')
                continue
            appended.extend(self._apply(email, proposal))

        logger.info(f'Recorded {len(appended)} correlation records for email {email.id}')
        return appended

    def _apply(self, email: Email, proposal: CorrelationProposal) -> List[CorrelationRecord]:
        group_id = self.correlation_log.find_group(proposal.related_email_id, proposal.correlation_type)
        minted = group_id is None
        if minted:
            group_id = new_group_id()

        now = utc_now()
        records = [
            CorrelationRecord(group_id=group_id,
                              email_id=email.id,
                              correlation_type=proposal.correlation_type,
                              subject=proposal.subject,
                              confidence=proposal.confidence,
                              metadata=proposal.metadata,
                              created_at=now)
        ]
        # New groups start with both emails so a group is never a singleton
        if minted:
            records.append(
                CorrelationRecord(group_id=group_id,
                                  email_id=proposal.related_email_id,
                                  correlation_type=proposal.correlation_type,
                                  subject=proposal.subject,
                                  confidence=proposal.confidence,
                                  metadata=build_metadata(proposal.correlation_type),
                                  created_at=now))

        self.correlation_log.append(records)
        logger.debug(f'{"Created" if minted else "Extended"} {proposal.correlation_type.value} group {group_id} '
                     f'with email {email.id}')
        return records

    def _detection_prompt(self, email: Email, candidates: List[Email]) -> str:
        existing = '\n'.join(f'- ID: {c.id}, Subject: {c.subject}, From: {c.sender}, Date: {c.date.date().isoformat()}'
                             for c in candidates)
        return (f'Email to analyze:\n'
                f'Subject: {email.subject}\n'
                f'From: {email.sender} ({email.sender_email})\n'
                f'Body: {email.body[:self.body_excerpt]}\n\n'
                f'Existing emails:\n{existing}')

    def create_manual(self, email_ids: Sequence[int], correlation_type: CorrelationType, subject: str) -> str:
        """Group emails chosen by the user. Returns the new group id.

        Raises:
            ValidationError: If fewer than two distinct integer email ids are given
        """
        try:
            unique_ids = list(dict.fromkeys(int(email_id) for email_id in email_ids or []))
        except (TypeError, ValueError):
            raise ValidationError(f'Email ids must be integers, got {email_ids!r}')
        if len(unique_ids) < 2:
            raise ValidationError('A manual correlation needs at least 2 distinct emails')

        try:
            correlation_type = CorrelationType(correlation_type)
        except ValueError:
            raise ValidationError(f'Unknown correlation type: {correlation_type!r}')

        group_id = new_group_id()
        now = utc_now()
        self.correlation_log.append(
            CorrelationRecord(group_id=group_id,
                              email_id=email_id,
                              correlation_type=correlation_type,
                              subject=subject,
                              confidence=1.0,
                              metadata=build_metadata(correlation_type),
                              created_at=now) for email_id in unique_ids)

        logger.info(f'Created manual {correlation_type.value} group {group_id} with {len(unique_ids)} emails')
        return group_id

    def analyze(self, group_id: str) -> Optional[GroupAnalysis]:
        return self.analysis.analyze(group_id)

    def get_group(self, group_id: str, with_analysis: bool = True) -> Optional[CorrelationGroup]:
        founding = self.correlation_log.founding_record(group_id)
        if founding is None:
            return None

        members = [
            GroupMember(record=record, email=self.email_source.get_email(record.email_id))
            for record in self.correlation_log.members(group_id)
        ]

        analysis = None
        if with_analysis:
            try:
                analysis = self.analysis.analyze(group_id)
            except TransientProviderError as e:
                logger.error(f'Analysis failed for group {group_id}: {e}')

        return CorrelationGroup(group_id=group_id,
                                subject=founding.subject,
                                correlation_type=founding.correlation_type,
                                members=members,
                                analysis=analysis)

    def list_groups(self, owner_id: str, with_analysis: bool = True) -> List[CorrelationGroup]:
        """Every group touching the owner's emails, hydrated with members and analysis."""
        group_ids = self.correlation_log.group_ids_for_emails(self.email_source.email_ids(owner_id))

        groups = []
        for group_id in group_ids:
            group = self.get_group(group_id, with_analysis=with_analysis)
            if group is not None:
                groups.append(group)

        logger.debug(f'Listed {len(groups)} correlation groups for owner {owner_id}')
        return groups
