"""
Group analysis: vendor comparison for quote groups, timelines for order and invoice groups.
"""

import json
from typing import List, Optional, Tuple

from ..models.core import (ORDER_TYPES, CorrelationRecord, CorrelationType, Email, GroupAnalysis, OrderTimeline,
                           QuoteAnalysis, metadata_to_dict)
from ..utils.config import CorrelationConfig
from ..utils.logging_config import get_logger
from .classification import ClassificationService
from .correlation_log import CorrelationLog
from .email_source import EmailSource
from .schemas import parse_order_timeline, parse_quote_analysis

logger = get_logger(__name__)

QUOTE_SYSTEM_PROMPT = """
You are a procurement analyst comparing supplier quotes received by email.

Choose the best option using your judgement: price matters, but weigh delivery time,
warranty, scope and vendor reliability when the emails mention them.

Return a JSON object with this exact format:
```json
{
  "best_option": {"vendor": "vendor name", "price": 0.0, "reason": "why this is the best option"},
  "comparison": {
    "price_range": {"min": 0.0, "max": 0.0},
    "vendors": [
      {
        "name": "vendor",
        "price": 0.0,
        "pros": ["..."],
        "cons": ["..."],
        "delivery_time": "if mentioned",
        "warranty": "if mentioned"
      }
    ]
  },
  "recommendation": "detailed recommendation for the user"
}
```
Prices are plain numbers without currency symbols."""

TIMELINE_SYSTEM_PROMPT = """
You are an operations assistant tracking an order from quote to invoice across an email thread.

The emails are listed oldest first. Build a dated timeline of what happened, infer the current
status and recommend the next action for the user.

Return a JSON object with this exact format:
```json
{
  "order_status": "pending|confirmed|shipped|delivered|completed",
  "timeline": [
    {"date": "ISO date", "event": "what happened", "details": "relevant details"}
  ],
  "next_action": "what the user should do next",
  "total_value": 0.0
}
```
Omit total_value when no amount is stated."""


class GroupAnalysisService:
    """Compute a group's analysis on demand. Nothing is cached."""

    def __init__(self, correlation_log: CorrelationLog, email_source: EmailSource, classifier: ClassificationService,
                 correlation_config: CorrelationConfig):
        self.correlation_log = correlation_log
        self.email_source = email_source
        self.classifier = classifier
        self.config = correlation_config

    def analyze(self, group_id: str) -> Optional[GroupAnalysis]:
        """Analysis for a group, or None when there is nothing to analyze.

        None covers unknown groups, groups with fewer than two members, types
        without an analysis (inquiry, response, manual), and classifier output
        that fails validation.

        Raises:
            ClassificationError: If the classification call fails
        """
        members = self.correlation_log.members(group_id)
        if len(members) < 2:
            logger.debug(f'Group {group_id} has {len(members)} members, no analysis')
            return None

        founding = self.correlation_log.founding_record(group_id)
        hydrated = self._hydrate(members)
        if len(hydrated) < 2:
            logger.warning(f'Group {group_id} has fewer than 2 resolvable emails, no analysis')
            return None

        if founding.correlation_type == CorrelationType.QUOTE:
            return self._analyze_quotes(founding.subject, hydrated)
        if founding.correlation_type in ORDER_TYPES:
            return self._analyze_order_progress(founding.subject, hydrated)

        logger.debug(f'No analysis for {founding.correlation_type.value} group {group_id}')
        return None

    def _hydrate(self, members: List[CorrelationRecord]) -> List[Tuple[CorrelationRecord, Email]]:
        hydrated = []
        for record in members:
            email = self.email_source.get_email(record.email_id)
            if email is None:
                logger.warning(f'Email {record.email_id} in group {record.group_id} not found, skipping')
                continue
            hydrated.append((record, email))
        return hydrated

    def _analyze_quotes(self, subject: str, hydrated: List[Tuple[CorrelationRecord, Email]]) -> Optional[QuoteAnalysis]:
        excerpt = self.config.quote_excerpt
        quotes = []
        for i, (record, email) in enumerate(hydrated, 1):
            quotes.append(f'Quote {i}:\n'
                          f'From: {email.sender}\n'
                          f'Subject: {email.subject}\n'
                          f'Content: {email.body[:excerpt]}\n'
                          f'Metadata: {json.dumps(metadata_to_dict(record.metadata))}')

        prompt = f'Compare these quote emails for "{subject}":\n\n' + '\n\n'.join(quotes)
        analysis = self.classifier.classify(QUOTE_SYSTEM_PROMPT, prompt, parse_quote_analysis, label='quote analysis')
        if analysis is not None:
            logger.debug(f'Quote analysis picked {analysis.best_option.vendor} out of {len(hydrated)} quotes')
        return analysis

    def _analyze_order_progress(self, subject: str, hydrated: List[Tuple[CorrelationRecord,
                                                                         Email]]) -> Optional[OrderTimeline]:
        excerpt = self.config.timeline_excerpt
        ordered = sorted(hydrated, key=lambda item: (item[1].date, item[1].id))

        entries = []
        for i, (record, email) in enumerate(ordered, 1):
            entries.append(f'Email {i} ({email.date.date().isoformat()}):\n'
                           f'Type: {record.correlation_type.value}\n'
                           f'From: {email.sender}\n'
                           f'Subject: {email.subject}\n'
                           f'Content: {email.body[:excerpt]}')

        prompt = f'Track the progress of this order/invoice thread "{subject}":\n\n' + '\n\n'.join(entries)
        return self.classifier.classify(TIMELINE_SYSTEM_PROMPT, prompt, parse_order_timeline, label='order timeline')
