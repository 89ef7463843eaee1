"""
Candidate pool strategies for correlation detection.
"""

from typing import List

from ..models.core import DocumentKind, Email
from ..utils.logging_config import get_logger
from .email_source import EmailSource
from .memory_store import MemoryStore

logger = get_logger(__name__)


class RecentEmailsStrategy:
    """The owner's most recent emails, excluding the new one.

    Bounded and cheap, biased towards active threads.
    """

    def __init__(self, email_source: EmailSource, pool_size: int = 50):
        self.email_source = email_source
        self.pool_size = pool_size

    def candidates(self, email: Email, owner_id: str) -> List[Email]:
        recent = self.email_source.list_emails(owner_id, limit=self.pool_size + 1)
        return [e for e in recent if e.id != email.id][:self.pool_size]


class SemanticCandidateStrategy:
    """The owner's emails closest to the new one in the memory store."""

    def __init__(self, memory_store: MemoryStore, email_source: EmailSource, pool_size: int = 50):
        self.memory_store = memory_store
        self.email_source = email_source
        self.pool_size = pool_size

    def candidates(self, email: Email, owner_id: str) -> List[Email]:
        # Over-fetch since notes, conversations and the email itself are filtered out
        hits = self.memory_store.search(f'{email.subject}\n\n{email.body}', owner_id, limit=self.pool_size * 3)

        pool = []
        for document, _ in hits:
            metadata = document.metadata
            if metadata.kind != DocumentKind.EMAIL or metadata.source_email_id in (None, email.id):
                continue
            candidate = self.email_source.get_email(metadata.source_email_id)
            if candidate is None or candidate.owner_id != owner_id:
                continue
            pool.append(candidate)
            if len(pool) >= self.pool_size:
                break

        logger.debug(f'Semantic candidate pool for email {email.id}: {len(pool)} emails')
        return pool


def build_candidate_strategy(name: str, email_source: EmailSource, memory_store: MemoryStore, pool_size: int):
    if name == 'semantic':
        return SemanticCandidateStrategy(memory_store, email_source, pool_size)
    if name != 'recent':
        logger.warning(f'Unknown candidate strategy {name!r}, using recent')
    return RecentEmailsStrategy(email_source, pool_size)
