"""
Context aggregation: wires the memory store and correlation engine for ingestion and sweeps.
"""

import os
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Tuple

from ..models.core import CorrelationRecord, DocumentKind, Email, MemoryDocument
from ..utils.bedrock_embed import BedrockEmbed
from ..utils.config import AppConfig
from ..utils.errors import MailContextError, StorageError, TransientProviderError, ValidationError
from ..utils.hashing_embed import HashingEmbed
from ..utils.logging_config import get_logger
from ..utils.snapshot_store import OwnerSnapshotStore
from .candidates import build_candidate_strategy
from .classification import ClassificationService
from .correlation_engine import CorrelationEngine
from .correlation_log import CorrelationLog
from .email_source import EmailSource
from .group_analysis import GroupAnalysisService
from .memory_store import MemoryStore

logger = get_logger(__name__)


@dataclass
class IngestResult:
    email_id: int
    indexed: bool = False
    records: List[CorrelationRecord] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)


@dataclass
class SweepReport:
    owners: int = 0
    ingested: int = 0
    failed: int = 0
    failed_owners: List[str] = field(default_factory=list)


class ContextAggregationService:
    """Entry point for collaborators: new emails and notes in, searches and groups out."""

    def __init__(self, email_source: EmailSource, memory_store: MemoryStore, engine: CorrelationEngine,
                 search_default_limit: int = 5):
        self.email_source = email_source
        self.memory_store = memory_store
        self.engine = engine
        self.search_default_limit = search_default_limit

    def ingest_email(self, email: Email) -> IngestResult:
        """Index a new email, then correlate it. Each step fails independently."""
        result = IngestResult(email_id=email.id)

        try:
            self.email_source.upsert(email)
        except StorageError as e:
            logger.error(f'Failed to store email {email.id}: {e}')
            result.errors.append(f'store: {e}')
            return result

        try:
            self.memory_store.index_email(email)
            result.indexed = True
        except (TransientProviderError, ValidationError, StorageError) as e:
            logger.error(f'Failed to index email {email.id}: {e}')
            result.errors.append(f'index: {e}')

        try:
            result.records = self.engine.detect(email, email.owner_id)
        except (TransientProviderError, StorageError) as e:
            logger.error(f'Failed to correlate email {email.id}: {e}')
            result.errors.append(f'correlate: {e}')

        return result

    def add_note(self, note_id: str, content: str, owner_id: str) -> MemoryDocument:
        return self.memory_store.index_note(note_id, content, owner_id)

    def add_conversation(self, conversation_id: str, messages: List[Dict[str, str]], owner_id: str) -> MemoryDocument:
        return self.memory_store.index_conversation(conversation_id, messages, owner_id)

    def search(self, query: str, owner_id: str, limit: Optional[int] = None) -> List[Tuple[MemoryDocument, float]]:
        return self.memory_store.search(query, owner_id, limit or self.search_default_limit)

    def reindex(self, owner_id: str) -> int:
        return self.memory_store.reindex_all(owner_id)

    def sweep(self, owner_ids: Optional[Iterable[str]] = None) -> SweepReport:
        """Background pass: ingest every email that has no memory document yet.

        Owners are processed one after another; a failure is contained to the
        email or owner it happened in.
        """
        report = SweepReport()
        owners = list(owner_ids) if owner_ids is not None else self.email_source.owner_ids()

        for owner_id in owners:
            report.owners += 1
            try:
                pending = [
                    email for email in reversed(self.email_source.list_emails(owner_id))
                    if self.memory_store.get(MemoryDocument.make_id(DocumentKind.EMAIL, email.id)) is None
                ]
                for email in pending:
                    result = self.ingest_email(email)
                    if result.errors:
                        report.failed += 1
                    else:
                        report.ingested += 1
            except MailContextError as e:
                logger.error(f'Sweep failed for owner {owner_id}: {e}')
                report.failed_owners.append(owner_id)

        logger.info(f'Sweep finished: {report.owners} owners, {report.ingested} emails ingested, {report.failed} failed')
        return report


def build_embedder(config: AppConfig):
    if config.bedrock_embed.provider == 'hashing':
        return HashingEmbed(config.bedrock_embed.dimension)
    return BedrockEmbed(config.bedrock_embed)


def build_services(config: AppConfig, embedder=None, classifier: Optional[ClassificationService] = None) -> ContextAggregationService:
    """Construct the store, the engine and their collaborators once, from configuration."""
    storage = config.storage
    os.makedirs(storage.data_dir, exist_ok=True)

    email_source = EmailSource(storage.email_path)
    memory_store = MemoryStore(embedder or build_embedder(config), OwnerSnapshotStore(storage.memory_dir), email_source)
    correlation_log = CorrelationLog(storage.correlation_log_path)
    classifier = classifier or ClassificationService(llm_config=config.bedrock_llm)

    correlation = config.correlation
    engine = CorrelationEngine(correlation_log=correlation_log,
                               email_source=email_source,
                               classifier=classifier,
                               candidate_strategy=build_candidate_strategy(correlation.candidate_strategy, email_source,
                                                                           memory_store, correlation.candidate_pool_size),
                               analysis=GroupAnalysisService(correlation_log, email_source, classifier, correlation),
                               body_excerpt=correlation.body_excerpt)

    return ContextAggregationService(email_source, memory_store, engine, config.memory.search_default_limit)
