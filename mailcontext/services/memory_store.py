"""
Semantic Memory Store: owner-scoped index of embedded emails, notes and conversations.
"""

import threading
from typing import Any, Dict, List, Optional, Tuple, Union

import numpy as np

from ..models.core import DocumentKind, Email, MemoryDocument, MemoryMetadata
from ..utils.errors import StorageError, TransientProviderError, ValidationError
from ..utils.logging_config import get_logger
from ..utils.snapshot_store import OwnerSnapshotStore
from ..utils.timestamp_utils import to_datetime, utc_now
from .email_source import EmailSource

logger = get_logger(__name__)


def cosine_similarity(a: List[float], b: List[float]) -> float:
    """Cosine similarity; 0.0 for vectors of different length or zero norm."""
    a = np.asarray(a, dtype=float)
    b = np.asarray(b, dtype=float)
    if a.shape != b.shape or a.size == 0:
        return 0.0

    norm = np.linalg.norm(a) * np.linalg.norm(b)
    if norm == 0:
        return 0.0
    return float(np.dot(a, b) / norm)


def score_documents(query_embedding: List[float], documents: List[MemoryDocument]) -> np.ndarray:
    """Cosine scores of ``documents`` against the query, in document order.

    Documents whose embedding length differs from the query score 0, as do
    zero-norm vectors.
    """
    query = np.asarray(query_embedding, dtype=float)
    scores = np.zeros(len(documents))
    rows = [i for i, document in enumerate(documents) if len(document.embedding) == query.size]
    if not rows or query.size == 0:
        return scores

    matrix = np.asarray([documents[i].embedding for i in rows], dtype=float)
    dots = np.dot(matrix, query)
    norms = np.linalg.norm(matrix, axis=1) * np.linalg.norm(query)
    scores[rows] = np.divide(dots, norms, out=np.zeros_like(dots), where=norms > 0)
    return scores


class MemoryStore:
    """Durable, owner-scoped index of embedded documents.

    Every mutation persists the owner's snapshot before returning. Documents
    keep the slot of their first indexing, which is the tie-break order for
    equal search scores.
    """

    def __init__(self, embedder, snapshots: OwnerSnapshotStore, email_source: Optional[EmailSource] = None):
        """
        Args:
            embedder: Embedding provider exposing ``embed_document``/``embed_query``
            snapshots: Persistence for per-owner snapshots
            email_source: Source of raw emails, used by ``reindex_all``
        """
        self.embedder = embedder
        self.snapshots = snapshots
        self.email_source = email_source
        self._lock = threading.RLock()
        self._documents: Dict[str, Dict[str, MemoryDocument]] = {}
        self._owner_of: Dict[str, str] = {}
        self._dimension: Optional[int] = None

        for owner_id, documents in snapshots.load_all():
            owned = self._documents.setdefault(owner_id, {})
            for doc_id, data in documents.items():
                document = MemoryDocument.from_dict(data)
                owned[doc_id] = document
                self._owner_of[doc_id] = owner_id
                if self._dimension is None and document.embedding:
                    self._dimension = len(document.embedding)

        logger.info(f'Initialized MemoryStore with {len(self._owner_of)} documents')

    def index(self, kind: Union[DocumentKind, str], source_id: Union[str, int], text: str,
              metadata: Union[MemoryMetadata, Dict[str, Any]]) -> MemoryDocument:
        """Embed ``text`` and create or overwrite the document for ``(kind, source_id)``.

        Raises:
            TransientProviderError: If the embedding call fails; nothing is written
            ValidationError: If the owner is missing or the embedding dimension differs
        """
        kind = DocumentKind(kind)
        if isinstance(metadata, dict):
            fields = dict(metadata)
            fields['kind'] = kind.value
            fields.setdefault('created_at', utc_now())
            if not fields.get('owner_id'):
                raise ValidationError('owner_id is required to index a memory document')
            metadata = MemoryMetadata.from_dict(fields)
        else:
            metadata.kind = kind
            metadata.created_at = to_datetime(metadata.created_at)

        if not metadata.owner_id:
            raise ValidationError('owner_id is required to index a memory document')

        owner_id = metadata.owner_id
        doc_id = MemoryDocument.make_id(kind, source_id)
        embedding = self.embedder.embed_document(text)

        with self._lock:
            if self._dimension is not None and len(embedding) != self._dimension:
                raise ValidationError(f'Embedding for {doc_id} has {len(embedding)} dimensions, '
                                      f'store uses {self._dimension}')

            document = MemoryDocument(id=doc_id, text=text, metadata=metadata, embedding=embedding)

            updated = dict(self._documents.get(owner_id, {}))
            updated[doc_id] = document

            previous_owner = self._owner_of.get(doc_id)
            moved_from = None
            if previous_owner is not None and previous_owner != owner_id:
                moved_from = {k: v for k, v in self._documents[previous_owner].items() if k != doc_id}
                self._persist(previous_owner, moved_from)

            try:
                self._persist(owner_id, updated)
            except StorageError:
                if moved_from is not None:
                    self._persist(previous_owner, self._documents[previous_owner])
                raise

            # Snapshots are on disk, now publish the new mappings
            if moved_from is not None:
                self._replace(previous_owner, moved_from)
            self._replace(owner_id, updated)
            self._owner_of[doc_id] = owner_id
            if self._dimension is None:
                self._dimension = len(embedding)

        logger.debug(f'Indexed memory document {doc_id} for owner {metadata.owner_id}')
        return document

    def index_email(self, email: Email) -> MemoryDocument:
        return self.index(DocumentKind.EMAIL, email.id, f'{email.subject}\n\n{email.body}',
                          MemoryMetadata(kind=DocumentKind.EMAIL,
                                         owner_id=email.owner_id,
                                         created_at=to_datetime(email.date),
                                         source_email_id=email.id,
                                         subject=email.subject,
                                         sender=email.sender,
                                         category=email.category))

    def index_note(self, note_id: Union[str, int], content: str, owner_id: str) -> MemoryDocument:
        return self.index(DocumentKind.NOTE, note_id, content, {'owner_id': owner_id})

    def index_conversation(self, conversation_id: Union[str, int], messages: List[Dict[str, str]],
                           owner_id: str) -> MemoryDocument:
        text = '\n'.join(f'{m.get("role", "user")}: {m.get("content", "")}' for m in messages)
        return self.index(DocumentKind.CONVERSATION, conversation_id, text, {'owner_id': owner_id})

    def search(self, query: str, owner_id: str, limit: int = 5) -> List[Tuple[MemoryDocument, float]]:
        """Top ``limit`` documents of ``owner_id`` by cosine similarity to ``query``.

        Raises:
            TransientProviderError: If the query cannot be embedded
        """
        if not query or not query.strip() or limit <= 0:
            return []

        with self._lock:
            documents = list(self._documents.get(owner_id, {}).values())
        if not documents:
            return []

        query_embedding = self.embedder.embed_query(query)

        scores = score_documents(query_embedding, documents)
        # stable sort, so equal scores keep insertion order
        top = np.argsort(-scores, kind='stable')[:limit]

        logger.debug(f'Memory search returned {len(top)} of {len(documents)} documents for owner {owner_id}')
        return [(documents[i], float(scores[i])) for i in top]

    def get(self, doc_id: str) -> Optional[MemoryDocument]:
        owner_id = self._owner_of.get(doc_id)
        if owner_id is None:
            return None
        return self._documents[owner_id].get(doc_id)

    def get_all(self, owner_id: str) -> List[MemoryDocument]:
        """All documents of an owner, newest first."""
        with self._lock:
            documents = list(self._documents.get(owner_id, {}).values())
        documents.sort(key=lambda d: d.metadata.created_at, reverse=True)
        return documents

    def delete(self, doc_id: str) -> bool:
        with self._lock:
            owner_id = self._owner_of.get(doc_id)
            if owner_id is None:
                logger.warning(f'Memory document {doc_id} not found for deletion')
                return False

            remaining = {k: v for k, v in self._documents[owner_id].items() if k != doc_id}
            self._persist(owner_id, remaining)
            self._replace(owner_id, remaining)
            del self._owner_of[doc_id]

        logger.debug(f'Deleted memory document {doc_id}')
        return True

    def delete_owner(self, owner_id: str) -> int:
        """Remove every document of an owner. Returns the number removed."""
        with self._lock:
            self.snapshots.save(owner_id, {})
            documents = self._documents.pop(owner_id, {})
            for doc_id in documents:
                self._owner_of.pop(doc_id, None)

        logger.info(f'Deleted {len(documents)} memory documents for owner {owner_id}')
        return len(documents)

    def reindex_all(self, owner_id: str) -> int:
        """Re-embed every known source document of an owner.

        Emails are rebuilt from the email source when available, notes and
        conversations from their stored text. A failing document is logged and
        skipped. Returns the number of documents re-indexed.
        """
        reindexed = 0
        failed = 0

        emails = self.email_source.list_emails(owner_id) if self.email_source else []
        email_doc_ids = set()
        for email in emails:
            email_doc_ids.add(MemoryDocument.make_id(DocumentKind.EMAIL, email.id))
            try:
                self.index_email(email)
                reindexed += 1
            except (TransientProviderError, ValidationError, StorageError) as e:
                failed += 1
                logger.warning(f'Failed to reindex email {email.id} for owner {owner_id}: {e}')

        with self._lock:
            stored = [d for d in self._documents.get(owner_id, {}).values() if d.id not in email_doc_ids]

        for document in stored:
            kind = document.metadata.kind
            source_id = document.id[len(kind.value) + 1:]
            try:
                self.index(kind, source_id, document.text, document.metadata)
                reindexed += 1
            except (TransientProviderError, ValidationError, StorageError) as e:
                failed += 1
                logger.warning(f'Failed to reindex {document.id} for owner {owner_id}: {e}')

        logger.info(f'Reindexed {reindexed} memory documents for owner {owner_id} ({failed} failed)')
        return reindexed

    def _persist(self, owner_id: str, documents: Dict[str, MemoryDocument]) -> None:
        self.snapshots.save(owner_id, {doc_id: doc.to_dict() for doc_id, doc in documents.items()})

    def _replace(self, owner_id: str, documents: Dict[str, MemoryDocument]) -> None:
        if documents:
            self._documents[owner_id] = documents
        else:
            self._documents.pop(owner_id, None)
