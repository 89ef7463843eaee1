"""
Owner-keyed JSON snapshot persistence for the memory store.

Each owner's documents live in their own file, so a write rewrites only that
owner's snapshot. Writes go to a temporary file that is renamed over the
previous snapshot.
"""

import hashlib
import json
import os
import tempfile
from typing import Dict, Iterator, Tuple

from .errors import StorageError
from .logging_config import get_logger

logger = get_logger(__name__)


class OwnerSnapshotStore:
    """Load and rewrite per-owner snapshots of ``{doc_id: document_dict}``."""

    def __init__(self, directory: str):
        self.directory = directory
        os.makedirs(directory, exist_ok=True)

    def _path(self, owner_id: str) -> str:
        digest = hashlib.sha256(owner_id.encode('utf-8')).hexdigest()[:32]
        return os.path.join(self.directory, f'{digest}.json')

    def load_all(self) -> Iterator[Tuple[str, Dict[str, dict]]]:
        """Yield ``(owner_id, documents)`` for every snapshot on disk."""
        for name in sorted(os.listdir(self.directory)):
            if not name.endswith('.json'):
                continue
            path = os.path.join(self.directory, name)
            try:
                with open(path, 'r', encoding='utf-8') as f:
                    payload = json.load(f)
                owner_id = payload['owner_id']
            except (OSError, json.JSONDecodeError, KeyError, TypeError) as e:
                logger.error(f'Failed to load memory snapshot {name}: {e}')
                raise StorageError(f'Failed to load memory snapshot {name}: {e}')

            yield owner_id, payload.get('documents', {})

    def save(self, owner_id: str, documents: Dict[str, dict]) -> None:
        """Rewrite the owner's snapshot. An empty mapping removes the file."""
        path = self._path(owner_id)
        try:
            if not documents:
                if os.path.exists(path):
                    os.remove(path)
                return

            fd, tmp_path = tempfile.mkstemp(dir=self.directory, suffix='.tmp')
            try:
                with os.fdopen(fd, 'w', encoding='utf-8') as f:
                    json.dump({'owner_id': owner_id, 'documents': documents}, f)
                os.replace(tmp_path, path)
            except BaseException:
                if os.path.exists(tmp_path):
                    os.remove(tmp_path)
                raise

            logger.debug(f'Persisted {len(documents)} memory documents for owner {owner_id}')

        except OSError as e:
            logger.error(f'Failed to persist memory snapshot for owner {owner_id}: {e}')
            raise StorageError(f'Failed to persist memory snapshot: {e}')
