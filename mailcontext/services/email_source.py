"""
Email source backed by a JSON file written by the ingestion layer.
"""

import json
import os
import tempfile
import threading
from typing import Dict, List, Optional, Set

from ..models.core import Email
from ..utils.errors import StorageError
from ..utils.logging_config import get_logger

logger = get_logger(__name__)


class EmailSource:
    """Raw email records keyed by email id.

    The mailbox layer owns these records; the core only reads them, apart from
    ``upsert`` which the ingestion path uses to hand emails over.
    """

    def __init__(self, path: Optional[str] = None):
        """
        Args:
            path: JSON file to persist to. Kept in memory only when None.
        """
        self.path = path
        self._emails: Dict[int, Email] = {}
        self._lock = threading.RLock()

        if path and os.path.exists(path):
            try:
                with open(path, 'r', encoding='utf-8') as f:
                    for data in json.load(f):
                        email = Email.from_dict(data)
                        self._emails[email.id] = email
            except (OSError, json.JSONDecodeError, KeyError, ValueError) as e:
                logger.error(f'Failed to load emails from {path}: {e}')
                raise StorageError(f'Failed to load emails: {e}')

        logger.info(f'Initialized EmailSource with {len(self._emails)} emails')

    def get_email(self, email_id: int) -> Optional[Email]:
        return self._emails.get(int(email_id))

    def upsert(self, email: Email) -> Email:
        with self._lock:
            self._emails[email.id] = email
            self._persist()
        return email

    def list_emails(self, owner_id: str, limit: Optional[int] = None) -> List[Email]:
        """Owner's emails, newest first."""
        emails = [email for email in self._emails.values() if email.owner_id == owner_id]
        emails.sort(key=lambda e: (e.date, e.id), reverse=True)
        return emails if limit is None else emails[:limit]

    def email_ids(self, owner_id: str) -> Set[int]:
        return {email.id for email in self._emails.values() if email.owner_id == owner_id}

    def owner_ids(self) -> List[str]:
        return sorted({email.owner_id for email in self._emails.values()})

    def _persist(self) -> None:
        if not self.path:
            return

        directory = os.path.dirname(os.path.abspath(self.path))
        try:
            os.makedirs(directory, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(dir=directory, suffix='.tmp')
            try:
                with os.fdopen(fd, 'w', encoding='utf-8') as f:
                    json.dump([email.to_dict() for email in self._emails.values()], f)
                os.replace(tmp_path, self.path)
            except BaseException:
                if os.path.exists(tmp_path):
                    os.remove(tmp_path)
                raise
        except OSError as e:
            logger.error(f'Failed to persist emails to {self.path}: {e}')
            raise StorageError(f'Failed to persist emails: {e}')
