"""
Append-only log of correlation records with a de-duplicated membership view.
"""

import json
import os
import threading
from typing import Dict, Iterable, List, Optional, Set

from ..models.core import CorrelationRecord, CorrelationType
from ..utils.errors import StorageError
from ..utils.logging_config import get_logger

logger = get_logger(__name__)


class CorrelationLog:
    """Correlation records persisted as JSON Lines.

    Past records are never rewritten. Repeated detection can append the same
    ``(group_id, email_id)`` pair more than once; ``members`` folds those into
    one record per email with the latest metadata.
    """

    def __init__(self, path: Optional[str] = None):
        """
        Args:
            path: JSON Lines file to append to. Kept in memory only when None.
        """
        self.path = path
        self._records: List[CorrelationRecord] = []
        self._by_group: Dict[str, List[CorrelationRecord]] = {}
        self._lock = threading.RLock()

        if path and os.path.exists(path):
            try:
                with open(path, 'r', encoding='utf-8') as f:
                    for line_no, line in enumerate(f, 1):
                        line = line.strip()
                        if not line:
                            continue
                        try:
                            self._add(CorrelationRecord.from_dict(json.loads(line)))
                        except (json.JSONDecodeError, KeyError, ValueError) as e:
                            logger.warning(f'Skipping unreadable correlation record at line {line_no}: {e}')
            except OSError as e:
                logger.error(f'Failed to load correlation log {path}: {e}')
                raise StorageError(f'Failed to load correlation log: {e}')

        logger.info(f'Initialized CorrelationLog with {len(self._records)} records in {len(self._by_group)} groups')

    def _add(self, record: CorrelationRecord) -> None:
        self._records.append(record)
        self._by_group.setdefault(record.group_id, []).append(record)

    def append(self, records: Iterable[CorrelationRecord]) -> None:
        records = list(records)
        if not records:
            return

        with self._lock:
            if self.path:
                try:
                    os.makedirs(os.path.dirname(os.path.abspath(self.path)), exist_ok=True)
                    with open(self.path, 'a', encoding='utf-8') as f:
                        for record in records:
                            f.write(json.dumps(record.to_dict()) + '\n')
                        f.flush()
                        os.fsync(f.fileno())
                except OSError as e:
                    logger.error(f'Failed to append {len(records)} correlation records: {e}')
                    raise StorageError(f'Failed to append correlation records: {e}')

            for record in records:
                self._add(record)

        logger.debug(f'Appended {len(records)} correlation records')

    def records(self, group_id: str) -> List[CorrelationRecord]:
        """Raw records of a group in append order, duplicates included."""
        return list(self._by_group.get(group_id, []))

    def members(self, group_id: str) -> List[CorrelationRecord]:
        """One record per email, latest metadata wins, ordered by first appearance."""
        latest: Dict[int, CorrelationRecord] = {}
        for record in self._by_group.get(group_id, []):
            latest[record.email_id] = record
        return list(latest.values())

    def founding_record(self, group_id: str) -> Optional[CorrelationRecord]:
        records = self._by_group.get(group_id)
        return records[0] if records else None

    def find_group(self, email_id: int, correlation_type: CorrelationType) -> Optional[str]:
        """Group id of the earliest record placing ``email_id`` in a group of this type."""
        correlation_type = CorrelationType(correlation_type)
        with self._lock:
            for record in self._records:
                if record.email_id == email_id and record.correlation_type == correlation_type:
                    return record.group_id
        return None

    def group_ids_for_emails(self, email_ids: Set[int]) -> List[str]:
        """Distinct group ids touching any of ``email_ids``, in order of first appearance."""
        seen: Dict[str, None] = {}
        with self._lock:
            for record in self._records:
                if record.email_id in email_ids:
                    seen.setdefault(record.group_id, None)
        return list(seen)
