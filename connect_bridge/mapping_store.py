"""
Row id -> Stripe account id mapping store

A single JSON object on disk, keys are Glide row ids and values are
Stripe connected account ids. Reverse lookups scan the forward table;
there is no reverse index, so lookup cost grows with the table.

Writes are serialized through a process-wide lock held across the
whole read-modify-write, and the file is replaced atomically.
"""

import json
import logging
import os
import tempfile
import threading
from typing import Dict, Optional

from .error_handling import StorageUnavailable

logger = logging.getLogger(__name__)

# One lock per mapping file, shared by every MappingStore in the process
_file_locks: Dict[str, threading.RLock] = {}
_file_locks_guard = threading.Lock()


def _lock_for(path: str) -> threading.RLock:
    key = os.path.abspath(path)
    with _file_locks_guard:
        lock = _file_locks.get(key)
        if lock is None:
            lock = _file_locks[key] = threading.RLock()
        return lock


class MappingStore:
    """
    JSON file backed mapping of external row ids to account ids

    Every instance pointing at the same file shares one lock, so
    concurrent put() calls for different rows never lose each
    other's writes, even across stores.
    """

    def __init__(self, path: str):
        self.path = path
        self._lock = _lock_for(path)

    def load(self) -> Dict[str, str]:
        """
        Return the full forward mapping

        Creates and persists an empty table when the file is absent.

        Raises:
            StorageUnavailable: If the file cannot be read, written or decoded
        """
        with self._lock:
            return dict(self._read())

    def get(self, row_id: str) -> Optional[str]:
        """Return the account id mapped to row_id, or None"""
        return self.load().get(row_id)

    def put(self, row_id: str, account_id: str) -> None:
        """
        Map row_id to account_id, overwriting any previous mapping

        Args:
            row_id: External row id
            account_id: Stripe connected account id

        Raises:
            StorageUnavailable: If the table cannot be read or persisted
        """
        with self._lock:
            mappings = self._read()
            previous = mappings.get(row_id)
            mappings[row_id] = account_id
            self._write(mappings)

        if previous and previous != account_id:
            logger.info(f"Remapped row {row_id} from {previous} to {account_id}")
        else:
            logger.info(f"Mapped row {row_id} to account {account_id}")

    @staticmethod
    def find_row_by_account(mappings: Dict[str, str], account_id: str) -> Optional[str]:
        """
        Reverse lookup by linear scan

        Returns the first row id (in table order) mapped to account_id,
        or None when no row matches.
        """
        for row_id, mapped_account_id in mappings.items():
            if mapped_account_id == account_id:
                return row_id
        return None

    def find_row(self, account_id: str) -> Optional[str]:
        """Load the table and reverse-look-up account_id"""
        return self.find_row_by_account(self.load(), account_id)

    # Caller must hold self._lock for both helpers below

    def _read(self) -> Dict[str, str]:
        if not os.path.exists(self.path):
            logger.info(f"Mapping file {self.path} not found, initializing empty table")
            self._write({})
            return {}

        try:
            with open(self.path, 'r', encoding='utf-8') as fh:
                data = json.load(fh)
        except (OSError, ValueError) as e:
            logger.error(f"Failed to read mapping file {self.path}: {str(e)}")
            raise StorageUnavailable()

        if not isinstance(data, dict) or not all(
            isinstance(k, str) and isinstance(v, str) for k, v in data.items()
        ):
            logger.error(f"Mapping file {self.path} is not a string-to-string JSON object")
            raise StorageUnavailable()

        return data

    def _write(self, mappings: Dict[str, str]) -> None:
        directory = os.path.dirname(os.path.abspath(self.path))
        tmp_path = None
        try:
            fd, tmp_path = tempfile.mkstemp(prefix='.mappings-', suffix='.tmp', dir=directory)
            with os.fdopen(fd, 'w', encoding='utf-8') as fh:
                json.dump(mappings, fh, indent=2)
                fh.flush()
                os.fsync(fh.fileno())
            os.replace(tmp_path, self.path)
            tmp_path = None
        except OSError as e:
            logger.error(f"Failed to write mapping file {self.path}: {str(e)}")
            raise StorageUnavailable()
        finally:
            if tmp_path and os.path.exists(tmp_path):
                os.unlink(tmp_path)
