"""
Mintpad Launchpad - Snapshot Storage

This module provides JSON-based persistence of a factory, every collection it
deployed and the value ledger, with inter-process file locking, atomic
replacement and rotating backups.
"""

import fcntl
import hashlib
import json
import logging
import os
import shutil
import time
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from threading import RLock
from typing import Any, Dict, List, Optional, Tuple, Union

from pydantic import ValidationError as PydanticValidationError

from collection.events import EventLog
from collection.exceptions import LaunchpadError
from collection.ledger import ValueLedger

from .manager import CollectionFactory, FactorySnapshot


FORMAT_VERSION = 1

logger = logging.getLogger("mintpad.storage")


class StorageError(LaunchpadError):
    """Base storage exception."""
    pass


class LockTimeoutError(StorageError):
    """Lock acquisition timeout exception."""
    pass


class IntegrityError(StorageError):
    """Stored data is unreadable or fails its checksum."""
    pass


class FileLock:
    """Exclusive lock file next to the guarded file."""

    def __init__(self, file_path: Union[str, Path], timeout: float = 30.0):
        self.file_path = Path(file_path)
        self.lock_file_path = self.file_path.with_suffix(self.file_path.suffix + '.lock')
        self.timeout = timeout
        self.lock_fd = None
        self._thread_lock = RLock()

    def acquire(self) -> bool:
        """Acquire file lock with timeout."""
        with self._thread_lock:
            if self.lock_fd is not None:
                return True

            deadline = time.time() + self.timeout
            while time.time() < deadline:
                try:
                    self.lock_fd = os.open(
                        str(self.lock_file_path),
                        os.O_CREAT | os.O_EXCL | os.O_RDWR
                    )
                except FileExistsError:
                    time.sleep(0.05)
                    continue
                except OSError as e:
                    raise StorageError(f"Failed to acquire lock: {e}") from e

                try:
                    fcntl.flock(self.lock_fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
                    return True
                except BlockingIOError:
                    os.close(self.lock_fd)
                    os.unlink(self.lock_file_path)
                    self.lock_fd = None

            raise LockTimeoutError(f"Failed to acquire lock within {self.timeout} seconds")

    def release(self) -> None:
        """Release file lock."""
        with self._thread_lock:
            if self.lock_fd is None:
                return
            try:
                fcntl.flock(self.lock_fd, fcntl.LOCK_UN)
                os.close(self.lock_fd)
                os.unlink(self.lock_file_path)
            except OSError as e:
                logger.warning(f"Failed to release lock {self.lock_file_path}: {e}")
            finally:
                self.lock_fd = None

    def __enter__(self):
        self.acquire()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.release()


class JSONStorage:
    """JSON document on disk with atomic writes and backups."""

    def __init__(self, file_path: Union[str, Path], backup_count: int = 5,
                 lock_timeout: float = 30.0):
        self.file_path = Path(file_path)
        self.backup_count = backup_count
        self.lock_timeout = lock_timeout
        self.backup_dir = self.file_path.parent / 'backups'

        self.file_path.parent.mkdir(parents=True, exist_ok=True)

    @staticmethod
    def _checksum(payload: Dict[str, Any]) -> str:
        canonical = json.dumps(payload, sort_keys=True, separators=(',', ':'), default=str)
        return hashlib.sha256(canonical.encode('utf-8')).hexdigest()

    def _write_file(self, document: Dict[str, Any]) -> None:
        """Write to a temp file and rename over the target."""
        temp_file = self.file_path.with_suffix(self.file_path.suffix + '.tmp')
        try:
            with open(temp_file, 'w', encoding='utf-8') as f:
                json.dump(document, f, indent=2, default=str)
            os.replace(temp_file, self.file_path)
        except OSError as e:
            if temp_file.exists():
                temp_file.unlink()
            raise StorageError(f"Failed to write {self.file_path}: {e}") from e

    def _create_backup(self) -> None:
        if not self.file_path.exists() or self.backup_count <= 0:
            return

        timestamp = datetime.now(timezone.utc).strftime('%Y%m%d_%H%M%S_%f')
        backup_path = self.backup_dir / f"{self.file_path.stem}_{timestamp}{self.file_path.suffix}"
        self.backup_dir.mkdir(parents=True, exist_ok=True)
        shutil.copy2(self.file_path, backup_path)
        self._cleanup_old_backups()

    def _cleanup_old_backups(self) -> None:
        for backup_file in self.list_backups()[self.backup_count:]:
            try:
                backup_file.unlink()
            except OSError as e:
                logger.warning(f"Failed to remove old backup {backup_file}: {e}")

    @contextmanager
    def _lock_context(self):
        with FileLock(self.file_path, timeout=self.lock_timeout):
            yield

    def read(self) -> Optional[Dict[str, Any]]:
        """Return the stored payload, or None if nothing is stored yet."""
        with self._lock_context():
            if not self.file_path.exists():
                return None
            try:
                with open(self.file_path, 'r', encoding='utf-8') as f:
                    document = json.load(f)
            except json.JSONDecodeError as e:
                raise IntegrityError(f"Invalid JSON in {self.file_path}: {e}") from e

        if not isinstance(document, dict) or 'payload' not in document:
            raise IntegrityError(f"{self.file_path} is not a snapshot document")
        if document.get('checksum') != self._checksum(document['payload']):
            raise IntegrityError(f"Checksum mismatch in {self.file_path}")
        return document['payload']

    def write(self, payload: Dict[str, Any], create_backup: bool = True) -> str:
        """Store ``payload`` atomically; returns its checksum."""
        checksum = self._checksum(payload)
        document = {
            'format_version': FORMAT_VERSION,
            'saved_at': datetime.now(timezone.utc).isoformat(),
            'checksum': checksum,
            'payload': payload,
        }
        with self._lock_context():
            if create_backup:
                self._create_backup()
            self._write_file(document)
        return checksum

    def exists(self) -> bool:
        return self.file_path.exists()

    def size(self) -> int:
        if not self.file_path.exists():
            return 0
        return self.file_path.stat().st_size

    def list_backups(self) -> List[Path]:
        """Backup files, newest first."""
        if not self.backup_dir.exists():
            return []
        pattern = f"{self.file_path.stem}_*{self.file_path.suffix}"
        return sorted(self.backup_dir.glob(pattern), key=lambda p: p.name, reverse=True)

    def restore_backup(self, backup_name: str) -> bool:
        """Copy a named backup over the current file."""
        backup_path = self.backup_dir / backup_name
        if not backup_path.exists():
            return False

        with self._lock_context():
            self._create_backup()
            shutil.copy2(backup_path, self.file_path)
        return True


class LaunchpadStorage:
    """Save and load a whole launchpad: factory, collections and ledger."""

    def __init__(self, data_dir: Union[str, Path] = "mintpad_data", backup_count: int = 5,
                 lock_timeout: float = 30.0):
        self.data_dir = Path(data_dir).expanduser()
        self.data_dir.mkdir(parents=True, exist_ok=True)
        self.json_storage = JSONStorage(
            self.data_dir / "launchpad.json",
            backup_count=backup_count,
            lock_timeout=lock_timeout,
        )

    def exists(self) -> bool:
        return self.json_storage.exists()

    def save(self, factory: CollectionFactory) -> str:
        """Persist ``factory`` and its ledger; returns the payload checksum."""
        payload = {
            'snapshot': factory.snapshot().model_dump(mode='json'),
            'ledger': factory.ledger.balances(),
        }
        checksum = self.json_storage.write(payload)
        logger.info(f"Saved launchpad {factory.address} to {self.json_storage.file_path}")
        return checksum

    def load(self, clock=None, events: Optional[EventLog] = None) -> Optional[CollectionFactory]:
        """Rebuild the stored launchpad, or return None if nothing is stored."""
        payload = self.json_storage.read()
        if payload is None:
            return None

        try:
            snapshot = FactorySnapshot.model_validate(payload['snapshot'])
            ledger = ValueLedger(payload.get('ledger', {}))
        except (KeyError, PydanticValidationError) as e:
            raise IntegrityError(f"Stored launchpad is malformed: {e}") from e

        factory = CollectionFactory.from_snapshot(snapshot, ledger=ledger, events=events, clock=clock)
        logger.debug(f"Loaded launchpad {factory.address} with {len(snapshot.collections)} collection(s)")
        return factory

    def list_backups(self) -> List[str]:
        return [p.name for p in self.json_storage.list_backups()]

    def restore_backup(self, backup_name: str) -> bool:
        return self.json_storage.restore_backup(backup_name)

    def get_storage_info(self) -> Dict[str, Any]:
        return {
            'file_path': str(self.json_storage.file_path),
            'size_bytes': self.json_storage.size(),
            'exists': self.json_storage.exists(),
            'backup_count': len(self.json_storage.list_backups()),
        }
