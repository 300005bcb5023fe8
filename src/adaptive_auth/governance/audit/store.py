"""Audit Store - append-only persistence with hash chain integrity.

Each appended entry records the hash of the entry before it, so removing or
editing a line breaks the chain and is caught by ``verify_integrity``.
"""

import fcntl
import hashlib
import json
import logging
import os
import threading
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterable, Iterator, List, Optional, Union

from adaptive_auth.common.constants import AuditConstants
from adaptive_auth.common.exceptions import AuditError
from adaptive_auth.governance.audit.schemas import AuditEntry, AuditEventType


logger = logging.getLogger(__name__)


class AuditLogIntegrityError(AuditError):
    """Raised when audit log integrity check fails."""
    
    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, details=details)
        self.code = "AUDIT_INTEGRITY_ERROR"


def canonical_json(entry_dict: Dict[str, Any]) -> str:
    """Deterministic serialization used for hashing."""
    return json.dumps(entry_dict, sort_keys=True, ensure_ascii=False, default=str)


def compute_entry_hash(
    entry_dict: Dict[str, Any],
    algorithm: str = AuditConstants.HASH_ALGORITHM,
) -> str:
    """Hash an entry dict with its ``entry_hash`` field blanked."""
    content = dict(entry_dict)
    content["entry_hash"] = None
    hasher = hashlib.new(algorithm)
    hasher.update(canonical_json(content).encode("utf-8"))
    return hasher.hexdigest()


def verify_chain(
    entry_dicts: Iterable[Dict[str, Any]],
    algorithm: str = AuditConstants.HASH_ALGORITHM,
) -> bool:
    """Walk a sequence of raw entries and check every link.
    
    Raises:
        AuditLogIntegrityError: On the first broken link or altered entry
    """
    previous_hash = None
    for position, entry_dict in enumerate(entry_dicts, start=1):
        if entry_dict.get("previous_hash") != previous_hash:
            raise AuditLogIntegrityError(
                f"Hash chain broken at entry {position}. "
                f"Expected previous_hash={previous_hash}, "
                f"got {entry_dict.get('previous_hash')}",
                details={"position": position}
            )
        stored_hash = entry_dict.get("entry_hash")
        if compute_entry_hash(entry_dict, algorithm) != stored_hash:
            raise AuditLogIntegrityError(
                f"Entry hash mismatch at entry {position}. "
                f"Entry may have been tampered with.",
                details={"position": position}
            )
        previous_hash = stored_hash
    return True


class AuditStore(ABC):
    """Abstract base class for audit log storage backends.
    
    Implementations must be thread-safe and append-only.
    """
    
    hash_algorithm: str = AuditConstants.HASH_ALGORITHM
    
    @abstractmethod
    def append_entry(self, entry: AuditEntry) -> AuditEntry:
        """Append an entry and return it with hash chain fields populated.
        
        Raises:
            AuditError: If the write fails
        """
        pass
    
    @abstractmethod
    def get_entries(
        self,
        event_type: Optional[AuditEventType] = None,
        user_id: Optional[str] = None,
    ) -> Iterator[AuditEntry]:
        """Yield stored entries, oldest first, optionally filtered."""
        pass
    
    @abstractmethod
    def verify_integrity(self) -> bool:
        """Verify the hash chain.
        
        Raises:
            AuditLogIntegrityError: If integrity check fails
        """
        pass
    
    @abstractmethod
    def get_last_hash(self) -> Optional[str]:
        pass
    
    def _chain(self, entry: AuditEntry, previous_hash: Optional[str]) -> AuditEntry:
        """Return a copy of ``entry`` linked to ``previous_hash``."""
        entry_dict = entry.model_dump(mode="json")
        entry_dict["previous_hash"] = previous_hash
        entry_dict["entry_hash"] = compute_entry_hash(entry_dict, self.hash_algorithm)
        return AuditEntry.model_validate(entry_dict)
    
    @staticmethod
    def _matches(
        entry: AuditEntry,
        event_type: Optional[AuditEventType],
        user_id: Optional[str],
    ) -> bool:
        if event_type and entry.event_type != event_type:
            return False
        if user_id and entry.user_id != user_id:
            return False
        return True


class InMemoryAuditStore(AuditStore):
    """Process-local audit store. Used in development and tests."""
    
    def __init__(self):
        self._lock = threading.Lock()
        self._lines: List[str] = []
        self._last_hash: Optional[str] = None
    
    def append_entry(self, entry: AuditEntry) -> AuditEntry:
        with self._lock:
            entry = self._chain(entry, self._last_hash)
            self._lines.append(entry.to_jsonl())
            self._last_hash = entry.entry_hash
            return entry
    
    def get_entries(
        self,
        event_type: Optional[AuditEventType] = None,
        user_id: Optional[str] = None,
    ) -> Iterator[AuditEntry]:
        with self._lock:
            lines = list(self._lines)
        for line in lines:
            entry = AuditEntry.from_jsonl(line)
            if self._matches(entry, event_type, user_id):
                yield entry
    
    def verify_integrity(self) -> bool:
        with self._lock:
            lines = list(self._lines)
        return verify_chain((json.loads(line) for line in lines), self.hash_algorithm)
    
    def get_last_hash(self) -> Optional[str]:
        return self._last_hash
    
    def __len__(self) -> int:
        return len(self._lines)


class FileAuditStore(AuditStore):
    """File-based audit store with JSONL format and hash chain integrity.
    
    Features:
    - Append-only JSONL files with daily rotation (one chain per day)
    - Exclusive file locking for cross-process appends
    - Sidecar metadata for fast startup
    """
    
    METADATA_SUFFIX = ".meta"
    
    def __init__(
        self,
        log_dir: Union[str, Path],
        log_filename_pattern: str = "rba_audit_{date}.jsonl",
        hash_algorithm: str = AuditConstants.HASH_ALGORITHM,
        fsync_on_write: bool = False,
    ):
        """Initialize file audit store.
        
        Args:
            log_dir: Directory for audit logs (created if missing)
            log_filename_pattern: Pattern for log filename. {date} is replaced.
            hash_algorithm: Hash algorithm for the chain
            fsync_on_write: Whether to fsync after each write (slower but safer)
        """
        self.log_dir = Path(log_dir)
        self.log_filename_pattern = log_filename_pattern
        self.hash_algorithm = hash_algorithm
        self.fsync_on_write = fsync_on_write
        
        self._lock = threading.Lock()
        
        self.log_dir.mkdir(parents=True, exist_ok=True)
        try:
            os.chmod(self.log_dir, 0o700)
        except OSError:
            logger.debug("Could not restrict audit directory permissions", extra={"log_dir": str(self.log_dir)})
        
        self._current_date = self._today()
        self._last_hash: Optional[str] = self._load_last_hash()
    
    @staticmethod
    def _today() -> str:
        return datetime.now(timezone.utc).strftime("%Y-%m-%d")
    
    def log_path(self, date: Optional[str] = None) -> Path:
        filename = self.log_filename_pattern.replace("{date}", date or self._today())
        return self.log_dir / filename
    
    def _metadata_path(self, date: Optional[str] = None) -> Path:
        log_path = self.log_path(date)
        return log_path.with_suffix(log_path.suffix + self.METADATA_SUFFIX)
    
    def _load_last_hash(self) -> Optional[str]:
        """Load last hash from metadata file or scan the current log."""
        meta_path = self._metadata_path(self._current_date)
        if meta_path.exists():
            try:
                with open(meta_path, "r") as f:
                    return json.load(f).get("last_hash")
            except (json.JSONDecodeError, OSError):
                logger.warning("Unreadable audit metadata, rescanning log", extra={"path": str(meta_path)})
        
        log_path = self.log_path(self._current_date)
        if not log_path.exists():
            return None
        
        last_hash = None
        with open(log_path, "r") as f:
            for line in f:
                line = line.strip()
                if line:
                    last_hash = json.loads(line).get("entry_hash")
        return last_hash
    
    def _save_metadata(self, last_hash: str) -> None:
        meta = {
            "last_hash": last_hash,
            "updated_at": datetime.now(timezone.utc).isoformat(),
        }
        try:
            with open(self._metadata_path(self._current_date), "w") as f:
                json.dump(meta, f)
        except OSError:
            # The log itself is authoritative; metadata only speeds up startup
            logger.warning("Failed to write audit metadata", exc_info=True)
    
    def append_entry(self, entry: AuditEntry) -> AuditEntry:
        """Append entry to today's log with file locking."""
        with self._lock:
            today = self._today()
            if today != self._current_date:
                self._current_date = today
                self._last_hash = self._load_last_hash()
            
            entry = self._chain(entry, self._last_hash)
            line = entry.to_jsonl() + "\n"
            
            try:
                fd = os.open(
                    str(self.log_path(self._current_date)),
                    os.O_WRONLY | os.O_CREAT | os.O_APPEND,
                    0o600
                )
                try:
                    fcntl.flock(fd, fcntl.LOCK_EX)
                    try:
                        os.write(fd, line.encode("utf-8"))
                        if self.fsync_on_write:
                            os.fsync(fd)
                    finally:
                        fcntl.flock(fd, fcntl.LOCK_UN)
                finally:
                    os.close(fd)
            except OSError as e:
                raise AuditError(
                    f"Failed to append audit entry: {e}",
                    details={"entry_id": entry.entry_id}
                ) from e
            
            self._last_hash = entry.entry_hash
            self._save_metadata(entry.entry_hash)
            return entry
    
    def _read_lines(self, date: Optional[str] = None) -> Iterator[str]:
        log_path = self.log_path(date)
        if not log_path.exists():
            return
        with open(log_path, "r") as f:
            for line in f:
                line = line.strip()
                if line:
                    yield line
    
    def get_entries(
        self,
        event_type: Optional[AuditEventType] = None,
        user_id: Optional[str] = None,
        date: Optional[str] = None,
    ) -> Iterator[AuditEntry]:
        for line in self._read_lines(date):
            try:
                entry = AuditEntry.from_jsonl(line)
            except ValueError as e:
                logger.warning(f"Skipped malformed audit entry: {e}")
                continue
            if self._matches(entry, event_type, user_id):
                yield entry
    
    def verify_integrity(self, date: Optional[str] = None) -> bool:
        def parsed() -> Iterator[Dict[str, Any]]:
            for position, line in enumerate(self._read_lines(date), start=1):
                try:
                    yield json.loads(line)
                except json.JSONDecodeError as e:
                    raise AuditLogIntegrityError(
                        f"Malformed JSON at entry {position}: {e}",
                        details={"position": position}
                    ) from e
        
        return verify_chain(parsed(), self.hash_algorithm)
    
    def get_last_hash(self) -> Optional[str]:
        return self._last_hash
    
    def get_log_files(self) -> List[Path]:
        return sorted(self.log_dir.glob("*.jsonl"))
