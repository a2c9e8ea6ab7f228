"""
docarchive Logging — Structured JSONL event files beside standard logging.

Implements:
- FileLogger: Per-event-type, per-category log files (daily rotation)
- Log entry builders for hierarchy data quality, visibility decisions,
  store requests and admin mutations
- Retention cleanup of old daily files

Layout: {log_dir}/{object_type}/{category}/{YYYY-MM-DD}.jsonl
"""

from __future__ import annotations

import json
import logging
import threading
from collections import defaultdict
from datetime import date, datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

logger = logging.getLogger("docarchive.engine.logging")

# Valid object types and their permitted categories
OBJECT_TYPE_CATEGORIES = {
    "categories": ["data_quality", "execution"],
    "documents": ["execution", "security"],
    "visibility": ["security"],
    "store": ["execution", "performance"],
    "admin": ["execution", "security"],
    "system": ["execution"],
}


class LogEntry:
    """A structured log entry destined for a specific file."""

    __slots__ = ("object_type", "category", "data")

    def __init__(self, object_type: str, category: str, data: Dict[str, Any]):
        self.object_type = object_type
        self.category = category
        self.data = data

    def to_json(self) -> str:
        return json.dumps(self.data, default=str, separators=(",", ":"))


class FileLogger:
    """
    Writes structured JSON log entries to per-object-type, per-category files.
    Files rotate daily: logs/{object_type}/{category}/{YYYY-MM-DD}.jsonl

    Thread-safe — uses a lock per file path.
    """

    def __init__(self, log_dir: str = ".docarchive/logs"):
        self._log_dir = Path(log_dir)
        self._file_locks: Dict[str, threading.Lock] = defaultdict(threading.Lock)
        self._ensure_directories()

    def _ensure_directories(self) -> None:
        for obj_type, categories in OBJECT_TYPE_CATEGORIES.items():
            for cat in categories:
                (self._log_dir / obj_type / cat).mkdir(parents=True, exist_ok=True)

    def write(self, entry: LogEntry) -> None:
        """Write a single log entry to the appropriate file."""
        file_path = self._resolve_path(entry.object_type, entry.category)
        with self._file_locks[str(file_path)]:
            with open(file_path, "a", encoding="utf-8") as f:
                f.write(entry.to_json())
                f.write("\n")

    def _resolve_path(self, object_type: str, category: str) -> Path:
        today = date.today().isoformat()
        return self._log_dir / object_type / category / f"{today}.jsonl"

    @property
    def log_dir(self) -> Path:
        return self._log_dir

    def read(
        self,
        object_type: str,
        category: str,
        day: Optional[date] = None,
        filters: Optional[Dict[str, Any]] = None,
    ) -> List[Dict[str, Any]]:
        """Read the entries of one daily file, optionally filtered by exact key match."""
        day = day or date.today()
        path = self._log_dir / object_type / category / f"{day.isoformat()}.jsonl"
        if not path.exists():
            return []

        entries: List[Dict[str, Any]] = []
        with open(path, "r", encoding="utf-8") as f:
            for line in f:
                line = line.strip()
                if not line:
                    continue
                try:
                    data = json.loads(line)
                except json.JSONDecodeError:
                    continue
                if filters and not all(data.get(k) == v for k, v in filters.items()):
                    continue
                entries.append(data)
        return entries

    def cleanup(self, retention_days: int) -> int:
        """Delete daily files older than retention_days. Returns files removed."""
        cutoff = date.today() - timedelta(days=retention_days)
        removed = 0
        for path in self._log_dir.glob("*/*/*.jsonl"):
            try:
                file_date = date.fromisoformat(path.stem)
            except ValueError:
                continue
            if file_date < cutoff:
                path.unlink()
                removed += 1
        if removed:
            logger.info(f"Removed {removed} log file(s) older than {retention_days} days")
        return removed


# ---------------------------------------------------------------------------
# Log Entry Builders
# ---------------------------------------------------------------------------

def _base_entry(
    event: str,
    level: str,
    object_ref: str,
    **extra: Any,
) -> Dict[str, Any]:
    """Build a base log entry with common fields."""
    entry: Dict[str, Any] = {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "level": level,
        "event": event,
        "object_ref": object_ref,
    }
    entry.update(extra)
    return entry


def log_hierarchy_issue(
    kind: str,
    category_id: int,
    parent_id: Optional[int] = None,
    details: Optional[Dict[str, Any]] = None,
) -> LogEntry:
    """Build a data-quality entry for an orphan, self-parent, cycle or duplicate."""
    data = _base_entry(
        event=f"hierarchy_{kind}",
        level="WARNING",
        object_ref=f"category.{category_id}",
        kind=kind,
        category_id=category_id,
        parent_id=parent_id,
    )
    if details:
        data["details"] = details
    return LogEntry("categories", "data_quality", data)


def log_security_event(
    event: str,
    role: Optional[str],
    member_type: Optional[str],
    scope: Optional[str],
    user_id: Optional[Any] = None,
    level: str = "WARNING",
) -> LogEntry:
    """Build a visibility resolution entry (fail-closed decisions, refusals)."""
    data = _base_entry(
        event=event,
        level=level,
        object_ref="visibility",
        role=role,
        member_type=member_type,
        scope=scope,
    )
    if user_id is not None:
        data["user_id"] = user_id
    return LogEntry("visibility", "security", data)


def log_store_request(
    method: str,
    path: str,
    status_code: int,
    duration_ms: float,
    attempts: int = 1,
    error: Optional[str] = None,
) -> LogEntry:
    """Build a backing store request entry."""
    data = _base_entry(
        event="store_request",
        level="INFO" if 0 < status_code < 400 else "ERROR",
        object_ref=f"store.{path}",
        method=method,
        path=path,
        status_code=status_code,
        duration_ms=round(duration_ms, 2),
        attempts=attempts,
    )
    if error:
        data["error"] = error
    return LogEntry("store", "execution", data)


def log_admin_mutation(
    operation: str,
    record_type: str,
    record_id: Optional[int],
    success: bool,
    user_id: Optional[Any] = None,
    error: Optional[str] = None,
) -> LogEntry:
    """Build an admin mutation entry (category/document create, update, delete)."""
    data = _base_entry(
        event=f"{record_type}_{operation}",
        level="INFO" if success else "ERROR",
        object_ref=f"{record_type}.{record_id}" if record_id is not None else record_type,
        operation=operation,
        record_type=record_type,
        record_id=record_id,
        success=success,
    )
    if user_id is not None:
        data["user_id"] = user_id
    if error:
        data["error"] = error
    return LogEntry("admin", "execution", data)


# ---------------------------------------------------------------------------
# Module-level logger
# ---------------------------------------------------------------------------

_file_logger: Optional[FileLogger] = None


def init_logging(log_dir: str = ".docarchive/logs", retention_days: Optional[int] = None) -> FileLogger:
    """Initialize the global file logger and apply retention."""
    global _file_logger
    _file_logger = FileLogger(log_dir=log_dir)
    if retention_days is not None:
        _file_logger.cleanup(retention_days)
    return _file_logger


def get_file_logger() -> Optional[FileLogger]:
    """Get the global file logger."""
    return _file_logger


def log(entry: LogEntry) -> bool:
    """Write a log entry through the global file logger."""
    if _file_logger is None:
        logger.warning(f"File logger not initialized, {entry.data.get('event')} entry dropped")
        return False
    try:
        _file_logger.write(entry)
    except OSError as e:
        logger.error(f"Failed to write log entry: {e}")
        return False
    return True


def shutdown_logging() -> None:
    """Detach the global file logger."""
    global _file_logger
    _file_logger = None
