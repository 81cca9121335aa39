"""
Acervo Event Log — Structured JSONL event files fed by a background queue.

Alongside the regular ``logging`` loggers, catalog events (upload phases,
storage calls, record writes) are recorded as one JSON object per line in:

    {log_dir}/{object_type}/{category}/{YYYY-MM-DD}.jsonl

Producers push entries onto ``AsyncLogQueue`` without blocking; a daemon
thread flushes them to ``FileLogger`` every flush interval or batch size,
whichever comes first.
"""

from __future__ import annotations

import json
import logging
import threading
import time
from collections import defaultdict
from datetime import date, datetime, timezone
from pathlib import Path
from queue import Empty, Full, Queue
from typing import Any, Dict, List, Optional

logger = logging.getLogger("acervo.engine.logging")

OBJECT_TYPE_CATEGORIES = {
    "uploads": ["execution", "performance"],
    "storage": ["execution", "performance"],
    "records": ["execution"],
    "system": ["execution"],
}


class LogEntry:
    """A structured event destined for one object_type/category file."""

    __slots__ = ("object_type", "category", "data")

    def __init__(self, object_type: str, category: str, data: Dict[str, Any]):
        self.object_type = object_type
        self.category = category
        self.data = data

    def to_json(self) -> str:
        return json.dumps(self.data, default=str, separators=(",", ":"), ensure_ascii=False)


class FileLogger:
    """
    Appends entries to daily JSONL files, one lock per file path.
    """

    def __init__(self, log_dir: str = "logs"):
        self._log_dir = Path(log_dir)
        self._file_locks: Dict[str, threading.Lock] = defaultdict(threading.Lock)
        for obj_type, categories in OBJECT_TYPE_CATEGORIES.items():
            for cat in categories:
                (self._log_dir / obj_type / cat).mkdir(parents=True, exist_ok=True)

    @property
    def log_dir(self) -> Path:
        return self._log_dir

    def write(self, entry: LogEntry) -> None:
        self.write_batch([entry])

    def write_batch(self, entries: List[LogEntry]) -> None:
        """Write entries grouped by destination file."""
        grouped: Dict[str, List[LogEntry]] = defaultdict(list)
        for entry in entries:
            grouped[str(self.path_for(entry.object_type, entry.category))].append(entry)

        for file_path, batch in grouped.items():
            with self._file_locks[file_path]:
                with open(file_path, "a", encoding="utf-8") as f:
                    for entry in batch:
                        f.write(entry.to_json())
                        f.write("\n")

    def path_for(self, object_type: str, category: str, day: Optional[date] = None) -> Path:
        day = day or date.today()
        return self._log_dir / object_type / category / f"{day.isoformat()}.jsonl"

    def read_day(
        self,
        object_type: str,
        category: str,
        day: Optional[date] = None,
    ) -> List[Dict[str, Any]]:
        """Read back one day's entries; unreadable lines are skipped."""
        path = self.path_for(object_type, category, day)
        if not path.exists():
            return []
        entries: List[Dict[str, Any]] = []
        with open(path, "r", encoding="utf-8") as f:
            for line in f:
                line = line.strip()
                if not line:
                    continue
                try:
                    entries.append(json.loads(line))
                except json.JSONDecodeError:
                    continue
        return entries


class AsyncLogQueue:
    """
    Bounded in-memory queue drained by a background flush thread.
    Pushing never blocks; entries are dropped (and counted) when the queue is full.
    """

    def __init__(
        self,
        file_logger: FileLogger,
        flush_interval_ms: int = 100,
        flush_batch_size: int = 50,
        max_queue_size: int = 10000,
    ):
        self._logger = file_logger
        self._flush_interval = flush_interval_ms / 1000.0
        self._flush_batch_size = flush_batch_size
        self._queue: Queue[LogEntry] = Queue(maxsize=max_queue_size)
        self._running = False
        self._flush_thread: Optional[threading.Thread] = None
        self._dropped_count = 0

    def start(self) -> None:
        if self._running:
            return
        self._running = True
        self._flush_thread = threading.Thread(
            target=self._flush_loop,
            name="acervo-log-flush",
            daemon=True,
        )
        self._flush_thread.start()
        logger.info("Event log queue started")

    def stop(self, timeout: float = 5.0) -> None:
        """Stop the flush thread and drain whatever is left."""
        self._running = False
        if self._flush_thread and self._flush_thread.is_alive():
            self._flush_thread.join(timeout=timeout)
        self._drain()
        logger.info(f"Event log queue stopped (dropped: {self._dropped_count})")

    def push(self, entry: LogEntry) -> bool:
        try:
            self._queue.put_nowait(entry)
            return True
        except Full:
            self._dropped_count += 1
            return False

    def _flush_loop(self) -> None:
        while self._running:
            batch = self._collect_batch()
            if batch:
                try:
                    self._logger.write_batch(batch)
                except OSError as e:
                    logger.error(f"Event log flush error: {e}")
            else:
                time.sleep(self._flush_interval)

    def _collect_batch(self) -> List[LogEntry]:
        batch: List[LogEntry] = []
        deadline = time.monotonic() + self._flush_interval

        while len(batch) < self._flush_batch_size:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                break
            try:
                batch.append(self._queue.get(timeout=min(remaining, 0.01)))
            except Empty:
                if batch:
                    break
        return batch

    def _drain(self) -> None:
        batch: List[LogEntry] = []
        while True:
            try:
                batch.append(self._queue.get_nowait())
            except Empty:
                break
        if batch:
            try:
                self._logger.write_batch(batch)
            except OSError as e:
                logger.error(f"Event log drain error: {e}")

    @property
    def pending_count(self) -> int:
        return self._queue.qsize()

    @property
    def dropped_count(self) -> int:
        return self._dropped_count


# ---------------------------------------------------------------------------
# Entry builders
# ---------------------------------------------------------------------------

def _base_entry(event: str, level: str, **extra: Any) -> Dict[str, Any]:
    entry: Dict[str, Any] = {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "level": level,
        "event": event,
    }
    entry.update({k: v for k, v in extra.items() if v is not None})
    return entry


def log_upload_event(
    event: str,
    file_path: Optional[str],
    state: str,
    original_name: Optional[str] = None,
    size: Optional[int] = None,
    duration_ms: Optional[float] = None,
    error: Optional[str] = None,
) -> LogEntry:
    """Upload phase transition (upload_requested / upload_confirmed / upload_failed)."""
    data = _base_entry(
        event=event,
        level="ERROR" if error else "INFO",
        file_path=file_path,
        state=state,
        original_name=original_name,
        size=size,
        duration_ms=duration_ms,
        error=error,
    )
    return LogEntry("uploads", "execution", data)


def log_storage_call(
    operation: str,
    url: str,
    status_code: Optional[int],
    duration_ms: float,
    success: bool,
    error: Optional[str] = None,
) -> LogEntry:
    data = _base_entry(
        event="storage_called",
        level="INFO" if success else "ERROR",
        operation=operation,
        url=url,
        status_code=status_code,
        duration_ms=round(duration_ms, 2),
        success=success,
        error=error,
    )
    return LogEntry("storage", "execution", data)


def log_storage_performance(operation: str, duration_ms: float, status_code: Optional[int] = None) -> LogEntry:
    """Build a storage call performance log entry."""
    data = _base_entry(
        event="storage_performance",
        level="INFO",
        operation=operation,
        duration_ms=round(duration_ms, 2),
        status_code=status_code,
    )
    return LogEntry("storage", "performance", data)


def log_upload_performance(file_path: str, duration_ms: float, size: Optional[int] = None) -> LogEntry:
    """Build an upload confirmation performance log entry."""
    data = _base_entry(
        event="upload_performance",
        level="INFO",
        file_path=file_path,
        duration_ms=round(duration_ms, 2),
        size=size,
    )
    return LogEntry("uploads", "performance", data)


def log_record_operation(
    operation: str,
    record_id: str,
    total_records: Optional[int] = None,
    fields_changed: Optional[List[str]] = None,
) -> LogEntry:
    data = _base_entry(
        event=f"record_{operation}",
        level="INFO",
        operation=operation,
        record_id=record_id,
        total_records=total_records,
        fields_changed=fields_changed or None,
    )
    return LogEntry("records", "execution", data)


def log_system_event(
    event: str,
    level: str = "INFO",
    details: Optional[Dict[str, Any]] = None,
) -> LogEntry:
    """Startup, shutdown, config changes."""
    data = _base_entry(event=event, level=level, details=details)
    return LogEntry("system", "execution", data)


# ---------------------------------------------------------------------------
# Global queue
# ---------------------------------------------------------------------------

_global_queue: Optional[AsyncLogQueue] = None


def init_logging(
    log_dir: str = "logs",
    flush_interval_ms: int = 100,
    flush_batch_size: int = 50,
    max_queue_size: int = 10000,
) -> AsyncLogQueue:
    """Initialize and start the global event log queue."""
    global _global_queue
    _global_queue = AsyncLogQueue(
        file_logger=FileLogger(log_dir=log_dir),
        flush_interval_ms=flush_interval_ms,
        flush_batch_size=flush_batch_size,
        max_queue_size=max_queue_size,
    )
    _global_queue.start()
    return _global_queue


def get_log_queue() -> Optional[AsyncLogQueue]:
    return _global_queue


def log(entry: LogEntry) -> bool:
    """Push an entry to the global queue. Dropped when no queue is running."""
    if _global_queue is None:
        logger.debug(f"Event log not initialized, dropped {entry.data.get('event')}")
        return False
    return _global_queue.push(entry)


def shutdown_logging() -> None:
    """Flush and stop the global queue."""
    global _global_queue
    if _global_queue:
        _global_queue.stop()
        _global_queue = None
