"""
Audit logger strategies.

Implements:
- AuditLogger interface (log never raises back to the caller)
- FileSink: buffered, debounced writes to one log file per day
- StoreSink: one row per event in the logs table
- NullSink: discards everything
- build_audit_logger: picks a strategy from configuration
"""
import asyncio
import json
import os
import threading
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, List, Optional

from pydantic_core import to_jsonable_python
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from assetguard.core import config
from assetguard.core.exceptions import ValidationError
from assetguard.features.audit.models import LogAction, LogEntry, LogEvent
from assetguard.utils import get_logger


log = get_logger(__name__)


class AuditLogger(ABC):
    """
    Event sink for permission-relevant mutations.

    log() must never raise: a failing sink reports through the module logger
    and the business operation carries on.
    """

    @abstractmethod
    async def log(self, event: LogEvent) -> None:
        ...

    async def close(self) -> None:
        """Release resources; flush pending events where the sink buffers."""
        return None


class NullSink(AuditLogger):
    async def log(self, event: LogEvent) -> None:
        return None


# ============================================================================
# Buffered file sink
# ============================================================================

def format_line(event: LogEvent) -> str:
    """
    Render one event as a log file line.

    [timestamp],[level],[actor],[action],[model],[json data],[request id]
    """
    timestamp = event.timestamp
    if timestamp.tzinfo is None:
        timestamp = timestamp.replace(tzinfo=timezone.utc)
    # Values pydantic cannot serialize are written as their repr
    data = json.dumps(to_jsonable_python(event.data, fallback=repr), ensure_ascii=False)
    parts = [
        f"[{timestamp.isoformat()}]",
        f"[{event.level}]",
        f"[{event.actor}]",
        f"[{event.action}]",
        f"[{event.model}]",
        f"[{data}]",
        f"[{event.request_id}]" if event.request_id else "[]",
    ]
    return ",".join(parts)


class FileSink(AuditLogger):
    """
    File-based logger with batching and daily rotation.

    The first event enqueued while idle arms a single timer. When it fires the
    whole queue is swapped out under the lock and appended to the day's file.
    Events that arrive while a drain is writing stay queued until the next
    enqueue arms a new timer. Drains are serialized so batches reach the file
    in the order they were taken off the queue.

    Args:
        directory: base directory for log files
        prefix: filename prefix, e.g. "application" -> application-2025-01-31.log
        daily: roll files by UTC date
        flush_delay: debounce delay in seconds
    """

    def __init__(
        self,
        directory: str = config.AUDIT_LOG_DIR,
        prefix: str = config.AUDIT_LOG_PREFIX,
        daily: bool = True,
        flush_delay: float = config.AUDIT_FLUSH_DELAY_MS / 1000,
    ):
        self.directory = directory
        self.prefix = prefix
        self.daily = daily
        self.flush_delay = flush_delay
        self._buffer: List[LogEvent] = []
        self._lock = threading.Lock()
        self._write_lock = threading.Lock()
        self._timer: Optional[threading.Timer] = None
        self._armed = False

    async def log(self, event: LogEvent) -> None:
        try:
            self.enqueue(event)
        except Exception:
            log.exception("[FileSink] Failed to enqueue audit event")

    def enqueue(self, event: LogEvent) -> None:
        """Queue an event; callable from any thread."""
        with self._lock:
            self._buffer.append(event)
            if self._armed:
                return
            self._armed = True
            self._timer = threading.Timer(self.flush_delay, self._on_timer)
            self._timer.daemon = True
            self._timer.start()

    def file_path(self, now: Optional[datetime] = None) -> str:
        suffix = ""
        if self.daily:
            now = now or datetime.now(timezone.utc)
            suffix = f"-{now.date().isoformat()}"
        return os.path.join(self.directory, f"{self.prefix}{suffix}.log")

    def _on_timer(self) -> None:
        try:
            self.flush()
        except Exception:
            log.exception("[FileSink] Failed to flush buffer")

    def _drain(self) -> List[LogEvent]:
        with self._lock:
            entries, self._buffer = self._buffer, []
        return entries

    def flush(self) -> int:
        """
        Write everything queued so far and disarm the timer.

        Returns:
            Number of events written
        """
        with self._write_lock:
            entries = self._drain()
            try:
                lines = self._format_all(entries)
                if lines:
                    self._write_lines(lines)
                return len(lines)
            finally:
                with self._lock:
                    self._armed = False
                    self._timer = None

    def _format_all(self, entries: List[LogEvent]) -> List[str]:
        """One line per event; an event that cannot be rendered is reported and skipped."""
        lines = []
        for evt in entries:
            try:
                lines.append(format_line(evt))
            except Exception:
                log.exception("[FileSink] Dropping unformattable audit event %s on %s", evt.action, evt.model)
        return lines

    def _write_lines(self, lines: List[str]) -> None:
        path = self.file_path()
        os.makedirs(os.path.dirname(path) or ".", exist_ok=True)
        with open(path, "a", encoding="utf-8") as fh:
            fh.write("\n".join(lines) + "\n")

    def pending(self) -> int:
        with self._lock:
            return len(self._buffer)

    async def close(self) -> None:
        with self._lock:
            timer = self._timer
        if timer is not None:
            timer.cancel()
        try:
            written = await asyncio.to_thread(self.flush)
            if written:
                log.info("[FileSink] Flushed %d audit events on shutdown", written)
        except Exception:
            log.exception("[FileSink] Failed to flush buffer on shutdown")


# ============================================================================
# Durable store sink
# ============================================================================

class StoreSink(AuditLogger):
    """
    Writes each event as one row of the logs table, in its own session.

    Only the CREATE, UPDATE, DELETE, LOGIN and LOGOUT vocabulary is stored;
    anything else is reported and dropped.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        database_name: str = config.DATABASE_NAME,
    ):
        self.session_factory = session_factory
        self.database_name = database_name

    def to_entry(self, event: LogEvent) -> Optional[LogEntry]:
        try:
            action = LogAction(event.action.upper())
        except ValueError:
            log.error("[StoreSink] Dropping audit event with unsupported action %r on %s", event.action, event.model)
            return None

        parameters = to_jsonable_python(event.data)
        if parameters is not None and not isinstance(parameters, dict):
            parameters = {"value": parameters}
        if event.request_id:
            parameters = {**(parameters or {}), "request_id": event.request_id}

        return LogEntry(
            action=action,
            database_name=self.database_name,
            table_name=event.model,
            record_id=event.record_id,
            user_id=event.actor,
            parameters=parameters,
            timestamp=event.timestamp,
        )

    async def log(self, event: LogEvent) -> None:
        try:
            entry = self.to_entry(event)
            if entry is None:
                return
            async with self.session_factory() as session:
                session.add(entry)
                await session.commit()
        except Exception:
            log.exception("[StoreSink] Failed to write audit event %s on %s", event.action, event.model)


async def emit(
    audit: AuditLogger,
    action: str,
    model: str,
    actor: str = "system",
    data: Any = None,
    record_id: Any = None,
    level: str = "INFO",
    request_id: Optional[str] = None,
) -> None:
    """Build a LogEvent and hand it to the sink. Never raises."""
    try:
        event = LogEvent(
            level=level,
            actor=actor,
            action=action,
            model=model,
            data=data,
            record_id=str(record_id) if record_id is not None else None,
            request_id=request_id,
        )
    except Exception:
        log.exception("Failed to build audit event %s on %s", action, model)
        return
    try:
        await audit.log(event)
    except Exception:
        log.exception("Audit sink %s raised for %s on %s", type(audit).__name__, action, model)


def build_audit_logger(
    kind: str = config.AUDIT_SINK,
    session_factory: Optional[async_sessionmaker[AsyncSession]] = None,
    directory: str = config.AUDIT_LOG_DIR,
) -> AuditLogger:
    """
    Select the audit strategy once at process start.

    Raises:
        ValidationError: unknown kind, or "store" without a session factory
    """
    kind = kind.lower()
    if kind == "file":
        return FileSink(directory=directory)
    if kind == "store":
        if session_factory is None:
            raise ValidationError("Store audit sink needs a session factory")
        return StoreSink(session_factory)
    if kind == "none":
        return NullSink()
    raise ValidationError(f"Unknown audit sink: {kind}", details={"AUDIT_SINK": kind})
