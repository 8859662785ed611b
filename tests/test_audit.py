"""
Tests for the audit logger strategies.
"""
import asyncio
import json
import threading
import time
from collections import Counter
from datetime import datetime, timezone

import pytest
from sqlalchemy import select

from assetguard.core.exceptions import ValidationError
from assetguard.features.audit import sinks
from assetguard.features.audit.models import LogAction, LogEntry, LogEvent
from assetguard.features.audit.sinks import (
    AuditLogger,
    FileSink,
    NullSink,
    StoreSink,
    build_audit_logger,
    emit,
    format_line,
)


async def wait_until(predicate, timeout: float = 3.0):
    deadline = asyncio.get_running_loop().time() + timeout
    while not predicate():
        if asyncio.get_running_loop().time() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0.02)


def event(action="CREATE", model="roles", **kwargs) -> LogEvent:
    return LogEvent(action=action, model=model, **kwargs)


class TestFormatLine:

    def test_fields_in_order(self):
        evt = LogEvent(
            timestamp=datetime(2025, 1, 31, 8, 30, tzinfo=timezone.utc),
            level="INFO",
            actor="alice",
            action="CREATE",
            model="role_permissions",
            data={"role_id": 1, "permission_id": 2},
            request_id="req-1",
        )
        assert format_line(evt) == (
            '[2025-01-31T08:30:00+00:00],[INFO],[alice],[CREATE],[role_permissions],'
            '[{"role_id": 1, "permission_id": 2}],[req-1]'
        )

    def test_missing_request_id_renders_empty(self):
        line = format_line(event(data=None))
        assert line.endswith(",[null],[]")


class TestFileSink:

    async def test_burst_is_written_in_one_batch(self, tmp_path):
        sink = FileSink(directory=str(tmp_path), prefix="application", flush_delay=0.2)
        batches = []
        write_to_disk = sink._write_lines

        def recording_write(lines):
            batches.append(list(lines))
            write_to_disk(lines)

        sink._write_lines = recording_write

        for i in range(5):
            await sink.log(event(data={"n": i}))
        assert sink.pending() == 5

        await wait_until(lambda: len(batches) == 1 and sink.pending() == 0)

        assert len(batches[0]) == 5
        assert [json.loads(line.split(",[")[5][:-1])["n"] for line in batches[0]] == [0, 1, 2, 3, 4]

        with open(sink.file_path(), encoding="utf-8") as fh:
            assert len(fh.read().splitlines()) == 5

    async def test_file_name_rolls_by_date(self, tmp_path):
        sink = FileSink(directory=str(tmp_path), prefix="application")
        path = sink.file_path(datetime(2025, 1, 31, 23, 59, tzinfo=timezone.utc))
        assert path == str(tmp_path / "application-2025-01-31.log")

        undated = FileSink(directory=str(tmp_path), prefix="audit", daily=False)
        assert undated.file_path() == str(tmp_path / "audit.log")

    async def test_close_flushes_pending_events(self, tmp_path):
        sink = FileSink(directory=str(tmp_path), prefix="application", flush_delay=60)
        await sink.log(event())
        await sink.log(event(action="DELETE"))

        await sink.close()

        assert sink.pending() == 0
        with open(sink.file_path(), encoding="utf-8") as fh:
            lines = fh.read().splitlines()
        assert [line.split(",")[3] for line in lines] == ["[CREATE]", "[DELETE]"]

    async def test_later_events_arm_a_new_timer(self, tmp_path):
        sink = FileSink(directory=str(tmp_path), prefix="application", flush_delay=0.05)
        await sink.log(event())
        await wait_until(lambda: sink.pending() == 0 and not sink._armed)

        await sink.log(event(action="UPDATE"))
        await wait_until(lambda: sink.pending() == 0 and not sink._armed)

        with open(sink.file_path(), encoding="utf-8") as fh:
            assert len(fh.read().splitlines()) == 2

    async def test_unserializable_data_does_not_lose_the_batch(self, tmp_path):
        sink = FileSink(directory=str(tmp_path), prefix="application", flush_delay=60)
        for i in range(4):
            await sink.log(event(data={"n": i}))
        await sink.log(event(data={"obj": object()}))

        await sink.close()

        with open(sink.file_path(), encoding="utf-8") as fh:
            lines = fh.read().splitlines()
        assert len(lines) == 5
        assert "<object object at" in lines[4]

    async def test_unformattable_event_is_skipped(self, tmp_path, monkeypatch):
        render = sinks.format_line

        def picky_format(evt):
            if evt.model == "broken":
                raise ValueError("cannot render")
            return render(evt)

        monkeypatch.setattr(sinks, "format_line", picky_format)
        sink = FileSink(directory=str(tmp_path), prefix="application", flush_delay=60)
        await sink.log(event(model="roles"))
        await sink.log(event(model="broken"))
        await sink.log(event(model="assets"))

        await sink.close()

        with open(sink.file_path(), encoding="utf-8") as fh:
            models = [line.split(",")[4] for line in fh.read().splitlines()]
        assert models == ["[roles]", "[assets]"]

    async def test_concurrent_enqueues_are_written_exactly_once(self, tmp_path):
        sink = FileSink(directory=str(tmp_path), prefix="application", flush_delay=0.005)
        batches = []
        write_to_disk = sink._write_lines

        def recording_write(lines):
            batches.append(len(lines))
            write_to_disk(lines)

        sink._write_lines = recording_write
        producers, per_producer = 4, 250

        def produce(worker: int):
            for n in range(per_producer):
                sink.enqueue(event(data={"worker": worker, "n": n}))
                if n % 25 == 0:
                    time.sleep(0.01)

        threads = [threading.Thread(target=produce, args=(w,)) for w in range(producers)]
        for thread in threads:
            thread.start()
        await asyncio.to_thread(lambda: [thread.join() for thread in threads])
        await sink.close()

        with open(sink.file_path(), encoding="utf-8") as fh:
            seen = Counter(
                (data["worker"], data["n"])
                for data in (json.loads(line.split(",[")[5][:-1]) for line in fh.read().splitlines())
            )
        assert len(seen) == producers * per_producer
        assert set(seen.values()) == {1}
        assert len(batches) > 1
        assert sum(batches) == producers * per_producer

    async def test_write_failure_is_swallowed(self, tmp_path):
        sink = FileSink(directory=str(tmp_path), prefix="application", flush_delay=60)

        def broken(_lines):
            raise OSError("disk full")

        sink._write_lines = broken
        await sink.log(event())

        await sink.close()
        assert sink.pending() == 0
        assert not sink._armed


class TestStoreSink:

    async def test_event_becomes_a_row(self, session_factory):
        sink = StoreSink(session_factory, database_name="assetguard")

        await sink.log(event(
            action="CREATE",
            model="user_roles",
            actor="alice",
            data={"user_id": "u1", "role_id": 3},
            record_id="7",
            request_id="req-9",
        ))

        async with session_factory() as session:
            rows = (await session.execute(select(LogEntry))).scalars().all()
        assert len(rows) == 1
        row = rows[0]
        assert row.action is LogAction.CREATE
        assert row.database_name == "assetguard"
        assert row.table_name == "user_roles"
        assert row.user_id == "alice"
        assert row.record_id == "7"
        assert row.parameters == {"user_id": "u1", "role_id": 3, "request_id": "req-9"}

    async def test_scalar_data_is_wrapped(self, session_factory):
        entry = StoreSink(session_factory).to_entry(event(action="update", data=5))
        assert entry.action is LogAction.UPDATE
        assert entry.parameters == {"value": 5}

    async def test_unsupported_action_is_dropped(self, session_factory):
        sink = StoreSink(session_factory)
        await sink.log(event(action="PURGE"))

        async with session_factory() as session:
            assert (await session.execute(select(LogEntry))).scalars().all() == []

    async def test_store_failure_is_swallowed(self):
        def broken_factory():
            raise RuntimeError("database unavailable")

        await StoreSink(broken_factory).log(event())


class RaisingSink(AuditLogger):
    async def log(self, event: LogEvent) -> None:
        raise RuntimeError("sink down")


class TestEmitAndFactory:

    async def test_emit_never_raises(self):
        await emit(RaisingSink(), "CREATE", "roles", data={"name": "x"})

    async def test_emit_builds_event(self, audit):
        await emit(audit, "DELETE", "roles", actor="bob", record_id=12, level="WARN")
        evt = audit.events[0]
        assert (evt.action, evt.model, evt.actor, evt.level) == ("DELETE", "roles", "bob", "WARN")
        assert evt.record_id == "12"

    async def test_emit_with_invalid_level_is_reported_not_raised(self, audit):
        await emit(audit, "CREATE", "roles", level="DEBUG")
        assert audit.events == []

    async def test_build_audit_logger(self, tmp_path, session_factory):
        assert isinstance(build_audit_logger("file", directory=str(tmp_path)), FileSink)
        assert isinstance(build_audit_logger("STORE", session_factory=session_factory), StoreSink)
        assert isinstance(build_audit_logger("none"), NullSink)

    def test_build_audit_logger_rejects_bad_configuration(self):
        with pytest.raises(ValidationError):
            build_audit_logger("syslog")
        with pytest.raises(ValidationError):
            build_audit_logger("store")
