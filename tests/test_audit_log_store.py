"""
Tests for reading the durable audit log back.
"""
from datetime import datetime, timedelta, timezone

import pytest

from assetguard.core.exceptions import NotFoundError, ValidationError
from assetguard.features.audit.models import LogAction, LogEntry
from assetguard.features.audit.service import LogStore
from assetguard.features.audit.sinks import StoreSink, emit


START = datetime(2025, 1, 31, 9, 0, tzinfo=timezone.utc)


@pytest.fixture
async def entries(db):
    rows = [
        (LogAction.CREATE, "roles", "alice"),
        (LogAction.DELETE, "roles", "alice"),
        (LogAction.CREATE, "user_roles", "bob"),
        (LogAction.LOGIN, "sessions", "bob"),
        (LogAction.DELETE, "user_roles", "alice"),
    ]
    for minute, (action, table_name, user_id) in enumerate(rows):
        db.add(LogEntry(
            action=action,
            database_name="assetguard",
            table_name=table_name,
            user_id=user_id,
            parameters={"minute": minute},
            timestamp=START + timedelta(minutes=minute),
        ))
    await db.commit()
    return rows


class TestLogStore:

    async def test_newest_first(self, db, entries):
        page = await LogStore(db).list_logs()
        assert page.total == len(entries)
        assert [row.parameters["minute"] for row in page.data] == [4, 3, 2, 1, 0]

    async def test_filters_combine(self, db, entries):
        logs = LogStore(db)

        deletes = await logs.list_logs(action="delete")
        assert [(row.table_name, row.user_id) for row in deletes.data] == [("user_roles", "alice"), ("roles", "alice")]

        bob_user_roles = await logs.list_logs(table_name="user_roles", user_id="bob")
        assert bob_user_roles.total == 1
        assert bob_user_roles.data[0].action is LogAction.CREATE

        other_db = await logs.list_logs(database_name="elsewhere")
        assert other_db.total == 0

    async def test_pagination(self, db, entries):
        page = await LogStore(db).list_logs(page=2, per_page=2)
        assert page.total == 5
        assert [row.parameters["minute"] for row in page.data] == [2, 1]

    async def test_invalid_arguments(self, db):
        logs = LogStore(db)
        with pytest.raises(ValidationError):
            await logs.list_logs(action="PURGE")
        with pytest.raises(ValidationError):
            await logs.list_logs(per_page=0)

    async def test_get_log(self, db, entries):
        logs = LogStore(db)
        newest = (await logs.list_logs(per_page=1)).data[0]

        assert (await logs.get_log(str(newest.id))).table_name == "user_roles"
        with pytest.raises(NotFoundError):
            await logs.get_log(9999)
        with pytest.raises(ValidationError):
            await logs.get_log("latest")

    async def test_reads_what_the_store_sink_wrote(self, db, session_factory):
        sink = StoreSink(session_factory, database_name="assetguard")
        await emit(sink, "UPDATE", "roles", actor="carol", data={"name": "editor"}, record_id=3)

        page = await LogStore(db).list_logs(user_id="carol")
        assert page.total == 1
        assert page.data[0].record_id == "3"
        assert page.data[0].parameters == {"name": "editor"}
