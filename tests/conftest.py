"""
Pytest configuration and shared fixtures.

Every test gets its own file-backed SQLite database under tmp_path so that
concurrent sessions really compete for the same rows.
"""
from typing import List

import pytest
import pytest_asyncio

from assetguard.core.database.engine import create_engine, create_session_factory, init_db
from assetguard.features.audit.models import LogEvent
from assetguard.features.audit.sinks import AuditLogger
from assetguard.features.catalog.service import CatalogService
from assetguard.features.users.models import User


class RecordingSink(AuditLogger):
    """Keeps every event in memory for assertions."""

    def __init__(self):
        self.events: List[LogEvent] = []

    async def log(self, event: LogEvent) -> None:
        self.events.append(event)

    def actions(self) -> List[tuple[str, str, str]]:
        return [(evt.level, evt.action, evt.model) for evt in self.events]


@pytest_asyncio.fixture
async def engine(tmp_path):
    test_engine = create_engine(f"sqlite+aiosqlite:///{tmp_path / 'assetguard.db'}")
    await init_db(test_engine)
    yield test_engine
    await test_engine.dispose()


@pytest.fixture
def session_factory(engine):
    return create_session_factory(engine)


@pytest_asyncio.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def audit() -> RecordingSink:
    return RecordingSink()


@pytest.fixture
def make_user(db):
    """Factory creating users the way the authentication flow would."""
    counter = {"n": 0}

    async def _make_user(email: str | None = None) -> str:
        counter["n"] += 1
        user = User(email=email or f"user{counter['n']}@example.com", name=f"User {counter['n']}")
        db.add(user)
        await db.commit()
        return user.id

    return _make_user


@pytest.fixture
def make_permission(db):
    """Factory returning the id of the permission for "resource:action", creating what is missing."""

    async def _make_permission(resource: str, action: str) -> int:
        catalog = CatalogService(db)
        operation = next((op for op in await catalog.list_operations() if op.name == action), None)
        if operation is None:
            operation = await catalog.create_operation(action)
        operation_id = operation.id

        asset = next((a for a in await catalog.list_assets() if a.table_name == resource), None)
        if asset is None:
            asset = await catalog.create_asset(resource)
        asset_id = asset.id

        permission = await catalog.create_permission(operation_id, asset_id)
        return permission.id

    return _make_permission
