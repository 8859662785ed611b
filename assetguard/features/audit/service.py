"""
Read side of the durable audit log.

Rows are written by StoreSink only; this service never inserts, updates or
deletes them.
"""
from typing import Any, Optional
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from assetguard.core.database.repository import Page, Repository
from assetguard.core.exceptions import NotFoundError, ValidationError
from assetguard.features.audit.models import LogAction, LogEntry
from assetguard.utils import parse_id


DEFAULT_PER_PAGE = 20


class LogStore:
    """
    Usage:
        logs = LogStore(db)
        page = await logs.list_logs(action="DELETE", table_name="roles", page=1)
    """

    def __init__(self, db: AsyncSession):
        self.db = db
        self.logs: Repository[LogEntry, int] = Repository(db, LogEntry)

    async def list_logs(
        self,
        action: Optional[str] = None,
        database_name: Optional[str] = None,
        table_name: Optional[str] = None,
        user_id: Optional[str] = None,
        page: int = 1,
        per_page: int = DEFAULT_PER_PAGE,
    ) -> Page[LogEntry]:
        """
        Newest entries first, filtered by any combination of the given fields.

        Raises:
            ValidationError: action outside the stored vocabulary, or a non-positive page size
        """
        if per_page is None or per_page < 1:
            raise ValidationError("per_page must be a positive integer", details={"per_page": per_page})

        stmt = select(LogEntry).order_by(LogEntry.timestamp.desc(), LogEntry.id.desc())
        if action:
            try:
                stmt = stmt.where(LogEntry.action == LogAction(action.upper()))
            except ValueError:
                raise ValidationError("Invalid action value", details={"action": action})
        if database_name:
            stmt = stmt.where(LogEntry.database_name == database_name)
        if table_name:
            stmt = stmt.where(LogEntry.table_name == table_name)
        if user_id:
            stmt = stmt.where(LogEntry.user_id == user_id)

        return await self.logs.execute_page(stmt, page or 1, per_page)

    async def get_log(self, log_id: Any) -> LogEntry:
        entry = await self.logs.get(parse_id(log_id, "log_id"))
        if entry is None:
            raise NotFoundError("Log")
        return entry
