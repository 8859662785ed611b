"""
Session administration: per-user liveness listing, token lookups and revocation.

Sessions are created by the external authentication flow; this store only
reads them and deletes them.
"""
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional
from sqlalchemy import delete, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from assetguard.core.database.repository import Page, Repository
from assetguard.core.exceptions import NotFoundError
from assetguard.features.audit.sinks import AuditLogger, NullSink, emit
from assetguard.features.grants.service import parse_user_id
from assetguard.features.sessions.models import Session
from assetguard.features.sessions.tracker import SessionStatus, SessionTracker, as_utc
from assetguard.features.users.models import User
from assetguard.utils import get_logger


log = get_logger(__name__)

_NEVER = datetime.min.replace(tzinfo=timezone.utc)


@dataclass(frozen=True)
class SessionView:
    """One row of the admin session listing; `id` is None for users who never logged in."""
    id: Optional[str]
    user_id: str
    email: str
    expires_at: Optional[datetime]
    last_activity_at: Optional[datetime]
    status: SessionStatus


def _recency(session: Session) -> tuple:
    # Same order as SessionTracker.latest_session: never-active sessions last
    activity = session.last_activity_at
    return (
        activity is not None,
        as_utc(activity) if activity is not None else _NEVER,
        as_utc(session.created_at),
    )


class SessionStore:
    def __init__(
        self,
        db: AsyncSession,
        audit: Optional[AuditLogger] = None,
        tracker: Optional[SessionTracker] = None,
    ):
        self.db = db
        self.audit = audit or NullSink()
        self.tracker = tracker or SessionTracker()
        self.users: Repository[User, str] = Repository(db, User)
        self.sessions: Repository[Session, str] = Repository(db, Session)

    def _view(self, user_id: str, email: str, session: Optional[Session], now: Optional[datetime]) -> SessionView:
        if session is None:
            return SessionView(None, user_id, email, None, None, SessionStatus.OFFLINE)
        return SessionView(
            id=session.id,
            user_id=user_id,
            email=email,
            expires_at=session.expires_at,
            last_activity_at=session.last_activity_at,
            status=self.tracker.status(session, now),
        )

    async def list_with_status(
        self,
        search: Optional[str] = None,
        page: Optional[int] = None,
        per_page: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> Page[SessionView]:
        """
        One entry per user with the liveness of their most recently active session.

        `search` matches user id or email, case-insensitively.
        """
        stmt = select(User).order_by(User.email)
        if search and search.strip():
            pattern = f"%{search.strip()}%"
            stmt = stmt.where(or_(User.id.ilike(pattern), User.email.ilike(pattern)))
        users = await self.users.execute_page(stmt, page, per_page)

        latest: Dict[str, Session] = {}
        user_ids = [user.id for user in users.data]
        if user_ids:
            result = await self.db.execute(select(Session).where(Session.user_id.in_(user_ids)))
            for session in result.scalars().all():
                current = latest.get(session.user_id)
                if current is None or _recency(session) > _recency(current):
                    latest[session.user_id] = session

        views = [self._view(user.id, user.email, latest.get(user.id), now) for user in users.data]
        return Page(data=views, total=users.total)

    async def _find_view(self, where: Any, now: Optional[datetime]) -> SessionView:
        stmt = select(Session, User.email).join(User, Session.user_id == User.id).where(where).limit(1)
        row = (await self.db.execute(stmt)).first()
        if row is None:
            raise NotFoundError("Session")
        session, email = row
        return self._view(session.user_id, email, session, now)

    async def get_view(self, session_id: str, now: Optional[datetime] = None) -> SessionView:
        return await self._find_view(Session.id == session_id, now)

    async def get_by_access_token(self, access_token: str, now: Optional[datetime] = None) -> SessionView:
        return await self._find_view(Session.access_token == access_token, now)

    async def get_by_refresh_token(self, refresh_token: str, now: Optional[datetime] = None) -> SessionView:
        return await self._find_view(Session.refresh_token == refresh_token, now)

    async def delete_session(self, session_id: str, actor: str = "system") -> Session:
        """
        Revoke one session.

        Raises:
            NotFoundError: no session with this id
        """
        session = await self.sessions.get(session_id)
        if session is None:
            raise NotFoundError("Session")
        data = {"user_id": session.user_id}
        await self.db.delete(session)
        await self.db.commit()

        log.info("Session %s revoked by %s", session_id, actor)
        await emit(self.audit, "DELETE", Session.__tablename__, actor=actor, data=data, record_id=session_id)
        return session

    async def delete_sessions_for_user(self, user_id: Any, actor: str = "system") -> int:
        """Revoke every session of a user; returns how many were removed."""
        user_id = parse_user_id(user_id)
        result = await self.db.execute(delete(Session).where(Session.user_id == user_id))
        await self.db.commit()
        removed = result.rowcount or 0

        log.info("Revoked %d sessions of user %s by %s", removed, user_id, actor)
        await emit(self.audit, "DELETE", Session.__tablename__, actor=actor,
                   data={"user_id": user_id, "removed": removed})
        return removed

    async def list_for_user(self, user_id: Any) -> List[Session]:
        return await self.sessions.list(
            order_by=[Session.created_at.desc()],
            user_id=parse_user_id(user_id),
        )
