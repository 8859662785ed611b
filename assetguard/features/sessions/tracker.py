"""
Session liveness.

A derived, presentation-only label; it never gates authorization.
"""
import enum
from datetime import datetime, timezone
from typing import Any, Optional
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from assetguard.core import config
from assetguard.features.sessions.models import Session


class SessionStatus(str, enum.Enum):
    ONLINE = "online"
    OFFLINE = "offline"


def as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes; they were stored as UTC
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def session_status(session: Any, now: datetime, online_threshold_seconds: float) -> SessionStatus:
    """
    Offline when expired, when there is no recorded activity, or when the last
    activity is older than the threshold. Online otherwise.

    `session` only needs `expires_at` and `last_activity_at` attributes.
    """
    now = as_utc(now)
    if session.expires_at is None or as_utc(session.expires_at) <= now:
        return SessionStatus.OFFLINE

    if session.last_activity_at is None:
        return SessionStatus.OFFLINE
    idle = (now - as_utc(session.last_activity_at)).total_seconds()
    if idle > online_threshold_seconds:
        return SessionStatus.OFFLINE

    return SessionStatus.ONLINE


class SessionTracker:
    """
    Liveness lookups with the threshold fixed at construction.

    Usage:
        tracker = SessionTracker()
        status = await tracker.status_for_user(db, user_id)
    """

    def __init__(self, online_threshold_seconds: int = config.ONLINE_THRESHOLD_SECONDS):
        self.online_threshold_seconds = online_threshold_seconds

    def status(self, session: Any, now: Optional[datetime] = None) -> SessionStatus:
        return session_status(session, now or datetime.now(timezone.utc), self.online_threshold_seconds)

    def is_expired(self, session: Any, now: Optional[datetime] = None) -> bool:
        now = as_utc(now or datetime.now(timezone.utc))
        return session.expires_at is not None and as_utc(session.expires_at) <= now

    async def latest_session(self, db: AsyncSession, user_id: str) -> Optional[Session]:
        """Most recently active session for the user (never-active sessions last)."""
        stmt = (
            select(Session)
            .where(Session.user_id == user_id)
            .order_by(Session.last_activity_at.desc().nulls_last(), Session.created_at.desc())
            .limit(1)
        )
        result = await db.execute(stmt)
        return result.scalars().first()

    async def status_for_user(self, db: AsyncSession, user_id: str, now: Optional[datetime] = None) -> SessionStatus:
        session = await self.latest_session(db, user_id)
        if session is None:
            return SessionStatus.OFFLINE
        return self.status(session, now)
