"""
Durable audit log table and the in-memory event passed to audit sinks.
"""
import enum
from datetime import datetime
from typing import Any, Dict, Literal, Optional
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy import String, JSON, DateTime, Enum as SQLEnum
from sqlalchemy.orm import Mapped, mapped_column

from assetguard.core.database.base import Base, utcnow


class LogAction(str, enum.Enum):
    """Actions the durable log table accepts."""
    CREATE = "CREATE"
    UPDATE = "UPDATE"
    DELETE = "DELETE"
    LOGIN = "LOGIN"
    LOGOUT = "LOGOUT"


class LogEvent(BaseModel):
    """
    One audit event as produced by a service after (or while failing) a mutation.

    Immutable once built; sinks only read it.
    """
    timestamp: datetime = Field(default_factory=utcnow)
    level: Literal["INFO", "WARN", "ERROR"] = "INFO"
    actor: str = "system"
    action: str
    model: str
    data: Any = None
    request_id: Optional[str] = None
    record_id: Optional[str] = None

    model_config = ConfigDict(frozen=True)


class LogEntry(Base):
    """
    Append-only audit row written by the store sink.

    Rows are never updated; the store sink only inserts.
    """
    __tablename__ = "logs"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)

    action: Mapped[LogAction] = mapped_column(SQLEnum(LogAction, name="log_action"), nullable=False, index=True)
    database_name: Mapped[str] = mapped_column(String(100), nullable=False)
    table_name: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    record_id: Mapped[str | None] = mapped_column(String(100), nullable=True)

    # Actor id; "system" for unattended jobs
    user_id: Mapped[str | None] = mapped_column(String(64), nullable=True, index=True)

    parameters: Mapped[Dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    timestamp: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow, index=True)

    def __repr__(self) -> str:
        return f"<LogEntry(id={self.id}, action={self.action}, table={self.table_name}, user_id={self.user_id})>"
