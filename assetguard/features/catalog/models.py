"""
Operation, Asset and Permission models.

A Permission is the pairing of one Operation with one Asset and renders as the
key "table_name:operation", the resource:action form authorization checks.
"""
from datetime import datetime
from sqlalchemy import String, ForeignKey, Text, DateTime, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from assetguard.core.database.base import Base, TimestampMixin, utcnow


class Operation(Base, TimestampMixin):
    """
    Action verb applicable to assets.
    Examples: create, read, update, delete
    """
    __tablename__ = "operations"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(50), unique=True, nullable=False, index=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)

    def __repr__(self) -> str:
        return f"<Operation(id={self.id}, name={self.name!r})>"


class Asset(Base, TimestampMixin):
    """
    Named resource class, conceptually one table.
    Examples: orders, documents, users
    """
    __tablename__ = "assets"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    table_name: Mapped[str] = mapped_column(String(100), unique=True, nullable=False, index=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)

    def __repr__(self) -> str:
        return f"<Asset(id={self.id}, table_name={self.table_name!r})>"


class Permission(Base):
    """
    Smallest checkable right: one operation on one asset.

    Created once by the catalog and never edited afterwards.
    """
    __tablename__ = "permissions"
    __table_args__ = (
        UniqueConstraint("operation_id", "asset_id", name="uq_permissions_operation_asset"),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    operation_id: Mapped[int] = mapped_column(
        ForeignKey("operations.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    asset_id: Mapped[int] = mapped_column(
        ForeignKey("assets.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)

    operation: Mapped["Operation"] = relationship("Operation", lazy="selectin")
    asset: Mapped["Asset"] = relationship("Asset", lazy="selectin")

    @property
    def key(self) -> str:
        return permission_key(self.asset.table_name, self.operation.name)

    def __repr__(self) -> str:
        return f"<Permission(id={self.id}, operation_id={self.operation_id}, asset_id={self.asset_id})>"


def permission_key(resource: str, action: str) -> str:
    """Render a permission key, e.g. permission_key("orders", "read") -> "orders:read"."""
    return f"{resource}:{action}"
