"""
Grant link tables.

Each table links two entities and carries a unique constraint on the pair, so
the database, not application code, decides which of two racing inserts wins.
Rows are only ever inserted or deleted, never edited.
"""
from datetime import datetime
from sqlalchemy import String, ForeignKey, DateTime, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from assetguard.core.database.base import Base, utcnow
from assetguard.features.asset_instances.models import AssetInstance
from assetguard.features.catalog.models import Permission
from assetguard.features.roles.models import Role


class RoleGrant(Base):
    """Role -> permission."""
    __tablename__ = "role_permissions"
    __table_args__ = (
        UniqueConstraint("role_id", "permission_id", name="uq_role_permissions_pair"),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    role_id: Mapped[int] = mapped_column(ForeignKey("roles.id", ondelete="CASCADE"), nullable=False, index=True)
    permission_id: Mapped[int] = mapped_column(
        ForeignKey("permissions.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    granted_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)

    role: Mapped["Role"] = relationship("Role", lazy="selectin")
    permission: Mapped["Permission"] = relationship("Permission", lazy="selectin")

    def __repr__(self) -> str:
        return f"<RoleGrant(role_id={self.role_id}, permission_id={self.permission_id})>"


class UserRole(Base):
    """User -> role."""
    __tablename__ = "user_roles"
    __table_args__ = (
        UniqueConstraint("user_id", "role_id", name="uq_user_roles_pair"),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(26), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    role_id: Mapped[int] = mapped_column(ForeignKey("roles.id", ondelete="CASCADE"), nullable=False, index=True)
    assigned_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)

    role: Mapped["Role"] = relationship("Role", lazy="selectin")

    def __repr__(self) -> str:
        return f"<UserRole(user_id={self.user_id}, role_id={self.role_id})>"


class UserAssetInstanceGrant(Base):
    """User -> one concrete asset record."""
    __tablename__ = "user_asset_instances"
    __table_args__ = (
        UniqueConstraint("user_id", "asset_instance_id", name="uq_user_asset_instances_pair"),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(26), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    asset_instance_id: Mapped[int] = mapped_column(
        ForeignKey("asset_instances.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    assigned_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)

    asset_instance: Mapped["AssetInstance"] = relationship("AssetInstance", lazy="selectin")

    def __repr__(self) -> str:
        return f"<UserAssetInstanceGrant(user_id={self.user_id}, asset_instance_id={self.asset_instance_id})>"
