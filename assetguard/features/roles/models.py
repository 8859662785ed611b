"""
Role model.

Roles group permissions and are assigned to users. A role may point at a
parent role; the pointer is stored but authorization does not walk it.
"""
from sqlalchemy import String, ForeignKey, Text
from sqlalchemy.orm import Mapped, mapped_column

from assetguard.core.database.base import Base, TimestampMixin


class Role(Base, TimestampMixin):
    """
    Named bundle of permissions.
    Examples: Admin, editor, viewer, auditor
    """
    __tablename__ = "roles"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)

    name: Mapped[str] = mapped_column(String(50), unique=True, nullable=False, index=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Reserved for hierarchical inheritance
    parent_role_id: Mapped[int | None] = mapped_column(
        ForeignKey("roles.id", ondelete="SET NULL"),
        nullable=True,
        index=True
    )

    def __repr__(self) -> str:
        return f"<Role(id={self.id}, name={self.name!r}, parent_role_id={self.parent_role_id})>"
