"""
Role store: create, rename, re-parent and delete roles.
"""
from typing import Any, Dict, List, Optional
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from assetguard.core.database.repository import Page, Repository
from assetguard.core.exceptions import ConflictError, NotFoundError, ValidationError
from assetguard.features.audit.sinks import AuditLogger, NullSink, emit
from assetguard.features.roles.models import Role
from assetguard.utils import get_logger, parse_id


log = get_logger(__name__)

_UNSET: Any = object()


class RoleStore:
    def __init__(self, db: AsyncSession, audit: Optional[AuditLogger] = None):
        self.db = db
        self.audit = audit or NullSink()
        self.roles: Repository[Role, int] = Repository(db, Role)

    async def create_role(
        self,
        name: str,
        description: Optional[str] = None,
        parent_role_id: Optional[Any] = None,
        actor: str = "system",
    ) -> Role:
        """
        Create a role.

        Raises:
            ValidationError: empty name
            NotFoundError: parent role does not exist
            ConflictError: a role with this name already exists
        """
        name = (name or "").strip()
        if not name:
            raise ValidationError("Role name is required")

        parent_id = None
        if parent_role_id is not None:
            parent_id = (await self.get_role(parent_role_id)).id

        role = Role(name=name, description=description, parent_role_id=parent_id)
        try:
            self.db.add(role)
            await self.db.commit()
        except IntegrityError:
            await self.db.rollback()
            await emit(self.audit, "CREATE", Role.__tablename__, actor=actor,
                       data={"error": f"Role {name!r} already exists"}, level="ERROR")
            raise ConflictError(f"Role {name!r} already exists")
        await self.db.refresh(role)

        log.info("Role %s created by %s", name, actor)
        await emit(self.audit, "CREATE", Role.__tablename__, actor=actor,
                   data={"name": name, "description": description, "parent_role_id": parent_id},
                   record_id=role.id)
        return role

    async def get_role(self, role_id: Any) -> Role:
        role = await self.roles.get(parse_id(role_id, "role_id"))
        if role is None:
            raise NotFoundError("Role")
        return role

    async def get_role_by_name(self, name: str) -> Role:
        role = await self.roles.find_first(name=name)
        if role is None:
            raise NotFoundError("Role")
        return role

    async def list_roles(
        self,
        search: Optional[str] = None,
        page: Optional[int] = None,
        per_page: Optional[int] = None,
    ) -> Page[Role]:
        stmt = select(Role).order_by(Role.id)
        if search and search.strip():
            stmt = stmt.where(Role.name.ilike(f"%{search.strip()}%"))
        return await self.roles.execute_page(stmt, page, per_page)

    async def _would_cycle(self, role_id: int, parent_id: int) -> bool:
        """Walk up from the proposed parent; reaching role_id means a cycle."""
        seen = set()
        current: Optional[int] = parent_id
        while current is not None:
            if current == role_id:
                return True
            if current in seen:
                return True
            seen.add(current)
            parent = await self.roles.get(current)
            current = parent.parent_role_id if parent else None
        return False

    async def update_role(
        self,
        role_id: Any,
        name: Optional[str] = _UNSET,
        description: Optional[str] = _UNSET,
        parent_role_id: Optional[Any] = _UNSET,
        actor: str = "system",
    ) -> Role:
        """
        Update name, description or parent. Omitted arguments are left alone.

        Raises:
            ValidationError: empty name, or the new parent would create a cycle
            ConflictError: the new name is taken
        """
        role = await self.get_role(role_id)
        changes: Dict[str, Any] = {}

        if name is not _UNSET:
            name = (name or "").strip()
            if not name:
                raise ValidationError("Role name is required")
            changes["name"] = name

        if description is not _UNSET:
            changes["description"] = description

        if parent_role_id is not _UNSET:
            parent_id = None
            if parent_role_id is not None:
                parent_id = (await self.get_role(parent_role_id)).id
                if await self._would_cycle(role.id, parent_id):
                    raise ValidationError("Role hierarchy cannot contain cycles",
                                          details={"role_id": role.id, "parent_role_id": parent_id})
            changes["parent_role_id"] = parent_id

        for key, value in changes.items():
            setattr(role, key, value)

        try:
            await self.db.commit()
        except IntegrityError:
            await self.db.rollback()
            raise ConflictError(f"Role {changes.get('name')!r} already exists")
        await self.db.refresh(role)

        await emit(self.audit, "UPDATE", Role.__tablename__, actor=actor, data=changes, record_id=role.id)
        return role

    async def delete_role(self, role_id: Any, actor: str = "system") -> Role:
        """Delete a role; its grants go with it."""
        role = await self.get_role(role_id)
        data = {"name": role.name}
        await self.db.delete(role)
        await self.db.commit()

        await emit(self.audit, "DELETE", Role.__tablename__, actor=actor, data=data, record_id=role.id)
        return role

    async def list_children(self, role_id: Any) -> List[Role]:
        return await self.roles.list(parent_role_id=parse_id(role_id, "role_id"))
