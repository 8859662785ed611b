"""
Generic idempotent grant store.

One implementation serves the three link tables. assign() lets the pair's
unique constraint arbitrate: the insert is attempted and an IntegrityError is
reported as a conflict, so concurrent identical assigns produce exactly one
grant.
"""
from typing import Any, Callable, Generic, List, Optional, Type, TypeVar
from sqlalchemy import delete
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from assetguard.core.database.base import Base
from assetguard.core.database.repository import Repository
from assetguard.core.exceptions import ConflictError, NotFoundError, ValidationError
from assetguard.features.asset_instances.models import AssetInstance
from assetguard.features.audit.sinks import AuditLogger, NullSink, emit
from assetguard.features.catalog.models import Permission
from assetguard.features.grants.models import RoleGrant, UserAssetInstanceGrant, UserRole
from assetguard.features.roles.models import Role
from assetguard.features.users.models import User
from assetguard.utils import get_logger, parse_id


log = get_logger(__name__)

GrantT = TypeVar("GrantT", bound=Base)


def parse_user_id(value: Any, field: str = "user_id") -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"Invalid {field}", details={field: value})
    return value.strip()


class GrantStore(Generic[GrantT]):
    """
    assign / revoke / list for one link table.

    Args:
        db: session the store works in
        model: link table class, e.g. RoleGrant
        left: (column name, referenced model, id parser) for the left side
        right: same for the right side
        audit: sink receiving CREATE / DELETE events
    """

    def __init__(
        self,
        db: AsyncSession,
        model: Type[GrantT],
        left: tuple[str, Type[Base], Callable[[Any, str], Any]],
        right: tuple[str, Type[Base], Callable[[Any, str], Any]],
        audit: Optional[AuditLogger] = None,
    ):
        self.db = db
        self.model = model
        self.left_field, self.left_model, self._parse_left = left
        self.right_field, self.right_model, self._parse_right = right
        self.audit = audit or NullSink()
        self.grants: Repository[GrantT, int] = Repository(db, model)

    @property
    def name(self) -> str:
        return self.model.__tablename__

    def _pair(self, left_id: Any, right_id: Any) -> dict[str, Any]:
        return {
            self.left_field: self._parse_left(left_id, self.left_field),
            self.right_field: self._parse_right(right_id, self.right_field),
        }

    async def _require(self, model: Type[Base], pk: Any) -> None:
        if await self.db.get(model, pk) is None:
            raise NotFoundError(model.__name__)

    async def get(self, left_id: Any, right_id: Any) -> Optional[GrantT]:
        return await self.grants.find_first(**self._pair(left_id, right_id))

    async def assign(self, left_id: Any, right_id: Any, actor: str = "system") -> GrantT:
        """
        Create the grant for this pair.

        Raises:
            ValidationError: malformed id
            NotFoundError: either side does not exist
            ConflictError: the pair is already granted
        """
        pair = self._pair(left_id, right_id)
        await self._require(self.left_model, pair[self.left_field])
        await self._require(self.right_model, pair[self.right_field])

        grant = self.model(**pair)
        try:
            self.db.add(grant)
            await self.db.commit()
        except IntegrityError:
            await self.db.rollback()
            log.debug("Duplicate %s grant %s", self.name, pair)
            await emit(self.audit, "CREATE", self.name, actor=actor,
                       data={**pair, "error": "already assigned"}, level="ERROR")
            raise ConflictError(f"{self.right_model.__name__} already assigned", details=pair)

        log.info("Granted %s %s by %s", self.name, pair, actor)
        await emit(self.audit, "CREATE", self.name, actor=actor, data=pair, record_id=grant.id)
        return grant

    async def revoke(self, left_id: Any, right_id: Any, actor: str = "system") -> GrantT:
        """
        Delete the grant for this pair and return the removed row.

        Raises:
            NotFoundError: no such grant (including one a concurrent revoke just removed)
        """
        pair = self._pair(left_id, right_id)
        grant = await self.grants.find_first(**pair)
        if grant is None:
            raise NotFoundError(f"{self.right_model.__name__} assignment")

        result = await self.db.execute(delete(self.model).where(self.model.id == grant.id))
        if result.rowcount == 0:
            await self.db.rollback()
            raise NotFoundError(f"{self.right_model.__name__} assignment")
        await self.db.commit()
        self.db.expunge(grant)

        log.info("Revoked %s %s by %s", self.name, pair, actor)
        await emit(self.audit, "DELETE", self.name, actor=actor, data=pair, record_id=grant.id)
        return grant

    async def list_for_left(self, left_id: Any) -> List[GrantT]:
        return await self.grants.list(**{self.left_field: self._parse_left(left_id, self.left_field)})

    async def list_for_right(self, right_id: Any) -> List[GrantT]:
        return await self.grants.list(**{self.right_field: self._parse_right(right_id, self.right_field)})


# ============================================================================
# Configured stores
# ============================================================================

def role_permission_grants(db: AsyncSession, audit: Optional[AuditLogger] = None) -> GrantStore[RoleGrant]:
    return GrantStore(db, RoleGrant, ("role_id", Role, parse_id), ("permission_id", Permission, parse_id), audit)


def user_role_grants(db: AsyncSession, audit: Optional[AuditLogger] = None) -> GrantStore[UserRole]:
    return GrantStore(db, UserRole, ("user_id", User, parse_user_id), ("role_id", Role, parse_id), audit)


def user_asset_instance_grants(
    db: AsyncSession, audit: Optional[AuditLogger] = None
) -> GrantStore[UserAssetInstanceGrant]:
    return GrantStore(
        db,
        UserAssetInstanceGrant,
        ("user_id", User, parse_user_id),
        ("asset_instance_id", AssetInstance, parse_id),
        audit,
    )


async def _permission_for(db: AsyncSession, operation_id: Any, asset_id: Any) -> Permission:
    permission = await Repository(db, Permission).find_first(
        operation_id=parse_id(operation_id, "operation_id"),
        asset_id=parse_id(asset_id, "asset_id"),
    )
    if permission is None:
        raise NotFoundError("Permission")
    return permission


async def assign_by_operation_asset(
    store: GrantStore[RoleGrant], role_id: Any, operation_id: Any, asset_id: Any, actor: str = "system"
) -> RoleGrant:
    """Grant a role the permission identified by (operation, asset)."""
    permission = await _permission_for(store.db, operation_id, asset_id)
    return await store.assign(role_id, permission.id, actor)


async def revoke_by_operation_asset(
    store: GrantStore[RoleGrant], role_id: Any, operation_id: Any, asset_id: Any, actor: str = "system"
) -> RoleGrant:
    permission = await _permission_for(store.db, operation_id, asset_id)
    return await store.revoke(role_id, permission.id, actor)
