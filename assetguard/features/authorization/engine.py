"""
Authorization decisions.

check() answers "may this actor perform this action on this resource, and
optionally on this specific record?". It only reads, holds no locks and can be
called concurrently.

Decision order:
1. no actor -> deny (unauthenticated)
2. actor holds the admin role -> allow
3. record id given and the actor holds a grant on that asset instance -> allow
4. "resource:action" among the actor's role-derived permission keys -> allow
5. otherwise deny (forbidden)
"""
import enum
from dataclasses import dataclass
from typing import Any, List, Optional, Set
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from assetguard.core import config
from assetguard.core.exceptions import ForbiddenError, UnauthenticatedError
from assetguard.features.asset_instances.models import AssetInstance
from assetguard.features.catalog.models import Asset, Operation, Permission, permission_key
from assetguard.features.grants.models import RoleGrant, UserAssetInstanceGrant, UserRole
from assetguard.features.roles.models import Role
from assetguard.utils import get_logger


log = get_logger(__name__)


class DenyReason(str, enum.Enum):
    UNAUTHENTICATED = "unauthenticated"
    FORBIDDEN = "forbidden"


@dataclass(frozen=True)
class Decision:
    allowed: bool
    reason: Optional[DenyReason] = None
    # "admin", "instance" or "role" when allowed
    via: Optional[str] = None

    def __bool__(self) -> bool:
        return self.allowed


ALLOW_ADMIN = Decision(True, via="admin")
ALLOW_INSTANCE = Decision(True, via="instance")
ALLOW_ROLE = Decision(True, via="role")
DENY_UNAUTHENTICATED = Decision(False, DenyReason.UNAUTHENTICATED)
DENY_FORBIDDEN = Decision(False, DenyReason.FORBIDDEN)


class AuthorizationEngine:
    """
    Args:
        db: session used for the read queries
        admin_role_name: role that bypasses every check
        instance_grants_standalone: when False an instance grant never allows
            on its own; role-level permission is always required
    """

    def __init__(
        self,
        db: AsyncSession,
        admin_role_name: str = config.ADMIN_ROLE_NAME,
        instance_grants_standalone: bool = config.INSTANCE_GRANTS_STANDALONE,
    ):
        self.db = db
        self.admin_role_name = admin_role_name
        self.instance_grants_standalone = instance_grants_standalone

    async def role_names(self, actor: str) -> Set[str]:
        stmt = (
            select(Role.name)
            .join(UserRole, UserRole.role_id == Role.id)
            .where(UserRole.user_id == actor)
        )
        result = await self.db.execute(stmt)
        return set(result.scalars().all())

    async def is_admin(self, actor: str) -> bool:
        stmt = (
            select(UserRole.id)
            .join(Role, UserRole.role_id == Role.id)
            .where(UserRole.user_id == actor, Role.name == self.admin_role_name)
            .limit(1)
        )
        result = await self.db.execute(stmt)
        return result.first() is not None

    async def permission_keys(self, actor: str) -> Set[str]:
        """Union of the permission keys granted to every role the actor holds."""
        stmt = (
            select(Asset.table_name, Operation.name)
            .select_from(UserRole)
            .join(RoleGrant, RoleGrant.role_id == UserRole.role_id)
            .join(Permission, Permission.id == RoleGrant.permission_id)
            .join(Operation, Operation.id == Permission.operation_id)
            .join(Asset, Asset.id == Permission.asset_id)
            .where(UserRole.user_id == actor)
            .distinct()
        )
        result = await self.db.execute(stmt)
        return {permission_key(table_name, operation) for table_name, operation in result.all()}

    async def has_instance_grant(self, actor: str, resource: str, instance_id: Any) -> bool:
        stmt = (
            select(UserAssetInstanceGrant.id)
            .join(AssetInstance, AssetInstance.id == UserAssetInstanceGrant.asset_instance_id)
            .join(Asset, Asset.id == AssetInstance.asset_id)
            .where(
                UserAssetInstanceGrant.user_id == actor,
                Asset.table_name == resource,
                AssetInstance.record_id == str(instance_id),
            )
            .limit(1)
        )
        result = await self.db.execute(stmt)
        return result.first() is not None

    async def visible_record_ids(self, actor: str, resource: str) -> List[str]:
        """Record ids of `resource` the actor holds instance grants on."""
        stmt = (
            select(AssetInstance.record_id)
            .join(UserAssetInstanceGrant, UserAssetInstanceGrant.asset_instance_id == AssetInstance.id)
            .join(Asset, Asset.id == AssetInstance.asset_id)
            .where(UserAssetInstanceGrant.user_id == actor, Asset.table_name == resource)
            .order_by(AssetInstance.id)
        )
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def check(
        self,
        actor: Optional[str],
        resource: str,
        action: str,
        instance_id: Optional[Any] = None,
    ) -> Decision:
        if not actor:
            return DENY_UNAUTHENTICATED

        if await self.is_admin(actor):
            log.debug("User %s is admin - granted %s on %s", actor, action, resource)
            return ALLOW_ADMIN

        key = permission_key(resource, action)

        if instance_id is not None and self.instance_grants_standalone:
            if await self.has_instance_grant(actor, resource, instance_id):
                log.debug("User %s granted %s via instance %s:%s", actor, key, resource, instance_id)
                return ALLOW_INSTANCE

        if key in await self.permission_keys(actor):
            log.debug("User %s granted %s via role", actor, key)
            return ALLOW_ROLE

        log.debug("User %s denied %s (instance=%s)", actor, key, instance_id)
        return DENY_FORBIDDEN

    async def require(
        self,
        actor: Optional[str],
        resource: str,
        action: str,
        instance_id: Optional[Any] = None,
    ) -> Decision:
        """
        Same as check() but raises on deny.

        Raises:
            UnauthenticatedError: no actor
            ForbiddenError: actor lacks the permission
        """
        decision = await self.check(actor, resource, action, instance_id)
        if decision.reason is DenyReason.UNAUTHENTICATED:
            raise UnauthenticatedError()
        if not decision.allowed:
            raise ForbiddenError(
                f"Permission denied: {action} on {resource}",
                details={"permission": permission_key(resource, action), "instance_id": instance_id},
            )
        return decision
