"""
Catalog service: the closed vocabulary of operations, assets and permissions.

The catalog knows nothing about roles or users; everything else refers to
permissions by id.
"""
from typing import Any, List, Optional
from sqlalchemy import select, or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from assetguard.core.database.repository import Page, Repository
from assetguard.core.exceptions import ConflictError, NotFoundError, ValidationError
from assetguard.features.audit.sinks import AuditLogger, NullSink, emit
from assetguard.features.catalog.models import Asset, Operation, Permission
from assetguard.utils import get_logger, parse_id


log = get_logger(__name__)


class CatalogService:
    def __init__(self, db: AsyncSession, audit: Optional[AuditLogger] = None):
        self.db = db
        self.audit = audit or NullSink()
        self.operations: Repository[Operation, int] = Repository(db, Operation)
        self.assets: Repository[Asset, int] = Repository(db, Asset)
        self.permissions: Repository[Permission, int] = Repository(db, Permission)

    async def _commit_new(self, entity: Any, conflict_message: str, actor: str, refresh: bool = True) -> Any:
        model = entity.__tablename__
        try:
            self.db.add(entity)
            await self.db.commit()
        except IntegrityError:
            await self.db.rollback()
            log.info("Conflict creating %s: %s", model, conflict_message)
            await emit(self.audit, "CREATE", model, actor=actor, data={"error": conflict_message}, level="ERROR")
            raise ConflictError(conflict_message)
        if refresh:
            await self.db.refresh(entity)
        return entity

    # ------------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------------

    async def create_operation(self, name: str, description: Optional[str] = None, actor: str = "system") -> Operation:
        name = (name or "").strip()
        if not name:
            raise ValidationError("Operation name is required")
        operation = await self._commit_new(
            Operation(name=name, description=description),
            f"Operation {name!r} already exists",
            actor,
        )
        await emit(self.audit, "CREATE", Operation.__tablename__, actor=actor,
                   data={"name": name, "description": description}, record_id=operation.id)
        return operation

    async def get_operation(self, operation_id: Any) -> Operation:
        operation = await self.operations.get(parse_id(operation_id, "operation_id"))
        if operation is None:
            raise NotFoundError("Operation")
        return operation

    async def list_operations(self) -> List[Operation]:
        return await self.operations.list(order_by=[Operation.name])

    async def rename_operation(self, operation_id: Any, new_name: str, actor: str = "system") -> Operation:
        """
        Rename an operation that no permission references yet.

        Raises:
            ConflictError: the operation is already part of a permission, or the name is taken
        """
        operation = await self.get_operation(operation_id)
        if await self.permissions.count(operation_id=operation.id):
            raise ConflictError(f"Operation {operation.name!r} is referenced by permissions and cannot be renamed")

        new_name = (new_name or "").strip()
        if not new_name:
            raise ValidationError("Operation name is required")

        old_name = operation.name
        operation.name = new_name
        try:
            await self.db.commit()
        except IntegrityError:
            await self.db.rollback()
            raise ConflictError(f"Operation {new_name!r} already exists")
        await self.db.refresh(operation)

        await emit(self.audit, "UPDATE", Operation.__tablename__, actor=actor,
                   data={"name": new_name, "previous_name": old_name}, record_id=operation.id)
        return operation

    # ------------------------------------------------------------------------
    # Assets
    # ------------------------------------------------------------------------

    async def create_asset(self, table_name: str, description: Optional[str] = None, actor: str = "system") -> Asset:
        table_name = (table_name or "").strip()
        if not table_name:
            raise ValidationError("Asset table name is required")
        asset = await self._commit_new(
            Asset(table_name=table_name, description=description),
            f"Asset {table_name!r} already exists",
            actor,
        )
        await emit(self.audit, "CREATE", Asset.__tablename__, actor=actor,
                   data={"table_name": table_name, "description": description}, record_id=asset.id)
        return asset

    async def get_asset(self, asset_id: Any) -> Asset:
        asset = await self.assets.get(parse_id(asset_id, "asset_id"))
        if asset is None:
            raise NotFoundError("Asset")
        return asset

    async def get_asset_by_table(self, table_name: str) -> Asset:
        asset = await self.assets.find_first(table_name=table_name)
        if asset is None:
            raise NotFoundError("Asset")
        return asset

    async def list_assets(self) -> List[Asset]:
        return await self.assets.list(order_by=[Asset.table_name])

    # ------------------------------------------------------------------------
    # Permissions
    # ------------------------------------------------------------------------

    async def create_permission(self, operation_id: Any, asset_id: Any, actor: str = "system") -> Permission:
        """
        Create the permission for an (operation, asset) pair.

        Raises:
            NotFoundError: unknown operation or asset
            ConflictError: the pair already exists
        """
        operation = await self.get_operation(operation_id)
        asset = await self.get_asset(asset_id)

        # Relationships are set up front; refreshing would expire them
        permission = await self._commit_new(
            Permission(operation=operation, asset=asset),
            "Permission already exists for this operation and asset",
            actor,
            refresh=False,
        )
        await emit(self.audit, "CREATE", Permission.__tablename__, actor=actor,
                   data={"operation_id": operation.id, "asset_id": asset.id, "key": permission.key},
                   record_id=permission.id)
        return permission

    async def get_permission(self, operation_id: Any, asset_id: Any) -> Permission:
        permission = await self.permissions.find_first(
            operation_id=parse_id(operation_id, "operation_id"),
            asset_id=parse_id(asset_id, "asset_id"),
        )
        if permission is None:
            raise NotFoundError("Permission")
        return permission

    async def get_permission_by_id(self, permission_id: Any) -> Permission:
        permission = await self.permissions.get(parse_id(permission_id, "permission_id"))
        if permission is None:
            raise NotFoundError("Permission")
        return permission

    async def get_permission_by_key(self, key: str) -> Permission:
        """Look up "resource:action", e.g. "orders:read"."""
        resource, sep, action = (key or "").partition(":")
        if not sep or not resource or not action:
            raise ValidationError("Permission key must look like 'resource:action'", details={"key": key})

        stmt = (
            select(Permission)
            .join(Operation, Permission.operation_id == Operation.id)
            .join(Asset, Permission.asset_id == Asset.id)
            .where(Operation.name == action, Asset.table_name == resource)
        )
        result = await self.db.execute(stmt)
        permission = result.scalars().first()
        if permission is None:
            raise NotFoundError("Permission")
        return permission

    async def list_permissions(
        self,
        search: Optional[str] = None,
        page: Optional[int] = None,
        per_page: Optional[int] = None,
    ) -> Page[Permission]:
        """List permissions, optionally matching operation name or asset table name."""
        stmt = (
            select(Permission)
            .join(Operation, Permission.operation_id == Operation.id)
            .join(Asset, Permission.asset_id == Asset.id)
            .order_by(Permission.id)
        )
        if search and search.strip():
            pattern = f"%{search.strip()}%"
            stmt = stmt.where(or_(Operation.name.ilike(pattern), Asset.table_name.ilike(pattern)))
        return await self.permissions.execute_page(stmt, page, per_page)

    async def delete_permission(self, permission_id: Any, actor: str = "system") -> Permission:
        permission = await self.get_permission_by_id(permission_id)
        data = {"operation_id": permission.operation_id, "asset_id": permission.asset_id, "key": permission.key}
        await self.db.delete(permission)
        await self.db.commit()

        await emit(self.audit, "DELETE", Permission.__tablename__, actor=actor, data=data, record_id=permission.id)
        return permission
