"""
Registry of concrete asset records that can carry per-user grants.
"""
from typing import Any, List, Optional
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from assetguard.core.database.repository import Repository
from assetguard.core.exceptions import ConflictError, NotFoundError, ValidationError
from assetguard.features.asset_instances.models import AssetInstance
from assetguard.features.audit.sinks import AuditLogger, NullSink, emit
from assetguard.features.catalog.models import Asset
from assetguard.utils import get_logger, parse_id


log = get_logger(__name__)


def _record_id(value: Any) -> str:
    record_id = str(value).strip() if value is not None else ""
    if not record_id:
        raise ValidationError("record_id is required")
    return record_id


class AssetInstanceRegistry:
    def __init__(self, db: AsyncSession, audit: Optional[AuditLogger] = None):
        self.db = db
        self.audit = audit or NullSink()
        self.instances: Repository[AssetInstance, int] = Repository(db, AssetInstance)
        self.assets: Repository[Asset, int] = Repository(db, Asset)

    async def create_instance(self, asset_id: Any, record_id: Any, actor: str = "system") -> AssetInstance:
        """
        Register one record of an asset.

        Raises:
            NotFoundError: unknown asset
            ConflictError: the (asset, record) pair is already registered
        """
        asset = await self.assets.get(parse_id(asset_id, "asset_id"))
        if asset is None:
            raise NotFoundError("Asset")
        record_id = _record_id(record_id)

        instance = AssetInstance(asset=asset, record_id=record_id)
        try:
            self.db.add(instance)
            await self.db.commit()
        except IntegrityError:
            await self.db.rollback()
            await emit(self.audit, "CREATE", AssetInstance.__tablename__, actor=actor,
                       data={"error": "AssetInstance for this asset and record already exists"}, level="ERROR")
            raise ConflictError("AssetInstance for this asset and record already exists")
        await self.db.refresh(instance)

        await emit(self.audit, "CREATE", AssetInstance.__tablename__, actor=actor,
                   data={"asset_id": asset.id, "record_id": record_id}, record_id=instance.id)
        return instance

    async def get_instance(self, instance_id: Any) -> AssetInstance:
        instance = await self.instances.get(parse_id(instance_id, "asset_instance_id"))
        if instance is None:
            raise NotFoundError("AssetInstance")
        return instance

    async def find_instance(self, table_name: str, record_id: Any) -> Optional[AssetInstance]:
        """Look up by asset table name and record id; None when not registered."""
        stmt = (
            select(AssetInstance)
            .join(Asset, AssetInstance.asset_id == Asset.id)
            .where(Asset.table_name == table_name, AssetInstance.record_id == str(record_id))
        )
        result = await self.db.execute(stmt)
        return result.scalars().first()

    async def list_for_asset(self, asset_id: Any) -> List[AssetInstance]:
        return await self.instances.list(asset_id=parse_id(asset_id, "asset_id"))

    async def update_record_id(self, instance_id: Any, new_record_id: Any, actor: str = "system") -> AssetInstance:
        instance = await self.get_instance(instance_id)
        new_record_id = _record_id(new_record_id)
        old_record_id = instance.record_id

        instance.record_id = new_record_id
        try:
            await self.db.commit()
        except IntegrityError:
            await self.db.rollback()
            raise ConflictError("Another AssetInstance with this recordId already exists")
        await self.db.refresh(instance)

        await emit(self.audit, "UPDATE", AssetInstance.__tablename__, actor=actor,
                   data={"record_id": new_record_id, "previous_record_id": old_record_id}, record_id=instance.id)
        return instance

    async def _delete(self, instance: AssetInstance, actor: str) -> AssetInstance:
        data = {"asset_id": instance.asset_id, "record_id": instance.record_id}
        await self.db.delete(instance)
        await self.db.commit()
        await emit(self.audit, "DELETE", AssetInstance.__tablename__, actor=actor, data=data, record_id=instance.id)
        return instance

    async def delete_instance(self, asset_id: Any, record_id: Any, actor: str = "system") -> AssetInstance:
        instance = await self.instances.find_first(asset_id=parse_id(asset_id, "asset_id"), record_id=_record_id(record_id))
        if instance is None:
            raise NotFoundError("AssetInstance")
        return await self._delete(instance, actor)

    async def delete_instance_by_id(self, instance_id: Any, actor: str = "system") -> AssetInstance:
        return await self._delete(await self.get_instance(instance_id), actor)
