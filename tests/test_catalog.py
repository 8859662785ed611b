"""
Tests for the operation / asset / permission catalog.
"""
import pytest

from assetguard.core.exceptions import ConflictError, NotFoundError, ValidationError
from assetguard.features.catalog.service import CatalogService


@pytest.fixture
def catalog(db, audit):
    return CatalogService(db, audit)


class TestOperationsAndAssets:

    async def test_create_operation(self, catalog):
        operation = await catalog.create_operation("read", "View records")
        assert operation.id is not None
        assert operation.name == "read"
        assert operation.created_at is not None

    async def test_duplicate_operation_conflicts(self, catalog):
        await catalog.create_operation("read")
        with pytest.raises(ConflictError):
            await catalog.create_operation("read")

    async def test_blank_names_are_rejected(self, catalog):
        with pytest.raises(ValidationError):
            await catalog.create_operation("   ")
        with pytest.raises(ValidationError):
            await catalog.create_asset("")

    async def test_duplicate_asset_conflicts(self, catalog):
        await catalog.create_asset("orders")
        with pytest.raises(ConflictError):
            await catalog.create_asset("orders")

    async def test_get_asset_by_table(self, catalog):
        asset_id = (await catalog.create_asset("orders")).id
        assert (await catalog.get_asset_by_table("orders")).id == asset_id
        with pytest.raises(NotFoundError):
            await catalog.get_asset_by_table("invoices")

    async def test_rename_unreferenced_operation(self, catalog):
        operation_id = (await catalog.create_operation("reed")).id
        renamed = await catalog.rename_operation(operation_id, "read")
        assert renamed.name == "read"

    async def test_rename_referenced_operation_conflicts(self, catalog):
        operation_id = (await catalog.create_operation("read")).id
        asset_id = (await catalog.create_asset("orders")).id
        await catalog.create_permission(operation_id, asset_id)

        with pytest.raises(ConflictError):
            await catalog.rename_operation(operation_id, "view")
        assert (await catalog.get_operation(operation_id)).name == "read"


class TestPermissions:

    async def test_create_permission(self, catalog, audit):
        operation_id = (await catalog.create_operation("read")).id
        asset_id = (await catalog.create_asset("orders")).id

        permission = await catalog.create_permission(operation_id, asset_id, actor="alice")

        assert permission.operation_id == operation_id
        assert permission.asset_id == asset_id
        assert permission.key == "orders:read"
        last = audit.events[-1]
        assert (last.action, last.model, last.actor) == ("CREATE", "permissions", "alice")
        assert last.record_id == str(permission.id)

    async def test_duplicate_pair_conflicts(self, catalog):
        operation_id = (await catalog.create_operation("read")).id
        asset_id = (await catalog.create_asset("orders")).id
        await catalog.create_permission(operation_id, asset_id)

        with pytest.raises(ConflictError):
            await catalog.create_permission(operation_id, asset_id)

    async def test_unknown_operation_or_asset(self, catalog):
        asset_id = (await catalog.create_asset("orders")).id
        with pytest.raises(NotFoundError):
            await catalog.create_permission(404, asset_id)

    async def test_non_numeric_id(self, catalog):
        with pytest.raises(ValidationError):
            await catalog.create_permission("read", "orders")

    async def test_lookup_by_pair_and_key(self, catalog):
        operation_id = (await catalog.create_operation("update")).id
        asset_id = (await catalog.create_asset("documents")).id
        permission_id = (await catalog.create_permission(operation_id, asset_id)).id

        assert (await catalog.get_permission(operation_id, asset_id)).id == permission_id
        assert (await catalog.get_permission_by_key("documents:update")).id == permission_id

        with pytest.raises(NotFoundError):
            await catalog.get_permission_by_key("documents:delete")
        with pytest.raises(ValidationError):
            await catalog.get_permission_by_key("documents")

    async def test_list_permissions_search_and_paging(self, catalog):
        read_id = (await catalog.create_operation("read")).id
        delete_id = (await catalog.create_operation("delete")).id
        orders_id = (await catalog.create_asset("orders")).id
        users_id = (await catalog.create_asset("users")).id
        for operation_id in (read_id, delete_id):
            for asset_id in (orders_id, users_id):
                await catalog.create_permission(operation_id, asset_id)

        everything = await catalog.list_permissions()
        assert everything.total == 4

        orders = await catalog.list_permissions(search="ORD")
        assert orders.total == 2
        assert {p.key for p in orders.data} == {"orders:read", "orders:delete"}

        page = await catalog.list_permissions(page=2, per_page=3)
        assert page.total == 4
        assert len(page.data) == 1

    async def test_delete_permission(self, catalog):
        operation_id = (await catalog.create_operation("read")).id
        asset_id = (await catalog.create_asset("orders")).id
        permission_id = (await catalog.create_permission(operation_id, asset_id)).id

        await catalog.delete_permission(permission_id)

        with pytest.raises(NotFoundError):
            await catalog.get_permission_by_id(permission_id)
