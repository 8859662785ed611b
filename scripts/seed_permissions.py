"""
Seed script to populate the default catalog and roles.

Run this script after database initialization to create:
- Default operations (create, read, update, delete)
- Default assets and every operation x asset permission
- Default roles and their role-permission grants, including the Admin role

Safe to run repeatedly: existing rows are left alone.

Usage:
    uv run python -m scripts.seed_permissions
"""
import asyncio
from sqlalchemy.ext.asyncio import AsyncSession

from assetguard.core import config
from assetguard.core.database.engine import get_db, init_db
from assetguard.core.exceptions import ConflictError, NotFoundError
from assetguard.features.catalog.service import CatalogService
from assetguard.features.grants.service import role_permission_grants
from assetguard.features.roles.service import RoleStore
from assetguard.utils import configure_logging, get_logger


log = get_logger(__name__)


DEFAULT_OPERATIONS = [
    ("create", "Create new records"),
    ("read", "View records"),
    ("update", "Update existing records"),
    ("delete", "Delete records"),
]

DEFAULT_ASSETS = [
    ("users", "Application users"),
    ("roles", "Roles"),
    ("permissions", "Operation x asset permissions"),
    ("assets", "Asset catalog"),
    ("asset_instances", "Row-level asset records"),
    ("sessions", "Login sessions"),
    ("logs", "Audit log"),
]


DEFAULT_ROLES = {
    config.ADMIN_ROLE_NAME: {
        "description": "Administrator, bypasses every permission check",
        "permissions": [],
    },
    "auditor": {
        "description": "Read-only access to users, roles, sessions and the audit log",
        "permissions": ["users:read", "roles:read", "permissions:read", "sessions:read", "logs:read"],
    },
    "rbac_manager": {
        "description": "Manages roles, permissions and record grants",
        "permissions": [
            "roles:create", "roles:read", "roles:update", "roles:delete",
            "permissions:create", "permissions:read", "permissions:delete",
            "asset_instances:create", "asset_instances:read", "asset_instances:delete",
            "users:read",
        ],
    },
}


async def seed_catalog(db: AsyncSession) -> dict[str, int]:
    """
    Create default operations, assets and their permissions.

    Returns:
        Dictionary mapping permission keys ("users:read") to permission ids
    """
    log.info("Creating default catalog...")
    catalog = CatalogService(db)

    # A conflict rolls the session back and expires loaded rows, so only ids are kept
    for name, description in DEFAULT_OPERATIONS:
        try:
            await catalog.create_operation(name, description)
            log.info("Created operation: %s", name)
        except ConflictError:
            log.debug("Operation '%s' already exists, skipping", name)
    operation_ids = {op.name: op.id for op in await catalog.list_operations()}

    for table_name, description in DEFAULT_ASSETS:
        try:
            await catalog.create_asset(table_name, description)
            log.info("Created asset: %s", table_name)
        except ConflictError:
            log.debug("Asset '%s' already exists, skipping", table_name)
    asset_ids = {asset.table_name: asset.id for asset in await catalog.list_assets()}

    permissions_map = {}
    for table_name, asset_id in asset_ids.items():
        for op_name, operation_id in operation_ids.items():
            try:
                permission_id = (await catalog.create_permission(operation_id, asset_id)).id
            except ConflictError:
                permission_id = (await catalog.get_permission(operation_id, asset_id)).id
            permissions_map[f"{table_name}:{op_name}"] = permission_id

    log.info("Catalog holds %d permissions", len(permissions_map))
    return permissions_map


async def seed_roles(db: AsyncSession, permissions_map: dict[str, int]):
    """
    Create default roles and grant their permissions.

    Args:
        db: Database session
        permissions_map: Dictionary of permission key -> permission id
    """
    log.info("Creating default roles...")
    roles = RoleStore(db)
    grants = role_permission_grants(db)

    for role_name, role_config in DEFAULT_ROLES.items():
        try:
            role = await roles.create_role(role_name, role_config["description"])
            log.info("Created role '%s'", role_name)
        except ConflictError:
            log.debug("Role '%s' already exists", role_name)
            role = await roles.get_role_by_name(role_name)
        role_id = role.id

        granted = 0
        for key in role_config["permissions"]:
            permission_id = permissions_map.get(key)
            if permission_id is None:
                log.warning("Permission '%s' not found for role '%s'", key, role_name)
                continue
            try:
                await grants.assign(role_id, permission_id)
                granted += 1
            except (ConflictError, NotFoundError):
                continue
        log.info("Role '%s' received %d new permissions", role_name, granted)

    log.info("Default roles created successfully")


async def main():
    """Main function to seed the catalog and roles."""
    configure_logging()
    log.info("Starting permission seeding...")

    # Initialize database tables first
    log.info("Initializing database tables...")
    await init_db()

    # Get database session
    async for db in get_db():
        try:
            permissions_map = await seed_catalog(db)
            await seed_roles(db, permissions_map)

            log.info("Permission seeding completed successfully!")
            log.info("Default roles:")
            for role_name, role_config in DEFAULT_ROLES.items():
                log.info("  - %s: %s", role_name, role_config["description"])

        except Exception as e:
            log.error("Error seeding permissions: %s", e, exc_info=True)
            await db.rollback()
            raise

        break  # Only use first session


if __name__ == "__main__":
    asyncio.run(main())
