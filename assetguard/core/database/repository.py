"""
Generic async repository shared by every AssetGuard store.

One class parameterized over the model and its primary key type. Services hold
a repository per table instead of subclassing a CRUD base. The repository
never commits; the owning service decides the transaction boundary.
"""
from dataclasses import dataclass
from typing import Any, Generic, List, Optional, Sequence, Type, TypeVar

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.sql import Select

from assetguard.core.database.base import Base


ModelT = TypeVar("ModelT", bound=Base)
PKT = TypeVar("PKT")


@dataclass
class Page(Generic[ModelT]):
    """One page of results plus the total row count for the same filter."""
    data: List[ModelT]
    total: int


class Repository(Generic[ModelT, PKT]):
    """
    CRUD helpers over a single mapped class.

    Usage:
        roles: Repository[Role, int] = Repository(db, Role)
        admin = await roles.find_first(name="Admin")
    """

    def __init__(self, db: AsyncSession, model: Type[ModelT]):
        self.db = db
        self.model = model

    def _filtered(self, stmt: Select, filters: dict[str, Any]) -> Select:
        for key, value in filters.items():
            stmt = stmt.where(getattr(self.model, key) == value)
        return stmt

    async def get(self, pk: PKT) -> Optional[ModelT]:
        return await self.db.get(self.model, pk)

    async def find_first(self, **filters: Any) -> Optional[ModelT]:
        stmt = self._filtered(select(self.model), filters).limit(1)
        result = await self.db.execute(stmt)
        return result.scalars().first()

    async def list(
        self,
        skip: int = 0,
        limit: Optional[int] = None,
        order_by: Optional[Sequence[Any]] = None,
        **filters: Any,
    ) -> List[ModelT]:
        stmt = self._filtered(select(self.model), filters)
        stmt = stmt.order_by(*(order_by or self.model.__mapper__.primary_key))
        if skip:
            stmt = stmt.offset(skip)
        if limit is not None:
            stmt = stmt.limit(limit)
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def count(self, **filters: Any) -> int:
        stmt = self._filtered(select(func.count()).select_from(self.model), filters)
        result = await self.db.execute(stmt)
        return result.scalar_one()

    async def paginate(self, page: int, per_page: int, **filters: Any) -> Page[ModelT]:
        """Offset pagination, pages are 1-based."""
        page = max(page, 1)
        data = await self.list(skip=(page - 1) * per_page, limit=per_page, **filters)
        total = await self.count(**filters)
        return Page(data=data, total=total)

    async def execute_page(self, stmt: Select, page: Optional[int], per_page: Optional[int]) -> Page[ModelT]:
        """Run a prepared select, paginated when both page and per_page are given."""
        if page is not None and per_page is not None:
            count_stmt = select(func.count()).select_from(stmt.order_by(None).subquery())
            total = (await self.db.execute(count_stmt)).scalar_one()
            stmt = stmt.offset((max(page, 1) - 1) * per_page).limit(per_page)
            result = await self.db.execute(stmt)
            return Page(data=list(result.scalars().all()), total=total)

        result = await self.db.execute(stmt)
        data = list(result.scalars().all())
        return Page(data=data, total=len(data))

    async def add(self, entity: ModelT) -> ModelT:
        """Stage a new row and flush so database defaults and constraints apply."""
        self.db.add(entity)
        await self.db.flush()
        return entity

    async def delete(self, entity: ModelT) -> ModelT:
        await self.db.delete(entity)
        await self.db.flush()
        return entity
