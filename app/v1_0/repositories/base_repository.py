from typing import Any, Optional, Sequence, Tuple, Type, TypeVar, Generic, Protocol, runtime_checkable
from sqlalchemy import Select, select, func
from sqlalchemy.ext.asyncio import AsyncSession

# --- los modelos deben exponer .id ---
@runtime_checkable
class HasId(Protocol):
    id: Any  # columna PK

ModelT = TypeVar("ModelT", bound=HasId)


class BaseRepository(Generic[ModelT]):
    def __init__(self, model: Type[ModelT]):
        self.model = model

    async def add(self, entity: ModelT, session: AsyncSession) -> ModelT:
        session.add(entity)
        await session.flush([entity])
        return entity

    async def get_by_id(
        self,
        id_: Any,
        session: AsyncSession,
        *,
        for_update: bool = False,
    ) -> Optional[ModelT]:
        """
        Fetch one row by primary key.

        ``for_update`` locks the row for the rest of the transaction and
        overwrites any stale copy already held by the session.
        """
        stmt: Select = select(self.model).where(self.model.id == id_)
        if for_update:
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        res = await session.execute(stmt)
        return res.scalars().first()

    async def list_filtered(
        self,
        session: AsyncSession,
        *,
        filters: Sequence[Any] = (),
        order_by: Sequence[Any] = (),
        offset: int = 0,
        limit: Optional[int] = None,
    ) -> Tuple[list[ModelT], int]:
        """
        Return one page of rows matching ``filters`` and the total match count.
        """
        if not order_by:
            order_by = (self.model.id.desc(),)

        page_q: Select = select(self.model).where(*filters).order_by(*order_by).offset(offset)
        if limit is not None:
            page_q = page_q.limit(limit)

        items = list((await session.execute(page_q)).scalars().all())
        total = int(
            await session.scalar(
                select(func.count(self.model.id)).where(*filters)
            ) or 0
        )
        return items, total

    async def update_fields(
        self,
        entity: ModelT,
        data: dict[str, Any],
        session: AsyncSession,
        *,
        allow: set[str] | None = None,
    ) -> ModelT:
        for k, v in data.items():
            if allow and k not in allow:
                continue
            setattr(entity, k, v)
        await session.flush([entity])
        return entity

    async def delete(self, entity: ModelT, session: AsyncSession) -> None:
        await session.delete(entity)
        await session.flush()
