"""Directory store helpers: generic record access over SQLAlchemy models."""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Sequence, Type, TypeVar

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from database import Base


ModelT = TypeVar("ModelT", bound=Base)


async def get_all(
    db: AsyncSession,
    model: Type[ModelT],
    *,
    order_by: Optional[Sequence[Any]] = None,
) -> List[ModelT]:
    query = select(model)
    if order_by:
        query = query.order_by(*order_by)
    result = await db.execute(query)
    return list(result.scalars().all())


async def get_by_id(
    db: AsyncSession,
    model: Type[ModelT],
    record_id: str,
    *,
    for_update: bool = False,
) -> Optional[ModelT]:
    query = select(model).where(model.id == record_id)
    if for_update:
        query = query.with_for_update()
    result = await db.execute(query)
    return result.scalar_one_or_none()


async def get_by_filter(
    db: AsyncSession,
    model: Type[ModelT],
    *,
    order_by: Optional[Sequence[Any]] = None,
    **filters: Any,
) -> List[ModelT]:
    """Return records whose columns equal every ``field=value`` given."""
    query = select(model)
    for field, value in filters.items():
        query = query.where(getattr(model, field) == value)
    if order_by:
        query = query.order_by(*order_by)
    result = await db.execute(query)
    return list(result.scalars().all())


def create_record(db: AsyncSession, model: Type[ModelT], values: Dict[str, Any]) -> ModelT:
    """Stage a new record; the id is assigned by the model default on flush."""
    record = model(**values)
    db.add(record)
    return record


def update_record(record: ModelT, values: Dict[str, Any]) -> ModelT:
    for field, value in values.items():
        setattr(record, field, value)
    return record


async def delete_record(db: AsyncSession, record: Any) -> None:
    await db.delete(record)
