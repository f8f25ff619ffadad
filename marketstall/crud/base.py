from __future__ import annotations

from typing import Any, Generic, TypeVar

from pydantic import BaseModel
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession


TModel = TypeVar("TModel")


def _to_dict(obj: Any, *, exclude_unset: bool = True) -> dict[str, Any]:
    """Best-effort conversion for Pydantic models / plain dict payloads."""

    if obj is None:
        return {}
    if isinstance(obj, dict):
        return obj
    if isinstance(obj, BaseModel):
        return obj.model_dump(exclude_unset=exclude_unset)
    return dict(vars(obj))


class BaseCRUD(Generic[TModel]):
    """Generic CRUD helper for SQLAlchemy (async).

    Methods intentionally do NOT commit. Callers control transaction boundaries.
    """

    def __init__(self, model: type[TModel]) -> None:
        self.model = model

    async def create(self, session: AsyncSession, *, obj_in: Any, **extra: Any) -> TModel:
        data = {**_to_dict(obj_in, exclude_unset=False), **extra}
        db_obj = self.model(**data)  # type: ignore[call-arg]
        session.add(db_obj)
        await session.flush()
        return db_obj

    async def get(self, session: AsyncSession, *, id: Any) -> TModel | None:
        return await self.get_by(session, field="id", value=id)

    async def get_by(self, session: AsyncSession, *, field: str, value: Any) -> TModel | None:
        q = select(self.model).where(getattr(self.model, field) == value)
        r = await session.execute(q)
        return r.scalar_one_or_none()

    async def update(self, session: AsyncSession, *, db_obj: TModel, obj_in: Any) -> TModel:
        data = _to_dict(obj_in)

        for field, value in data.items():
            if hasattr(db_obj, field):
                setattr(db_obj, field, value)

        session.add(db_obj)
        await session.flush()
        return db_obj
