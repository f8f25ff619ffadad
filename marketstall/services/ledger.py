"""Stall availability, mutated only by compare-and-set inside a caller's transaction."""

from __future__ import annotations

import logging
import uuid

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from marketstall.errors import NotFound, StallUnavailable
from marketstall.models.stall import Stall

logger = logging.getLogger("marketstall.ledger")


class StallLedger:
    """Single source of truth for a stall's availability.

    Methods never commit; they must run inside the same transaction as the
    write that depends on them (application insert, session open/close,
    release on decline).
    """

    async def get_stall(self, session: AsyncSession, stall_id: int, *, for_update: bool = False) -> Stall:
        stmt = select(Stall).where(Stall.id == stall_id)
        if for_update:
            stmt = stmt.with_for_update()
        stall = (await session.execute(stmt)).scalar_one_or_none()
        if stall is None:
            raise NotFound(f"Stall {stall_id} not found")
        return stall

    async def is_available(self, session: AsyncSession, stall_id: int) -> bool:
        stall = await self.get_stall(session, stall_id)
        return bool(stall.is_available) and stall.status == "active"

    async def try_reserve(
        self,
        session: AsyncSession,
        stall_id: int,
        *,
        session_id: uuid.UUID | None = None,
    ) -> bool:
        """Flip an available, active stall to unavailable. False if someone got there first."""

        values: dict = {"is_available": False}
        if session_id is not None:
            values["current_session_id"] = session_id

        res = await session.execute(
            update(Stall)
            .where(
                Stall.id == stall_id,
                Stall.is_available.is_(True),
                Stall.status == "active",
            )
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        reserved = res.rowcount == 1
        logger.debug("try_reserve stall_id=%s reserved=%s", stall_id, reserved)
        return reserved

    async def reserve_or_raise(
        self,
        session: AsyncSession,
        stall_id: int,
        *,
        session_id: uuid.UUID | None = None,
    ) -> None:
        if await self.try_reserve(session, stall_id, session_id=session_id):
            return
        # Distinguish an unknown stall from a lost race.
        await self.get_stall(session, stall_id)
        raise StallUnavailable(stall_id)

    async def release(self, session: AsyncSession, stall_id: int) -> None:
        """Return a stall to Available and detach any session reference."""

        await session.execute(
            update(Stall)
            .where(Stall.id == stall_id)
            .values(is_available=True, current_session_id=None)
            .execution_options(synchronize_session=False)
        )
        logger.debug("release stall_id=%s", stall_id)

    async def detach_session(self, session: AsyncSession, stall_id: int) -> None:
        """Clear the session reference while keeping the stall allocated."""

        await session.execute(
            update(Stall)
            .where(Stall.id == stall_id)
            .values(current_session_id=None)
            .execution_options(synchronize_session=False)
        )
