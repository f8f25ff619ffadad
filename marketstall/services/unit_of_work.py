from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from marketstall.errors import PersistenceFailure

logger = logging.getLogger("marketstall.uow")


@asynccontextmanager
async def unit_of_work(session: AsyncSession) -> AsyncIterator[AsyncSession]:
    """Run a block as one all-or-nothing transaction.

    Domain errors raised inside the block roll the transaction back and
    propagate unchanged. Storage errors are rolled back and surfaced as
    PersistenceFailure.
    """

    if session.in_transaction():
        # Reads issued on this session (autobegin) must not leak into the
        # write transaction's boundaries.
        await session.rollback()

    try:
        async with session.begin():
            yield session
    except SQLAlchemyError as e:
        logger.exception("unit_of_work_rolled_back error=%s", type(e).__name__)
        raise PersistenceFailure(cause=e) from e
