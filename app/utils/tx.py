from contextlib import asynccontextmanager
from typing import AsyncIterator

from sqlalchemy.ext.asyncio import AsyncSession


@asynccontextmanager
async def maybe_begin(session: AsyncSession) -> AsyncIterator[None]:
    """
    Join the caller's transaction when one is open; otherwise open one
    that commits on exit and rolls back on error.
    """
    if session.in_transaction():
        yield
        return
    async with session.begin():
        yield
