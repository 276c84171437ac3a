from typing import Annotated, AsyncGenerator

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.db import AsyncSessionLocal


async def get_async_session() -> AsyncGenerator[AsyncSession, None]:
    """
    Yield one session per request and close it when the request finishes.

    Services open their own ``session.begin()`` blocks on it, so nothing here
    commits or rolls back.
    """
    async with AsyncSessionLocal() as async_session:
        yield async_session


SessionDep = Annotated[AsyncSession, Depends(get_async_session)]
