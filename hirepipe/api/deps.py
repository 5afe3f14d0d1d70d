from typing import Callable

from fastapi import Header
from sqlalchemy.ext.asyncio import AsyncSession

from hirepipe.db.session import SessionLocal, get_session


async def get_db_session() -> AsyncSession:
    async for session in get_session():
        yield session


def get_session_factory() -> Callable[[], AsyncSession]:
    return SessionLocal


async def get_actor_id(x_user_id: str | None = Header(default=None)) -> str | None:
    # Identity is resolved upstream; the engine only records who acted.
    if x_user_id is None:
        return None
    return x_user_id.strip() or None
