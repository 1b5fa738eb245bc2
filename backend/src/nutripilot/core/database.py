from __future__ import annotations

import functools
from typing import AsyncIterator

from fastapi import Depends
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker, create_async_engine
from sqlmodel import SQLModel
from sqlmodel.ext.asyncio.session import AsyncSession

from .config import get_settings
from .errors import UpstreamError


def _sqlite_connect_args(url: str) -> dict:
    if url.startswith("sqlite"):
        # Required for SQLite when used with FastAPI in threaded servers.
        return {"check_same_thread": False}
    return {}


def build_engine(url: str, echo: bool = False) -> AsyncEngine:
    return create_async_engine(url, echo=echo, connect_args=_sqlite_connect_args(url))


def build_session_factory(bind: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(bind, class_=AsyncSession, expire_on_commit=False)


settings = get_settings()

engine = build_engine(settings.database_url, echo=settings.database_echo)
session_factory = build_session_factory(engine)


async def init_db(bind: AsyncEngine | None = None) -> None:
    # Import models so SQLModel sees the metadata.
    from nutripilot import models  # noqa: F401  (import for side effect)

    async with (bind or engine).begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    return session_factory


async def get_session(
    factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
) -> AsyncIterator[AsyncSession]:
    async with factory() as session:
        yield session


def datastore_errors(action: str):
    """Decorate an async service call so SQLAlchemy failures surface as ``UpstreamError`` (502)."""

    def decorate(fn):
        @functools.wraps(fn)
        async def wrapper(*args, **kwargs):
            try:
                return await fn(*args, **kwargs)
            except SQLAlchemyError as exc:
                raise UpstreamError(f"Could not {action}: {exc}", upstream="datastore") from exc

        return wrapper

    return decorate
