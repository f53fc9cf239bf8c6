from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from functools import lru_cache
from typing import AsyncIterator, Awaitable, Callable, TypeVar

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker, create_async_engine
from sqlmodel import SQLModel
from sqlmodel.ext.asyncio.session import AsyncSession

from bookmark_backend.config import settings
from bookmark_backend.db_urls import normalize_database_url_for_async

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _create_async_engine(database_url: str) -> AsyncEngine:
    # 运行时一律走异步 driver（aiosqlite / psycopg）
    url = normalize_database_url_for_async(database_url)
    return create_async_engine(url, echo=False, pool_pre_ping=True)


@lru_cache(maxsize=4)
def get_engine() -> AsyncEngine:
    # 测试/部署可覆写 settings.database_url，随后重建 engine
    return _create_async_engine(settings.database_url)


def reset_engine_cache() -> None:
    get_engine.cache_clear()


def dispose_engine_cache() -> None:
    # 同步调用方无法 await AsyncEngine.dispose()；这里只丢弃连接池，
    # 不在事件循环之外关闭连接
    if get_engine.cache_info().currsize:
        get_engine().sync_engine.dispose(close=False)
    get_engine.cache_clear()


async def init_db() -> None:
    # 仅作本地/测试兜底；生产环境表结构以 Alembic 迁移为准
    engine = get_engine()
    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)


@asynccontextmanager
async def session_scope() -> AsyncIterator[AsyncSession]:
    session_maker = async_sessionmaker(get_engine(), class_=AsyncSession, expire_on_commit=False)
    async with session_maker() as session:
        yield session


async def get_session() -> AsyncIterator[AsyncSession]:
    session_maker = async_sessionmaker(get_engine(), class_=AsyncSession, expire_on_commit=False)
    async with session_maker() as session:
        yield session


async def run_in_transaction(session: AsyncSession, apply: Callable[[], Awaitable[T]]) -> T:
    """在单个事务中执行 ``apply``；若 session 已自动开启事务则直接复用并提交。"""
    try:
        if session.in_transaction():
            out = await apply()
            await session.commit()
            return out
        async with session.begin():
            return await apply()
    except Exception:
        try:
            await session.rollback()
        except SQLAlchemyError:
            logger.warning("rollback after failed transaction also failed", exc_info=True)
        raise
