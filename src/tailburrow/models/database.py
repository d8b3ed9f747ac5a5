"""数据库初始化和会话管理."""

import logging
from collections.abc import AsyncGenerator
from typing import Any

from sqlalchemy import event, text
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlmodel import SQLModel

from tailburrow.core.errors import LibraryNotConfiguredError

logger = logging.getLogger(__name__)

# 全局引擎和会话工厂
_engine: Any = None
_session_factory: async_sessionmaker[AsyncSession] | None = None


def _set_sqlite_pragmas(dbapi_connection: Any, connection_record: Any) -> None:
    """WAL 模式允许同步写入时并发读取."""
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def create_engine(database_url: str) -> Any:
    """创建异步引擎并注册 SQLite pragma."""
    engine = create_async_engine(database_url, echo=False)
    if database_url.startswith("sqlite"):
        event.listen(engine.sync_engine, "connect", _set_sqlite_pragmas)
    return engine


async def init_db(database_url: str) -> None:
    """初始化数据库，创建所有表."""
    global _engine, _session_factory

    # 注册所有表
    from tailburrow.models import feed, item, settings, sync, unavailable  # noqa: F401

    if _engine is not None:
        await dispose_db()

    _engine = create_engine(database_url)
    _session_factory = async_sessionmaker(
        _engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )

    async with _engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)

    # 添加新列（如果不存在）
    await _add_item_columns()
    logger.info(f"数据库已初始化: {database_url}")


async def dispose_db() -> None:
    """关闭数据库引擎."""
    global _engine, _session_factory
    if _engine is not None:
        await _engine.dispose()
    _engine = None
    _session_factory = None


def is_initialized() -> bool:
    """数据库是否已初始化."""
    return _session_factory is not None


async def _add_item_columns() -> None:
    """为旧版资料库补齐 items / item_tags 的新列."""
    if _session_factory is None:
        return

    async with _session_factory() as session:
        result = await session.execute(text("PRAGMA table_info(items)"))
        columns = [row[1] for row in result.fetchall()]

        if "primary_artist" not in columns:
            logger.info("添加 primary_artist 列")
            await session.execute(
                text("ALTER TABLE items ADD COLUMN primary_artist VARCHAR")
            )

        if "trashed_at" not in columns:
            logger.info("添加 trashed_at 列")
            await session.execute(text("ALTER TABLE items ADD COLUMN trashed_at DATETIME"))

        result = await session.execute(text("PRAGMA table_info(item_tags)"))
        tag_columns = [row[1] for row in result.fetchall()]

        if "position" not in tag_columns:
            logger.info("添加 item_tags.position 列")
            await session.execute(
                text("ALTER TABLE item_tags ADD COLUMN position INTEGER DEFAULT 0")
            )

        await session.commit()


async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """获取数据库会话（用于依赖注入）."""
    if _session_factory is None:
        msg = "数据库未初始化，请先设置资料库根目录"
        raise LibraryNotConfiguredError(msg)

    async with _session_factory() as session:
        yield session


def async_session_maker() -> async_sessionmaker[AsyncSession]:
    """获取会话工厂（用于后台任务）."""
    if _session_factory is None:
        msg = "数据库未初始化，请先设置资料库根目录"
        raise LibraryNotConfiguredError(msg)
    return _session_factory
