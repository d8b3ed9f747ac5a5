"""定时任务定义."""

import logging
from datetime import UTC, datetime, timedelta

from apscheduler.schedulers.asyncio import AsyncIOScheduler

from tailburrow.config import Settings, get_library_root
from tailburrow.core.credentials import PRIMARY_SOURCE
from tailburrow.core.errors import TailburrowError
from tailburrow.core.library import MediaStore
from tailburrow.core.repository import ItemRepository
from tailburrow.core.runs import get_engine, sync_start
from tailburrow.models.database import async_session_maker, is_initialized

logger = logging.getLogger(__name__)

_scheduler: AsyncIOScheduler | None = None


async def auto_sync_task() -> None:
    """定时同步 e621 收藏夹；已有运行或未配置时跳过."""
    if not is_initialized():
        logger.info("资料库未设置，跳过自动同步")
        return

    engine = get_engine(PRIMARY_SOURCE)
    if engine is not None and engine.is_running:
        logger.info("已有同步在运行，跳过本次调度")
        return

    async with async_session_maker()() as session:
        try:
            await sync_start(PRIMARY_SOURCE, session)
        except TailburrowError as e:
            logger.info(f"跳过自动同步: {e}")
            return
    logger.info("自动同步已启动")


async def purge_trash_task(retention_days: int) -> int:
    """永久删除回收站中超过保留期的作品."""
    if not is_initialized():
        return 0

    cutoff = datetime.now(UTC) - timedelta(days=retention_days)
    media = MediaStore(get_library_root())
    async with async_session_maker()() as session:
        purged = await ItemRepository(session).purge_trash(cutoff, media)

    logger.info(f"回收站清理完成: {purged} 个作品")
    return purged


def create_scheduler(settings: Settings) -> AsyncIOScheduler:
    """创建并启动定时任务调度器."""
    global _scheduler

    _scheduler = AsyncIOScheduler()

    _scheduler.add_job(
        purge_trash_task,
        "interval",
        days=1,
        args=[settings.trash_retention_days],
        id="purge_trash_task",
        name="回收站清理",
        replace_existing=True,
    )

    if settings.auto_sync_interval_minutes > 0:
        _scheduler.add_job(
            auto_sync_task,
            "interval",
            minutes=settings.auto_sync_interval_minutes,
            id="auto_sync_task",
            name="e621 自动同步",
            replace_existing=True,
        )

    _scheduler.start()
    logger.info(
        f"定时任务调度器已启动，自动同步间隔: {settings.auto_sync_interval_minutes} 分钟"
    )

    return _scheduler


async def shutdown_scheduler() -> None:
    """关闭定时任务调度器."""
    global _scheduler
    if _scheduler:
        _scheduler.shutdown(wait=False)
        logger.info("定时任务调度器已关闭")
        _scheduler = None
