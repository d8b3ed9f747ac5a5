"""TailBurrow 主应用入口."""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import UTC, datetime

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import update

from tailburrow import __version__
from tailburrow.api import credentials, feeds, items, library, sync
from tailburrow.api.errors import http_error
from tailburrow.config import get_library_root, get_settings
from tailburrow.core.engine import RunState
from tailburrow.core.errors import LibraryNotConfiguredError, TailburrowError
from tailburrow.core.library import database_url, ensure_layout
from tailburrow.models.database import async_session_maker, dispose_db, init_db
from tailburrow.models.sync import SyncRunRecord
from tailburrow.scheduler import create_scheduler, shutdown_scheduler

# 配置日志
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


async def _open_library() -> bool:
    """打开已配置的资料库；未配置时返回 False."""
    try:
        root = get_library_root()
    except LibraryNotConfiguredError:
        logger.info("资料库未设置，等待用户选择目录")
        return False

    ensure_layout(root)
    await init_db(database_url(root))
    return True


async def _reset_stuck_runs() -> None:
    """服务重启后，把仍为 running 的同步记录标记为失败."""
    async with async_session_maker()() as session:
        result = await session.execute(
            update(SyncRunRecord)
            .where(SyncRunRecord.status == RunState.RUNNING)
            .values(
                status=RunState.FAILED,
                error_message="服务重启，运行中断",
                completed_at=datetime.now(UTC),
            )
        )
        await session.commit()

        if result.rowcount:
            logger.info(f"已重置中断的同步记录: {result.rowcount}")


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """应用生命周期管理."""
    app_settings = get_settings()

    logger.info("正在打开资料库...")
    if await _open_library():
        await _reset_stuck_runs()

    logger.info("正在启动定时任务...")
    create_scheduler(app_settings)

    logger.info("TailBurrow 启动完成！")
    yield

    logger.info("正在关闭...")
    await shutdown_scheduler()
    await dispose_db()
    logger.info("TailBurrow 已关闭")


app = FastAPI(
    title="TailBurrow",
    description="本地优先的收藏归档 - e621 / FurAffinity 同步与去重",
    version=__version__,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(TailburrowError)
async def tailburrow_error_handler(request: Request, exc: TailburrowError) -> JSONResponse:
    """未在路由中处理的领域错误."""
    error = http_error(exc)
    return JSONResponse(status_code=error.status_code, content={"detail": error.detail})


# 注册路由
app.include_router(library.router)
app.include_router(credentials.router)
app.include_router(sync.router)
app.include_router(items.router)
app.include_router(feeds.router)


@app.get("/")
async def root() -> dict:
    """根路径."""
    return {
        "name": "TailBurrow",
        "version": __version__,
        "description": "本地优先的收藏归档",
    }


@app.get("/health")
async def health() -> dict:
    """健康检查."""
    return {"status": "ok"}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "tailburrow.main:app",
        host="127.0.0.1",
        port=8000,
        reload=False,
    )
