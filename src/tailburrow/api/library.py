"""资料库 API."""

from pathlib import Path
from typing import Any

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from tailburrow.config import AppConfig, clear_app_config, load_app_config, save_app_config
from tailburrow.core.credentials import SOURCES
from tailburrow.core.library import database_url, ensure_layout
from tailburrow.core.repository import ItemRepository
from tailburrow.core.runs import get_engine
from tailburrow.models.database import dispose_db, get_session, init_db, is_initialized

router = APIRouter(prefix="/api/library", tags=["library"])


class LibraryRequest(BaseModel):
    """设置资料库根目录."""

    library_root: str


def _ensure_idle() -> None:
    for source in SOURCES:
        engine = get_engine(source)
        if engine is not None and engine.is_running:
            raise HTTPException(status_code=409, detail=f"{source} 同步正在运行")


@router.get("")
async def get_config() -> dict[str, Any]:
    """当前资料库配置."""
    config = load_app_config()
    return {
        "library_root": config.library_root,
        "initialized": is_initialized(),
    }


@router.put("")
async def set_library_root(request: LibraryRequest) -> dict[str, Any]:
    """设置资料库根目录，创建目录结构并初始化数据库."""
    _ensure_idle()
    root = Path(request.library_root).expanduser()
    if not root.is_dir():
        raise HTTPException(status_code=400, detail=f"目录不存在: {root}")

    root = root.resolve()
    ensure_layout(root)
    await init_db(database_url(root))
    save_app_config(AppConfig(library_root=str(root)))
    return {"library_root": str(root), "initialized": True}


@router.delete("")
async def clear_library_root() -> dict[str, bool]:
    """清除资料库配置（不删除文件）."""
    _ensure_idle()
    clear_app_config()
    await dispose_db()
    return {"success": True}


@router.get("/stats")
async def library_stats(
    session: AsyncSession = Depends(get_session),
) -> dict[str, int]:
    """资料库统计."""
    return {"items": await ItemRepository(session).count_items()}
