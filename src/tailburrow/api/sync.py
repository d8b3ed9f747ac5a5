"""同步 API."""

import json
from typing import Any

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from tailburrow.api.errors import http_error
from tailburrow.core.credentials import PRIMARY_SOURCE, SOURCES
from tailburrow.core.errors import TailburrowError
from tailburrow.core.repository import ItemRepository
from tailburrow.core.runs import sync_cancel, sync_start, sync_status
from tailburrow.models.database import get_session
from tailburrow.models.sync import SyncRunRecord

router = APIRouter(prefix="/api/sync", tags=["sync"])


class SyncStartRequest(BaseModel):
    """启动参数."""

    max_new_downloads: int | None = None


def _check_source(source: str) -> None:
    if source not in SOURCES:
        raise HTTPException(status_code=404, detail=f"未知来源: {source}")


@router.get("/e621/unavailable")
async def list_unavailable(
    limit: int = 100,
    session: AsyncSession = Depends(get_session),
) -> dict[str, Any]:
    """无法归档的 e621 帖子."""
    records = await ItemRepository(session).list_unavailable(limit)
    return {"items": [r for r in records if r["source"] == PRIMARY_SOURCE]}


@router.post("/{source}/start")
async def start_sync(
    source: str,
    request: SyncStartRequest | None = None,
    session: AsyncSession = Depends(get_session),
) -> dict[str, Any]:
    """启动同步（后台运行）."""
    _check_source(source)
    max_new = request.max_new_downloads if request else None
    try:
        status = await sync_start(source, session, max_new)
    except TailburrowError as e:
        raise http_error(e) from e
    return status.to_dict()


@router.post("/{source}/cancel")
async def cancel_sync(source: str) -> dict[str, Any]:
    """请求取消同步."""
    _check_source(source)
    try:
        status = sync_cancel(source)
    except TailburrowError as e:
        raise http_error(e) from e
    return status.to_dict()


@router.get("/{source}/status")
async def get_sync_status(source: str) -> dict[str, Any]:
    """当前运行状态（供轮询）."""
    _check_source(source)
    return sync_status(source).to_dict()


@router.get("/{source}/history")
async def get_sync_history(
    source: str,
    limit: int = 20,
    session: AsyncSession = Depends(get_session),
) -> dict[str, Any]:
    """最近的同步记录."""
    _check_source(source)
    stmt = (
        select(SyncRunRecord)
        .where(SyncRunRecord.source == source)
        .order_by(SyncRunRecord.started_at.desc())  # type: ignore[attr-defined]
        .limit(limit)
    )
    result = await session.execute(stmt)

    return {
        "items": [
            {
                "id": r.id,
                "status": r.status,
                "counters": json.loads(r.counters_json or "{}"),
                "error_message": r.error_message,
                "started_at": r.started_at.isoformat(),
                "completed_at": r.completed_at.isoformat() if r.completed_at else None,
            }
            for r in result.scalars().all()
        ]
    }
