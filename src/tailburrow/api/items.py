"""作品 API."""

from dataclasses import asdict
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from tailburrow.api.errors import http_error
from tailburrow.config import get_library_root
from tailburrow.core.errors import TailburrowError
from tailburrow.core.library import MediaStore
from tailburrow.core.repository import ItemRepository
from tailburrow.models.database import get_session

router = APIRouter(prefix="/api/items", tags=["items"])


class TagsRequest(BaseModel):
    """替换标签."""

    tags: list[str]


@router.get("")
async def list_items(
    limit: int = Query(100, ge=1, le=1000, description="每页数量"),
    offset: int = Query(0, ge=0, description="偏移"),
    session: AsyncSession = Depends(get_session),
) -> dict[str, Any]:
    """按加入时间倒序列出作品."""
    repo = ItemRepository(session)
    views = await repo.list_items(get_library_root(), limit=limit, offset=offset)

    items = []
    for view in views:
        data = asdict(view)
        data["added_at"] = view.added_at.isoformat()
        items.append(data)

    return {
        "total": await repo.count_items(),
        "limit": limit,
        "offset": offset,
        "items": items,
    }


@router.get("/count")
async def count_items(
    session: AsyncSession = Depends(get_session),
) -> dict[str, int]:
    """作品数量（不含回收站）."""
    return {"count": await ItemRepository(session).count_items()}


@router.patch("/{item_id}/tags")
async def update_tags(
    item_id: int,
    request: TagsRequest,
    session: AsyncSession = Depends(get_session),
) -> dict[str, Any]:
    """替换作品标签."""
    repo = ItemRepository(session)
    if not await repo.update_tags(item_id, request.tags):
        raise HTTPException(status_code=404, detail="作品不存在")
    return {"id": item_id, "tags": [name for name, _ in await repo.item_tags(item_id)]}


@router.delete("/{item_id}")
async def trash_item(
    item_id: int,
    session: AsyncSession = Depends(get_session),
) -> dict[str, bool]:
    """移入回收站."""
    media = MediaStore(get_library_root())
    try:
        trashed = await ItemRepository(session).soft_delete(item_id, media)
    except TailburrowError as e:
        raise http_error(e) from e
    if not trashed:
        raise HTTPException(status_code=404, detail="作品不存在或已在回收站")
    return {"success": True}
