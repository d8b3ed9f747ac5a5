"""Feed（保存的查询）API."""

from datetime import UTC, datetime
from typing import Any

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from tailburrow.api.errors import http_error
from tailburrow.core.credentials import PRIMARY_SOURCE
from tailburrow.core.errors import TailburrowError
from tailburrow.core.repository import ItemRepository
from tailburrow.core.runs import build_e621_client
from tailburrow.models.database import get_session
from tailburrow.models.feed import Feed

router = APIRouter(prefix="/api/feeds", tags=["feeds"])


class FeedRequest(BaseModel):
    """创建 / 修改 Feed."""

    name: str
    query: str


def _feed_dict(feed: Feed) -> dict[str, Any]:
    return {
        "id": feed.id,
        "name": feed.name,
        "query": feed.query,
        "created_at": feed.created_at.isoformat(),
        "updated_at": feed.updated_at.isoformat(),
    }


def _validate(request: FeedRequest) -> tuple[str, str]:
    name, query = request.name.strip(), request.query.strip()
    if not name or not query:
        raise HTTPException(status_code=400, detail="名称和查询都不能为空")
    return name, query


async def _get_feed(session: AsyncSession, feed_id: int) -> Feed:
    feed = await session.get(Feed, feed_id)
    if not feed:
        raise HTTPException(status_code=404, detail="Feed 不存在")
    return feed


@router.get("")
async def list_feeds(
    session: AsyncSession = Depends(get_session),
) -> dict[str, Any]:
    """获取 Feed 列表."""
    result = await session.execute(select(Feed).order_by(Feed.name))
    feeds = result.scalars().all()
    return {"total": len(feeds), "items": [_feed_dict(f) for f in feeds]}


@router.post("")
async def create_feed(
    request: FeedRequest,
    session: AsyncSession = Depends(get_session),
) -> dict[str, Any]:
    """创建 Feed."""
    name, query = _validate(request)
    feed = Feed(name=name, query=query)
    session.add(feed)
    await session.commit()
    return _feed_dict(feed)


@router.put("/{feed_id}")
async def update_feed(
    feed_id: int,
    request: FeedRequest,
    session: AsyncSession = Depends(get_session),
) -> dict[str, Any]:
    """修改 Feed."""
    feed = await _get_feed(session, feed_id)
    feed.name, feed.query = _validate(request)
    feed.updated_at = datetime.now(UTC)
    await session.commit()
    return _feed_dict(feed)


@router.delete("/{feed_id}")
async def delete_feed(
    feed_id: int,
    session: AsyncSession = Depends(get_session),
) -> dict[str, bool]:
    """删除 Feed."""
    feed = await _get_feed(session, feed_id)
    await session.delete(feed)
    await session.commit()
    return {"success": True}


@router.get("/{feed_id}/browse")
async def browse_feed(
    feed_id: int,
    cursor: str | None = None,
    session: AsyncSession = Depends(get_session),
) -> dict[str, Any]:
    """
    浏览 Feed 的一页结果.

    只读，不写入资料库；每个帖子标注是否已归档。
    """
    feed = await _get_feed(session, feed_id)
    try:
        client = await build_e621_client(session)
    except TailburrowError as e:
        raise http_error(e) from e

    try:
        page = await client.fetch_page(feed.query, cursor)
    except TailburrowError as e:
        raise http_error(e) from e
    finally:
        await client.close()

    repo = ItemRepository(session)
    posts = []
    for post in page.posts:
        posts.append(
            {
                "id": post.post_id,
                "page_url": post.page_url,
                "file_url": post.file_url,
                "ext": post.file_ext,
                "rating": post.rating,
                "score": post.score,
                "fav_count": post.fav_count,
                "artists": post.artists,
                "archived": await repo.exists(PRIMARY_SOURCE, post.post_id),
            }
        )

    return {"items": posts, "next_cursor": page.next_cursor}


@router.post("/favorite/{post_id}")
async def favorite_post(
    post_id: str,
    session: AsyncSession = Depends(get_session),
) -> dict[str, bool]:
    """在 e621 上收藏帖子."""
    try:
        client = await build_e621_client(session)
    except TailburrowError as e:
        raise http_error(e) from e

    try:
        await client.favorite(post_id)
    except TailburrowError as e:
        raise http_error(e) from e
    finally:
        await client.close()
    return {"success": True}
