"""作品仓库 - 按 (source, source_id) 唯一存储归档作品."""

import asyncio
import json
import logging
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path

from sqlalchemy import delete, func
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from tailburrow.core.errors import StorageError
from tailburrow.core.fetcher import PostSummary
from tailburrow.core.library import (
    MediaStore,
    normalize_ext,
    pick_primary_artist,
    sanitize_slug,
)
from tailburrow.models.item import Item, ItemSource, ItemTag, SourceLink, Tag
from tailburrow.models.unavailable import UnavailablePost

logger = logging.getLogger(__name__)


@dataclass
class ItemDraft:
    """待提交的作品元数据（文件路径在提交时填入）."""

    source: str
    source_id: str
    md5: str | None = None
    remote_url: str | None = None
    ext: str | None = None
    rating: str | None = None
    fav_count: int | None = None
    score_total: int | None = None
    created_at: str | None = None
    primary_artist: str | None = None
    # (标签名, 类型)，按顺序保存
    tags: list[tuple[str, str]] = field(default_factory=list)
    sources: list[str] = field(default_factory=list)


@dataclass
class ItemView:
    """列表展示用的作品."""

    item_id: int
    source: str
    source_id: str
    remote_url: str | None
    file_abs: str
    ext: str | None
    tags: list[str]
    artists: list[str]
    sources: list[str]
    rating: str | None
    fav_count: int | None
    score_total: int | None
    created_at: str | None
    added_at: datetime


def typed_tags(post: PostSummary) -> list[tuple[str, str]]:
    """把主来源的分类标签展开为 (名称, 类型) 列表."""
    return [(name, tag_type) for tag_type, names in post.tags.items() for name in names]


def draft_from_primary_post(post: PostSummary, md5: str | None) -> ItemDraft:
    """主来源帖子 -> ItemDraft."""
    sources = list(post.sources)
    if post.page_url:
        sources.append(post.page_url)
    return ItemDraft(
        source="e621",
        source_id=post.post_id,
        md5=md5,
        remote_url=post.file_url,
        ext=normalize_ext(post.file_ext),
        rating=post.rating,
        fav_count=post.fav_count,
        score_total=post.score,
        created_at=post.created_at,
        primary_artist=sanitize_slug(pick_primary_artist(post.artists)),
        tags=typed_tags(post),
        sources=sources,
    )


def _saved_id(item: Item) -> int:
    if item.item_id is None:
        msg = "作品尚未写入数据库"
        raise StorageError(msg)
    return item.item_id


class ItemRepository:
    """归档作品的读写."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def exists(self, source: str, source_id: str) -> bool:
        """(source, source_id) 是否已存在（含回收站中的作品）."""
        stmt = (
            select(Item.item_id)
            .where(Item.source == source, Item.source_id == source_id)
            .limit(1)
        )
        result = await self.session.execute(stmt)
        return result.first() is not None

    async def exists_by_hash(self, md5: str) -> Item | None:
        """按内容哈希查找作品."""
        stmt = select(Item).where(Item.md5 == md5).order_by(Item.item_id).limit(1)
        result = await self.session.execute(stmt)
        return result.scalars().first()

    async def exists_by_url(self, url: str) -> bool:
        """远程地址或出处链接中是否已有该 URL."""
        stmt = select(Item.item_id).where(Item.remote_url == url).limit(1)
        result = await self.session.execute(stmt)
        if result.first() is not None:
            return True

        link_stmt = (
            select(ItemSource.item_id)
            .join(SourceLink, SourceLink.source_row_id == ItemSource.source_row_id)
            .where(SourceLink.url == url)
            .limit(1)
        )
        result = await self.session.execute(link_stmt)
        return result.first() is not None

    async def get(self, item_id: int) -> Item | None:
        """按 ID 获取作品."""
        return await self.session.get(Item, item_id)

    async def get_by_source(self, source: str, source_id: str) -> Item | None:
        """按 (source, source_id) 获取作品（含回收站中的作品）."""
        stmt = select(Item).where(Item.source == source, Item.source_id == source_id).limit(1)
        result = await self.session.execute(stmt)
        return result.scalars().first()

    async def _get_or_create_tag(self, name: str, tag_type: str) -> Tag:
        result = await self.session.execute(select(Tag).where(Tag.name == name))
        tag = result.scalar_one_or_none()
        if tag is None:
            tag = Tag(name=name, type=tag_type)
            self.session.add(tag)
            await self.session.flush()
        elif tag_type != "general" and tag.type != tag_type:
            tag.type = tag_type
        return tag

    async def _attach_tags(self, item_id: int, tags: list[tuple[str, str]]) -> None:
        result = await self.session.execute(
            select(ItemTag.tag_id, ItemTag.position).where(ItemTag.item_id == item_id)
        )
        rows = result.all()
        linked = {row[0] for row in rows}
        position = max((row[1] for row in rows), default=-1) + 1

        for name, tag_type in tags:
            clean = name.strip().lower()
            if not clean:
                continue
            tag = await self._get_or_create_tag(clean, tag_type)
            if tag.tag_id in linked:
                continue
            self.session.add(ItemTag(item_id=item_id, tag_id=tag.tag_id, position=position))
            linked.add(tag.tag_id)
            position += 1

    async def _attach_sources(self, item_id: int, urls: list[str]) -> bool:
        attached = False
        for url in dict.fromkeys(u.strip() for u in urls):
            if not url:
                continue
            result = await self.session.execute(select(SourceLink).where(SourceLink.url == url))
            link = result.scalar_one_or_none()
            if link is None:
                link = SourceLink(url=url)
                self.session.add(link)
                await self.session.flush()
            existing = await self.session.get(ItemSource, (item_id, link.source_row_id))
            if existing is None:
                self.session.add(ItemSource(item_id=item_id, source_row_id=link.source_row_id))
                attached = True
        return attached

    async def insert(self, draft: ItemDraft, file_rel: str, size_bytes: int | None = None) -> Item:
        """在一个事务中插入作品、标签和出处链接."""
        item = Item(
            source=draft.source,
            source_id=draft.source_id,
            md5=draft.md5,
            remote_url=draft.remote_url,
            file_rel=file_rel,
            ext=draft.ext,
            size_bytes=size_bytes,
            rating=draft.rating,
            fav_count=draft.fav_count,
            score_total=draft.score_total,
            created_at=draft.created_at,
            primary_artist=draft.primary_artist,
        )
        self.session.add(item)
        await self.session.flush()
        item_id = _saved_id(item)

        await self._attach_tags(item_id, draft.tags)
        await self._attach_sources(item_id, draft.sources)
        await self.session.commit()
        return item

    async def commit_new_item(
        self, draft: ItemDraft, data: bytes, media: MediaStore, stem: str
    ) -> Item | None:
        """
        写入文件并插入作品.

        文件和元数据要么都存在，要么都不存在。键已存在时删除文件并返回 None。

        Raises:
            StorageError: 写文件或写数据库失败
        """
        ext = draft.ext or "jpg"
        loop = asyncio.get_running_loop()
        file_rel = await loop.run_in_executor(None, media.write, stem, ext, data)

        try:
            return await self.insert(draft, file_rel, size_bytes=len(data))
        except IntegrityError:
            await self.session.rollback()
            media.remove(file_rel)
            logger.info(f"跳过重复插入: {draft.source}/{draft.source_id}")
            return None
        except SQLAlchemyError as e:
            await self.session.rollback()
            media.remove(file_rel)
            msg = f"写入数据库失败: {e}"
            raise StorageError(msg) from e

    async def add_provenance(self, item: Item, url: str) -> bool:
        """给作品追加出处链接，返回是否为新链接."""
        item_id = _saved_id(item)
        attached = await self._attach_sources(item_id, [url])
        await self.session.commit()
        return attached

    async def upgrade_to_primary(self, item: Item, post: PostSummary) -> Item:
        """把次来源作品原地升级为主来源记录，保留原文件."""
        item_id = _saved_id(item)
        draft = draft_from_primary_post(post, item.md5)

        item.source = draft.source
        item.source_id = draft.source_id
        item.remote_url = draft.remote_url
        item.rating = draft.rating
        item.fav_count = draft.fav_count
        item.score_total = draft.score_total
        item.created_at = draft.created_at
        item.primary_artist = draft.primary_artist

        await self._attach_tags(item_id, draft.tags)
        await self._attach_sources(item_id, draft.sources)
        await self.session.commit()
        return item

    async def update_tags(self, item_id: int, tags: list[str]) -> bool:
        """整体替换作品的标签列表."""
        item = await self.session.get(Item, item_id)
        if item is None:
            return False

        await self.session.execute(delete(ItemTag).where(ItemTag.item_id == item_id))
        await self._attach_tags(item_id, [(t, "general") for t in tags])
        await self.session.commit()
        return True

    async def soft_delete(self, item_id: int, media: MediaStore) -> bool:
        """移入回收站：移动文件并记录 trashed_at."""
        item = await self.session.get(Item, item_id)
        if item is None or item.trashed_at is not None:
            return False

        media.move_to_trash(item.file_rel)
        item.trashed_at = datetime.now(UTC)
        await self.session.commit()
        logger.info(f"已移入回收站: {item.source}/{item.source_id}")
        return True

    async def purge_trash(self, cutoff: datetime, media: MediaStore) -> int:
        """永久删除 trashed_at 早于 cutoff 的作品."""
        stmt = select(Item).where(Item.trashed_at.is_not(None), Item.trashed_at < cutoff)  # type: ignore[union-attr]
        result = await self.session.execute(stmt)
        items = list(result.scalars().all())

        for item in items:
            await self.session.execute(delete(ItemTag).where(ItemTag.item_id == item.item_id))
            await self.session.execute(
                delete(ItemSource).where(ItemSource.item_id == item.item_id)
            )
            media.purge_trashed(item.file_rel)
            await self.session.delete(item)

        await self.session.commit()
        if items:
            logger.info(f"已永久删除 {len(items)} 个过期作品")
        return len(items)

    async def count_items(self) -> int:
        """未删除作品数量."""
        stmt = select(func.count()).select_from(Item).where(Item.trashed_at.is_(None))  # type: ignore[union-attr]
        result = await self.session.execute(stmt)
        return int(result.scalar() or 0)

    async def item_tags(self, item_id: int) -> list[tuple[str, str]]:
        """作品标签 (名称, 类型)，按保存顺序."""
        stmt = (
            select(Tag.name, Tag.type)
            .join(ItemTag, ItemTag.tag_id == Tag.tag_id)
            .where(ItemTag.item_id == item_id)
            .order_by(ItemTag.position, Tag.name)
        )
        result = await self.session.execute(stmt)
        return [(row[0], row[1]) for row in result.all()]

    async def item_sources(self, item_id: int) -> list[str]:
        """作品的出处链接."""
        stmt = (
            select(SourceLink.url)
            .join(ItemSource, ItemSource.source_row_id == SourceLink.source_row_id)
            .where(ItemSource.item_id == item_id)
            .order_by(SourceLink.source_row_id)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def list_items(self, root: Path, limit: int = 100, offset: int = 0) -> list[ItemView]:
        """按加入时间倒序列出未删除的作品."""
        stmt = (
            select(Item)
            .where(Item.trashed_at.is_(None))  # type: ignore[union-attr]
            .order_by(Item.added_at.desc(), Item.item_id.desc())  # type: ignore[union-attr]
            .offset(offset)
            .limit(limit)
        )
        result = await self.session.execute(stmt)
        items = result.scalars().all()

        views: list[ItemView] = []
        for item in items:
            item_id = _saved_id(item)
            tags = await self.item_tags(item_id)
            views.append(
                ItemView(
                    item_id=item_id,
                    source=item.source,
                    source_id=item.source_id,
                    remote_url=item.remote_url,
                    file_abs=str(root / item.file_rel),
                    ext=item.ext,
                    tags=[name for name, _ in tags],
                    artists=[name for name, tag_type in tags if tag_type == "artist"],
                    sources=await self.item_sources(item_id),
                    rating=item.rating,
                    fav_count=item.fav_count,
                    score_total=item.score_total,
                    created_at=item.created_at,
                    added_at=item.added_at,
                )
            )
        return views

    async def record_unavailable(
        self, source: str, source_id: str, reason: str, sources: list[str]
    ) -> None:
        """记录无法归档的帖子，同一键只保留一条."""
        stmt = select(UnavailablePost).where(
            UnavailablePost.source == source, UnavailablePost.source_id == source_id
        )
        result = await self.session.execute(stmt)
        record = result.scalar_one_or_none()
        sources_json = json.dumps(sources, ensure_ascii=False)

        if record:
            record.reason = reason
            record.sources_json = sources_json
            record.seen_at = datetime.now(UTC)
        else:
            self.session.add(
                UnavailablePost(
                    source=source,
                    source_id=source_id,
                    reason=reason,
                    sources_json=sources_json,
                )
            )
        await self.session.commit()

    async def list_unavailable(self, limit: int = 100) -> list[dict[str, object]]:
        """按时间倒序列出无法归档的帖子."""
        stmt = (
            select(UnavailablePost)
            .order_by(UnavailablePost.seen_at.desc())  # type: ignore[attr-defined]
            .limit(limit)
        )
        result = await self.session.execute(stmt)
        return [
            {
                "source": r.source,
                "source_id": r.source_id,
                "reason": r.reason,
                "seen_at": r.seen_at.isoformat(),
                "sources": json.loads(r.sources_json or "[]"),
            }
            for r in result.scalars().all()
        ]
