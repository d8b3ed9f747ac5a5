"""跨来源去重 - 次来源候选与主来源记录按内容哈希合并."""

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Protocol

from tailburrow.core.credentials import PRIMARY_SOURCE, SECONDARY_SOURCE
from tailburrow.core.downloader import Downloader
from tailburrow.core.errors import (
    AuthenticationError,
    ScrapeError,
    StorageError,
    TailburrowError,
    TransientFetchError,
)
from tailburrow.core.fetcher import HashLookup, PostSummary
from tailburrow.core.hashing import content_hash
from tailburrow.core.library import MediaStore, normalize_ext
from tailburrow.core.repository import ItemDraft, ItemRepository, draft_from_primary_post
from tailburrow.models.item import Item
from tailburrow.utils.html_parser import SubmissionPage

logger = logging.getLogger(__name__)


class ReconcileOutcome(str, Enum):
    """单个候选的处理结果，值与统计字段名对应."""

    SKIPPED_EXISTING_URL = "skipped_url"
    SKIPPED_EXISTING_HASH = "skipped_md5"
    UPGRADED = "upgraded"
    IMPORTED_EXCLUSIVE = "imported"
    ERROR = "errors"


@dataclass
class SecondaryCandidate:
    """次来源收藏页中发现的一个投稿."""

    source_id: str
    page_url: str


@dataclass
class ReconcileResult:
    outcome: ReconcileOutcome
    item_id: int | None = None
    error: str | None = None


class SubmissionScraper(Protocol):
    async def fetch_submission(self, submission_id: str) -> SubmissionPage: ...


class CrossSourceReconciler:
    """
    处理次来源候选.

    1. 按 ID 或页面地址已存在 -> 跳过，不下载
    2. 下载次来源文件并计算哈希
    3. 本地已有同哈希作品 -> 跳过（主来源作品补充出处链接，计为升级）
    4. 主来源按哈希反查命中 -> 以主来源元数据入库，次来源页面作为出处
    5. 否则作为次来源独有作品入库

    单个候选的抓取、解析、存储错误返回 ERROR；认证错误向上抛出。
    """

    def __init__(
        self,
        repository: ItemRepository,
        media: MediaStore,
        scraper: SubmissionScraper,
        secondary_downloader: Downloader,
        *,
        hash_lookup: HashLookup | None = None,
        primary_downloader: Downloader | None = None,
        request_delay: float = 0.0,
        lookup_delay: float = 0.0,
    ) -> None:
        self.repository = repository
        self.media = media
        self.scraper = scraper
        self.secondary_downloader = secondary_downloader
        self.hash_lookup = hash_lookup
        self.primary_downloader = primary_downloader
        self.request_delay = request_delay
        self.lookup_delay = lookup_delay

    async def reconcile(self, candidate: SecondaryCandidate) -> ReconcileResult:
        """处理一个候选并返回结果."""
        repo = self.repository

        if await repo.exists(SECONDARY_SOURCE, candidate.source_id) or await repo.exists_by_url(
            candidate.page_url
        ):
            return ReconcileResult(ReconcileOutcome.SKIPPED_EXISTING_URL)

        try:
            if self.request_delay > 0:
                await asyncio.sleep(self.request_delay)
            page = await self.scraper.fetch_submission(candidate.source_id)
            data = await self.secondary_downloader.download(page.download_url)
            md5 = content_hash(data)

            local = await repo.exists_by_hash(md5)
            if local is not None:
                return await self._merge_local(local, candidate)

            post = await self._lookup_primary(md5)
            if post is not None:
                return await self._commit_upgrade(candidate, page, post, data)

            return await self._commit_exclusive(candidate, page, data, md5)
        except AuthenticationError:
            raise
        except (TransientFetchError, ScrapeError, StorageError) as e:
            logger.warning(f"处理投稿失败: {candidate.source_id} - {e}")
            return ReconcileResult(ReconcileOutcome.ERROR, error=str(e))

    async def _merge_local(self, item: Item, candidate: SecondaryCandidate) -> ReconcileResult:
        if item.source == PRIMARY_SOURCE and await self.repository.add_provenance(
            item, candidate.page_url
        ):
            logger.info(f"本地主来源作品补充出处: {item.item_id} <- {candidate.page_url}")
            return ReconcileResult(ReconcileOutcome.UPGRADED, item_id=item.item_id)
        return ReconcileResult(ReconcileOutcome.SKIPPED_EXISTING_HASH, item_id=item.item_id)

    async def _lookup_primary(self, md5: str) -> PostSummary | None:
        """主来源按哈希反查；查询失败视为未命中."""
        if self.hash_lookup is None:
            return None
        if self.lookup_delay > 0:
            await asyncio.sleep(self.lookup_delay)
        try:
            return await self.hash_lookup.lookup_by_hash(md5)
        except TailburrowError as e:
            logger.warning(f"哈希反查失败: {md5} - {e}")
            return None

    async def _commit_upgrade(
        self,
        candidate: SecondaryCandidate,
        page: SubmissionPage,
        post: PostSummary,
        fallback: bytes,
    ) -> ReconcileResult:
        repo = self.repository
        archived = await repo.get_by_source(PRIMARY_SOURCE, post.post_id)
        if archived is not None:
            # 记下次来源页面，之后的扫描按 URL 直接跳过
            await repo.add_provenance(archived, candidate.page_url)
            return ReconcileResult(ReconcileOutcome.SKIPPED_EXISTING_HASH, item_id=archived.item_id)

        data = fallback
        if post.file_url and self.primary_downloader is not None:
            try:
                data = await self.primary_downloader.download(post.file_url)
            except TransientFetchError as e:
                logger.info(f"主来源文件下载失败，使用次来源文件: e621/{post.post_id} - {e}")

        md5 = content_hash(data)
        if data is not fallback:
            existing = await repo.exists_by_hash(md5)
            if existing is not None:
                return await self._merge_local(existing, candidate)

        draft = draft_from_primary_post(post, md5)
        draft.sources.append(candidate.page_url)
        if data is fallback:
            draft.ext = normalize_ext(page.ext)
        stem = f"{draft.primary_artist}_e621_{post.post_id}"

        item = await repo.commit_new_item(draft, data, self.media, stem)
        if item is None:
            return ReconcileResult(ReconcileOutcome.SKIPPED_EXISTING_HASH)

        logger.info(f"已升级入库: {candidate.page_url} -> e621/{post.post_id}")
        return ReconcileResult(ReconcileOutcome.UPGRADED, item_id=item.item_id)

    async def _commit_exclusive(
        self, candidate: SecondaryCandidate, page: SubmissionPage, data: bytes, md5: str
    ) -> ReconcileResult:
        tags = [(page.artist, "artist")] + [(t, "general") for t in page.tags]
        draft = ItemDraft(
            source=SECONDARY_SOURCE,
            source_id=candidate.source_id,
            md5=md5,
            remote_url=page.download_url,
            ext=normalize_ext(page.ext),
            rating=page.rating,
            primary_artist=page.artist,
            tags=tags,
            sources=[candidate.page_url],
        )
        stem = f"{page.artist}_fa_{candidate.source_id}"

        item = await self.repository.commit_new_item(draft, data, self.media, stem)
        if item is None:
            return ReconcileResult(ReconcileOutcome.SKIPPED_EXISTING_URL)

        logger.info(f"已导入独有作品: furaffinity/{candidate.source_id}")
        return ReconcileResult(ReconcileOutcome.IMPORTED_EXCLUSIVE, item_id=item.item_id)
