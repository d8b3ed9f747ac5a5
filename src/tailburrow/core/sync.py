"""主来源同步引擎 - 逐页扫描 e621 收藏夹并归档新帖子."""

import logging
from dataclasses import dataclass
from typing import cast

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from tailburrow.core.credentials import PRIMARY_SOURCE, SECONDARY_SOURCE
from tailburrow.core.downloader import Downloader
from tailburrow.core.engine import BaseSyncEngine, Closable, RunStatus
from tailburrow.core.errors import (
    StorageError,
    TransientFetchError,
    UnavailableContentError,
)
from tailburrow.core.fetcher import PaginatedFetcher, PostSummary
from tailburrow.core.hashing import content_hash
from tailburrow.core.library import MediaStore
from tailburrow.core.repository import ItemRepository, draft_from_primary_post

logger = logging.getLogger(__name__)

REASON_NO_FILE_URL = "no file URL"
REASON_DOWNLOAD_FAILED = "download_failed"


def _file_url(post: PostSummary) -> str:
    """帖子的原始文件地址；被删除或受限的帖子没有."""
    if not post.file_url:
        msg = "帖子无文件地址"
        raise UnavailableContentError(msg)
    return post.file_url


@dataclass
class SyncRun(RunStatus):
    """主来源同步统计."""

    scanned_pages: int = 0
    scanned_posts: int = 0
    skipped_existing: int = 0
    new_attempted: int = 0
    downloaded_ok: int = 0
    failed_downloads: int = 0
    unavailable: int = 0
    upgraded: int = 0


class SyncEngine(BaseSyncEngine):
    """
    主来源同步引擎.

    每次运行都从最新一页重新扫描，依靠存在性检查跳过已归档的帖子，
    因此中断后重新运行不会重复下载。
    """

    source = PRIMARY_SOURCE
    status_cls = SyncRun

    def __init__(
        self,
        fetcher: PaginatedFetcher,
        downloader: Downloader,
        media: MediaStore,
        query: str,
        *,
        session_factory: async_sessionmaker[AsyncSession] | None = None,
        max_storage_failures: int = 3,
        resources: list[Closable] | None = None,
    ) -> None:
        super().__init__(session_factory=session_factory, resources=resources)
        self.fetcher = fetcher
        self.downloader = downloader
        self.media = media
        self.query = query
        self.max_storage_failures = max_storage_failures
        self._storage_failures = 0

    @property
    def run_status(self) -> SyncRun:
        return cast(SyncRun, self._status)

    def _reached_limit(self) -> bool:
        s = self.run_status
        return s.max_new_downloads is not None and s.downloaded_ok >= s.max_new_downloads

    async def _run_loop(self) -> None:
        self._storage_failures = 0
        cursor: str | None = None

        async with self.session_factory()() as session:
            repo = ItemRepository(session)

            while not self.cancel_requested:
                page = await self.fetcher.fetch_page(self.query, cursor)
                self.run_status.scanned_pages += 1

                for post in page.posts:
                    if self.cancel_requested:
                        return
                    await self._process_post(repo, post)
                    if self._reached_limit():
                        logger.info(f"已达到下载上限 {self.run_status.max_new_downloads}")
                        return

                if page.next_cursor is None:
                    break
                cursor = page.next_cursor

    async def _process_post(self, repo: ItemRepository, post: PostSummary) -> None:
        """处理单个帖子；单个帖子的失败不会中断运行."""
        s = self.run_status
        s.scanned_posts += 1

        if await repo.exists(self.source, post.post_id):
            s.skipped_existing += 1
            return

        if post.md5:
            match = await repo.exists_by_hash(post.md5)
            if match is not None:
                if match.source == SECONDARY_SOURCE:
                    await repo.upgrade_to_primary(match, post)
                    s.upgraded += 1
                    logger.info(f"已升级为主来源记录: {match.item_id} -> e621/{post.post_id}")
                else:
                    s.skipped_existing += 1
                return

        s.new_attempted += 1

        try:
            url = _file_url(post)
        except UnavailableContentError as e:
            await repo.record_unavailable(
                self.source, post.post_id, REASON_NO_FILE_URL, post.sources
            )
            s.unavailable += 1
            logger.info(f"{e}: e621/{post.post_id}")
            return

        try:
            data = await self.downloader.download(url)
        except TransientFetchError as e:
            s.failed_downloads += 1
            s.last_error = str(e)
            await repo.record_unavailable(
                self.source, post.post_id, REASON_DOWNLOAD_FAILED, post.sources
            )
            logger.warning(f"下载失败: e621/{post.post_id} - {e}")
            return

        draft = draft_from_primary_post(post, content_hash(data))
        stem = f"{draft.primary_artist}_e621_{post.post_id}"

        try:
            item = await repo.commit_new_item(draft, data, self.media, stem)
        except StorageError as e:
            s.failed_downloads += 1
            s.last_error = str(e)
            self._storage_failures += 1
            logger.warning(f"保存失败: e621/{post.post_id} - {e}")
            if self._storage_failures >= self.max_storage_failures:
                raise
            return

        self._storage_failures = 0
        if item is None:
            s.skipped_existing += 1
            return

        s.downloaded_ok += 1
        logger.info(f"已归档: e621/{post.post_id} -> {item.file_rel}")
