"""次来源同步引擎 - 抓取 FurAffinity 收藏页并交给跨来源去重处理."""

import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import cast

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from tailburrow.core.credentials import SECONDARY_SOURCE
from tailburrow.core.engine import BaseSyncEngine, Closable, RunState, RunStatus
from tailburrow.core.fetcher import PaginatedFetcher
from tailburrow.core.reconciler import (
    CrossSourceReconciler,
    ReconcileOutcome,
    SecondaryCandidate,
)
from tailburrow.core.repository import ItemRepository

logger = logging.getLogger(__name__)

ReconcilerFactory = Callable[[ItemRepository], CrossSourceReconciler]


@dataclass
class ScrapeSyncRun(RunStatus):
    """次来源同步统计."""

    scanned_pages: int = 0
    scanned: int = 0
    skipped_url: int = 0
    skipped_md5: int = 0
    imported: int = 0
    upgraded: int = 0
    errors: int = 0
    current_message: str = ""


class ScrapeSyncEngine(BaseSyncEngine):
    """次来源同步引擎，每个候选由 CrossSourceReconciler 处理."""

    source = SECONDARY_SOURCE
    status_cls = ScrapeSyncRun

    def __init__(
        self,
        fetcher: PaginatedFetcher,
        reconciler_factory: ReconcilerFactory,
        *,
        session_factory: async_sessionmaker[AsyncSession] | None = None,
        resources: list[Closable] | None = None,
    ) -> None:
        super().__init__(session_factory=session_factory, resources=resources)
        self.fetcher = fetcher
        self.reconciler_factory = reconciler_factory

    @property
    def run_status(self) -> ScrapeSyncRun:
        return cast(ScrapeSyncRun, self._status)

    def _reached_limit(self) -> bool:
        s = self.run_status
        return s.max_new_downloads is not None and (s.imported + s.upgraded) >= s.max_new_downloads

    async def _run_loop(self) -> None:
        s = self.run_status
        cursor: str | None = None

        async with self.session_factory()() as session:
            reconciler = self.reconciler_factory(ItemRepository(session))

            while not self.cancel_requested:
                s.current_message = f"Scanning page {cursor or '1'}..."
                page = await self.fetcher.fetch_page("", cursor)
                s.scanned_pages += 1

                if not page.posts:
                    logger.info(f"第 {cursor or '1'} 页没有收藏，结束扫描")
                    break

                for post in page.posts:
                    if self.cancel_requested:
                        return
                    s.scanned += 1
                    s.current_message = f"Processing #{post.post_id}..."

                    candidate = SecondaryCandidate(
                        source_id=post.post_id, page_url=post.page_url or ""
                    )
                    result = await reconciler.reconcile(candidate)
                    setattr(s, result.outcome.value, getattr(s, result.outcome.value) + 1)
                    if result.outcome is ReconcileOutcome.ERROR:
                        s.last_error = result.error

                    if self._reached_limit():
                        logger.info(f"已达到导入上限 {s.max_new_downloads}")
                        return

                if page.next_cursor is None:
                    break
                cursor = page.next_cursor

    def _on_finish(self, state: str) -> None:
        messages = {
            RunState.COMPLETED: "Done.",
            RunState.CANCELLED: "Cancelled.",
            RunState.FAILED: f"Error: {self._status.last_error}",
        }
        self.run_status.current_message = messages.get(state, "")
