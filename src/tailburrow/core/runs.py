"""同步控制面 - 每个来源一个引擎，进程内共享."""

import logging

from sqlalchemy.ext.asyncio import AsyncSession

from tailburrow.config import get_library_root, get_settings
from tailburrow.core.credentials import (
    PRIMARY_SOURCE,
    SECONDARY_SOURCE,
    SOURCES,
    CredentialStore,
)
from tailburrow.core.downloader import Downloader
from tailburrow.core.e621 import E621Client, E621Config, favorites_query
from tailburrow.core.engine import BaseSyncEngine, RunStatus
from tailburrow.core.errors import (
    AlreadyRunningError,
    InvalidOptionsError,
    NotRunningError,
)
from tailburrow.core.furaffinity import FurAffinityClient, FurAffinityConfig
from tailburrow.core.library import MediaStore, ensure_layout
from tailburrow.core.reconciler import CrossSourceReconciler
from tailburrow.core.repository import ItemRepository
from tailburrow.core.scrape_sync import ScrapeSyncEngine, ScrapeSyncRun
from tailburrow.core.sync import SyncEngine, SyncRun

logger = logging.getLogger(__name__)

# 全局状态：来源 -> 最近一次运行的引擎
_engines: dict[str, BaseSyncEngine] = {}

_IDLE_STATUS: dict[str, type[RunStatus]] = {
    PRIMARY_SOURCE: SyncRun,
    SECONDARY_SOURCE: ScrapeSyncRun,
}


def _check_source(source: str) -> None:
    if source not in SOURCES:
        msg = f"未知来源: {source}"
        raise InvalidOptionsError(msg)


def get_engine(source: str) -> BaseSyncEngine | None:
    """获取该来源最近一次的引擎."""
    return _engines.get(source)


def reset_engines() -> None:
    """清空引擎注册表（测试用）."""
    _engines.clear()


async def build_e621_client(session: AsyncSession) -> E621Client:
    """用已保存的凭据创建 e621 客户端."""
    settings = get_settings()
    creds = await CredentialStore(session).load(PRIMARY_SOURCE)
    return E621Client(
        E621Config(
            base_url=settings.e621_base_url,
            username=creds.username,
            api_key=creds.secret,
            user_agent=settings.user_agent,
            page_limit=settings.e621_page_limit,
            timeout=settings.http_timeout_seconds,
        )
    )


def _downloader(headers: dict[str, str]) -> Downloader:
    settings = get_settings()
    return Downloader(
        headers=headers,
        timeout=settings.http_timeout_seconds,
        retry_max=settings.http_retry_max,
        retry_backoff=settings.http_retry_backoff_seconds,
    )


async def build_primary_engine(session: AsyncSession) -> SyncEngine:
    """创建主来源引擎."""
    settings = get_settings()
    root = get_library_root()
    ensure_layout(root)

    client = await build_e621_client(session)
    downloader = _downloader({"User-Agent": settings.user_agent})
    return SyncEngine(
        client,
        downloader,
        MediaStore(root),
        favorites_query(client.config.username),
        max_storage_failures=settings.max_consecutive_storage_failures,
        resources=[client, downloader],
    )


async def build_secondary_engine(session: AsyncSession) -> ScrapeSyncEngine:
    """创建次来源引擎；e621 反查和下载使用匿名请求."""
    settings = get_settings()
    root = get_library_root()
    ensure_layout(root)

    creds = await CredentialStore(session).load(SECONDARY_SOURCE)
    scraper = FurAffinityClient(
        FurAffinityConfig(
            base_url=settings.fa_base_url,
            cookie_header=creds.secret,
            user_agent=settings.browser_user_agent,
            max_pages=settings.fa_max_pages,
            timeout=settings.http_timeout_seconds,
        )
    )
    fa_downloader = _downloader(scraper.headers())

    lookup = E621Client(
        E621Config(
            base_url=settings.e621_base_url,
            username="",
            api_key="",
            user_agent=settings.user_agent,
            timeout=settings.http_timeout_seconds,
        )
    )
    e621_downloader = _downloader({"User-Agent": settings.user_agent})

    media = MediaStore(root)

    def reconciler_factory(repository: ItemRepository) -> CrossSourceReconciler:
        return CrossSourceReconciler(
            repository,
            media,
            scraper,
            fa_downloader,
            hash_lookup=lookup,
            primary_downloader=e621_downloader,
            request_delay=settings.fa_request_delay_seconds,
            lookup_delay=settings.hash_lookup_delay_seconds,
        )

    return ScrapeSyncEngine(
        scraper,
        reconciler_factory,
        resources=[scraper, fa_downloader, lookup, e621_downloader],
    )


async def sync_start(
    source: str, session: AsyncSession, max_new_downloads: int | None = None
) -> RunStatus:
    """
    启动同步.

    Raises:
        InvalidOptionsError: 来源未知或参数无效
        LibraryNotConfiguredError: 资料库未设置
        CredentialsMissingError: 凭据未保存
        AlreadyRunningError: 已有运行
    """
    _check_source(source)
    if max_new_downloads is not None and max_new_downloads < 1:
        msg = "max_new_downloads 必须是正整数"
        raise InvalidOptionsError(msg)

    current = _engines.get(source)
    if current is not None and current.is_running:
        msg = f"{source} 同步已在运行"
        raise AlreadyRunningError(msg)

    if source == PRIMARY_SOURCE:
        engine: BaseSyncEngine = await build_primary_engine(session)
    else:
        engine = await build_secondary_engine(session)

    # 创建引擎期间有 await，需要再检查一次
    current = _engines.get(source)
    if current is not None and current.is_running:
        await engine.close_resources()
        msg = f"{source} 同步已在运行"
        raise AlreadyRunningError(msg)

    _engines[source] = engine
    return engine.start(max_new_downloads)


def sync_cancel(source: str) -> RunStatus:
    """请求取消；没有运行时抛出 NotRunningError."""
    _check_source(source)
    engine = _engines.get(source)
    if engine is None or not engine.cancel():
        msg = f"{source} 没有正在运行的同步"
        raise NotRunningError(msg)
    return engine.status()


def sync_status(source: str) -> RunStatus:
    """当前状态快照，从未运行过时返回 idle."""
    _check_source(source)
    engine = _engines.get(source)
    if engine is None:
        return _IDLE_STATUS[source]()
    return engine.status()
