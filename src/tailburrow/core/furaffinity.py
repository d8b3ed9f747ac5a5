"""FurAffinity 抓取客户端（次来源，基于会话 cookie）."""

from dataclasses import dataclass

import httpx

from tailburrow.core.downloader import check_auth
from tailburrow.core.errors import AuthenticationError, TransientFetchError
from tailburrow.core.fetcher import Page, PaginatedFetcher, PostSummary
from tailburrow.utils.html_parser import (
    SubmissionPage,
    is_logged_in,
    parse_favorite_ids,
    parse_submission,
)


@dataclass
class FurAffinityConfig:
    """FurAffinity 连接配置."""

    base_url: str
    cookie_header: str
    user_agent: str
    max_pages: int = 50
    timeout: float = 30.0


class FurAffinityClient(PaginatedFetcher):
    """抓取收藏页和投稿页；游标为页码字符串."""

    def __init__(
        self, config: FurAffinityConfig, client: httpx.AsyncClient | None = None
    ) -> None:
        self.config = config
        self._client = client or httpx.AsyncClient(
            timeout=config.timeout, follow_redirects=True
        )

    async def close(self) -> None:
        """关闭客户端."""
        await self._client.aclose()

    def headers(self) -> dict[str, str]:
        """带 cookie 的请求头，下载文件时同样需要."""
        return {
            "User-Agent": self.config.user_agent,
            "Cookie": self.config.cookie_header,
        }

    def view_url(self, submission_id: str) -> str:
        """投稿页面地址."""
        return f"{self.config.base_url}/view/{submission_id}/"

    def favorites_url(self, page: int) -> str:
        """收藏页地址."""
        if page <= 1:
            return f"{self.config.base_url}/controls/favorites/"
        return f"{self.config.base_url}/controls/favorites/{page}/"

    async def _get_html(self, url: str) -> str:
        try:
            response = await self._client.get(url, headers=self.headers())
        except httpx.HTTPError as e:
            msg = f"请求失败: {url} ({type(e).__name__}: {e})"
            raise TransientFetchError(msg) from e

        check_auth(response)
        if not response.is_success:
            msg = f"请求失败: {url} (HTTP {response.status_code})"
            raise TransientFetchError(msg)
        return response.text

    async def fetch_page(self, query: str, cursor: str | None) -> Page:
        """获取一页收藏；query 未使用（收藏页由 cookie 决定）."""
        page = int(cursor) if cursor else 1
        html = await self._get_html(self.favorites_url(page))

        if not is_logged_in(html):
            msg = "FurAffinity 会话无效，请更新 cookie"
            raise AuthenticationError(msg)

        ids = parse_favorite_ids(html)
        posts = [PostSummary(post_id=sid, page_url=self.view_url(sid)) for sid in ids]

        next_cursor = None
        if posts and page < self.config.max_pages:
            next_cursor = str(page + 1)
        return Page(posts=posts, next_cursor=next_cursor)

    async def fetch_submission(self, submission_id: str) -> SubmissionPage:
        """获取并解析投稿页面."""
        html = await self._get_html(self.view_url(submission_id))
        return parse_submission(html)
