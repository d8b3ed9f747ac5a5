"""e621 JSON API 客户端（主来源）."""

from dataclasses import dataclass
from typing import Any

import httpx

from tailburrow.core.downloader import check_auth
from tailburrow.core.errors import TransientFetchError
from tailburrow.core.fetcher import HashLookup, Page, PaginatedFetcher, PostSummary
from tailburrow.core.hashing import normalize_hash

TAG_TYPES = ("artist", "copyright", "character", "species", "general", "meta", "lore")


@dataclass
class E621Config:
    """e621 连接配置."""

    base_url: str
    username: str
    api_key: str
    user_agent: str
    page_limit: int = 320
    timeout: float = 30.0


def favorites_query(username: str) -> str:
    """用户收藏夹的查询串，按 ID 倒序以便使用 before-id 游标."""
    return f"fav:{username} order:id_desc"


class E621Client(PaginatedFetcher, HashLookup):
    """e621 JSON API 客户端."""

    def __init__(
        self, config: E621Config, client: httpx.AsyncClient | None = None
    ) -> None:
        self.config = config
        self._client = client or httpx.AsyncClient(timeout=config.timeout)

    async def close(self) -> None:
        """关闭客户端."""
        await self._client.aclose()

    def _auth(self) -> httpx.BasicAuth:
        return httpx.BasicAuth(self.config.username, self.config.api_key)

    def _headers(self) -> dict[str, str]:
        return {"User-Agent": self.config.user_agent}

    def post_url(self, post_id: str) -> str:
        """帖子页面地址."""
        return f"{self.config.base_url}/posts/{post_id}"

    async def _get_posts(self, params: dict[str, str], *, auth: bool = True) -> list[dict[str, Any]]:
        url = f"{self.config.base_url}/posts.json"
        try:
            response = await self._client.get(
                url,
                params=params,
                headers=self._headers(),
                auth=self._auth() if auth else None,
            )
        except httpx.HTTPError as e:
            msg = f"e621 请求失败: {type(e).__name__}: {e}"
            raise TransientFetchError(msg) from e

        check_auth(response)
        if not response.is_success:
            msg = f"e621 API 错误: HTTP {response.status_code}"
            raise TransientFetchError(msg)

        try:
            data = response.json()
        except ValueError as e:
            msg = f"e621 返回了非 JSON 内容: HTTP {response.status_code}"
            raise TransientFetchError(msg) from e

        posts = data.get("posts") if isinstance(data, dict) else None
        if posts is None:
            return []
        if not isinstance(posts, list):
            msg = "e621 返回的 posts 格式无效"
            raise TransientFetchError(msg)
        return [p for p in posts if isinstance(p, dict)]

    async def fetch_page(self, query: str, cursor: str | None) -> Page:
        """获取一页帖子；游标格式为 b<id>（该 ID 之前的帖子）."""
        params = {"tags": query, "limit": str(self.config.page_limit)}
        if cursor:
            params["page"] = cursor

        raw_posts = await self._get_posts(params)
        posts = [p for p in (self._parse_post(item) for item in raw_posts) if p]

        next_cursor = None
        if posts and len(raw_posts) >= self.config.page_limit:
            lowest = min(int(p.post_id) for p in posts)
            next_cursor = f"b{lowest}"

        return Page(posts=posts, next_cursor=next_cursor)

    async def lookup_by_hash(self, md5: str) -> PostSummary | None:
        """按 MD5 查找帖子（匿名请求）."""
        raw_posts = await self._get_posts({"tags": f"md5:{md5}"}, auth=False)
        for item in raw_posts:
            post = self._parse_post(item)
            if post:
                return post
        return None

    async def test_connection(self) -> None:
        """验证凭据，失败时抛出异常."""
        await self._get_posts({"limit": "1", "tags": "order:id_desc"})

    async def favorite(self, post_id: str) -> None:
        """在 e621 上收藏帖子，422 表示已收藏."""
        url = f"{self.config.base_url}/favorites.json"
        try:
            response = await self._client.post(
                url,
                data={"post_id": post_id},
                headers=self._headers(),
                auth=self._auth(),
            )
        except httpx.HTTPError as e:
            msg = f"收藏失败: {type(e).__name__}: {e}"
            raise TransientFetchError(msg) from e

        check_auth(response)
        if not response.is_success and response.status_code != 422:
            msg = f"收藏失败: HTTP {response.status_code}"
            raise TransientFetchError(msg)

    def _parse_post(self, item: dict[str, Any]) -> PostSummary | None:
        """解析单个帖子，ID 缺失时返回 None."""
        post_id = item.get("id")
        if not post_id:
            return None

        file_obj = item.get("file") or {}
        score = item.get("score")
        score_total = score.get("total") if isinstance(score, dict) else score

        tags_obj = item.get("tags") or {}
        tags = {t: list(tags_obj.get(t) or []) for t in TAG_TYPES}

        return PostSummary(
            post_id=str(post_id),
            page_url=self.post_url(str(post_id)),
            file_url=file_obj.get("url"),
            file_ext=file_obj.get("ext"),
            md5=normalize_hash(file_obj.get("md5")),
            rating=item.get("rating"),
            fav_count=item.get("fav_count"),
            score=score_total,
            created_at=item.get("created_at"),
            sources=[s for s in (item.get("sources") or []) if isinstance(s, str)],
            tags=tags,
        )
