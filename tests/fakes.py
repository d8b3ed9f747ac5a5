"""测试用的假来源、假下载器."""

import asyncio

from tailburrow.core.errors import AuthenticationError, ScrapeError, TransientFetchError
from tailburrow.core.fetcher import HashLookup, Page, PaginatedFetcher, PostSummary
from tailburrow.core.hashing import content_hash
from tailburrow.utils.html_parser import SubmissionPage


def file_url(post_id: str) -> str:
    return f"https://static.example/{post_id}.png"


def file_bytes(post_id: str) -> bytes:
    return f"image-{post_id}".encode()


def make_post(
    post_id: str,
    *,
    with_file: bool = True,
    artists: tuple[str, ...] = ("artist_a",),
    sources: tuple[str, ...] = (),
    md5: str | None = None,
) -> PostSummary:
    """构造一个主来源帖子，默认 md5 与 file_bytes 一致."""
    return PostSummary(
        post_id=post_id,
        page_url=f"https://e621.example/posts/{post_id}",
        file_url=file_url(post_id) if with_file else None,
        file_ext="png",
        md5=md5 if md5 is not None else content_hash(file_bytes(post_id)),
        rating="s",
        fav_count=10,
        score=5,
        created_at="2024-01-01T00:00:00Z",
        sources=list(sources),
        tags={"artist": list(artists), "general": ["canine", "solo"]},
    )


class FakeFetcher(PaginatedFetcher):
    """按固定页大小分页的内存来源；游标为页序号字符串."""

    def __init__(self, posts: list[PostSummary], page_size: int = 2) -> None:
        self.pages = [
            posts[i : i + page_size] for i in range(0, len(posts), page_size)
        ] or [[]]
        self.calls: list[str | None] = []
        self.auth_error = False
        self.fail_at: int | None = None
        self.delay = 0.0
        self.closed = False

    async def fetch_page(self, query: str, cursor: str | None) -> Page:
        self.calls.append(cursor)
        if self.auth_error:
            msg = "认证失败: HTTP 401"
            raise AuthenticationError(msg)
        index = int(cursor) if cursor else 0
        if self.fail_at == index:
            msg = "e621 API 错误: HTTP 503"
            raise TransientFetchError(msg)
        if self.delay:
            await asyncio.sleep(self.delay)
        next_cursor = str(index + 1) if index + 1 < len(self.pages) else None
        return Page(posts=list(self.pages[index]), next_cursor=next_cursor)

    async def close(self) -> None:
        self.closed = True


class FakeDownloader:
    """url -> 字节串；未知或失败的 url 抛出 TransientFetchError."""

    def __init__(self, files: dict[str, bytes] | None = None) -> None:
        self.files = dict(files or {})
        self.failing: set[str] = set()
        self.requested: list[str] = []
        self.delay = 0.0
        self.closed = False

    async def download(self, url: str) -> bytes:
        self.requested.append(url)
        if self.delay:
            await asyncio.sleep(self.delay)
        if url in self.failing or url not in self.files:
            msg = f"下载失败: {url} (HTTP 404)"
            raise TransientFetchError(msg)
        return self.files[url]

    async def close(self) -> None:
        self.closed = True


def downloader_for(posts: list[PostSummary]) -> FakeDownloader:
    """为带文件地址的帖子准备下载内容."""
    return FakeDownloader(
        {p.file_url: file_bytes(p.post_id) for p in posts if p.file_url}
    )


class FakeScraper:
    """投稿 ID -> SubmissionPage."""

    def __init__(self, pages: dict[str, SubmissionPage] | None = None) -> None:
        self.pages = dict(pages or {})
        self.requested: list[str] = []

    async def fetch_submission(self, submission_id: str) -> SubmissionPage:
        self.requested.append(submission_id)
        if submission_id not in self.pages:
            msg = "投稿页面中没有下载链接"
            raise ScrapeError(msg)
        return self.pages[submission_id]


class FakeHashLookup(HashLookup):
    """md5 -> 主来源帖子."""

    def __init__(self, posts: dict[str, PostSummary] | None = None) -> None:
        self.posts = dict(posts or {})
        self.queries: list[str] = []
        self.error: Exception | None = None

    async def lookup_by_hash(self, md5: str) -> PostSummary | None:
        self.queries.append(md5)
        if self.error:
            raise self.error
        return self.posts.get(md5)
