"""分页抓取抽象."""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field


@dataclass
class PostSummary:
    """远程来源中的一个候选帖子."""

    post_id: str
    page_url: str | None = None
    file_url: str | None = None
    file_ext: str | None = None
    md5: str | None = None
    rating: str | None = None
    fav_count: int | None = None
    score: int | None = None
    created_at: str | None = None
    sources: list[str] = field(default_factory=list)
    # 类型 -> 标签列表，例如 {"artist": [...], "general": [...]}
    tags: dict[str, list[str]] = field(default_factory=dict)

    @property
    def artists(self) -> list[str]:
        return self.tags.get("artist", [])


@dataclass
class Page:
    """一页结果；next_cursor 为 None 表示没有更多结果."""

    posts: list[PostSummary]
    next_cursor: str | None = None


class PaginatedFetcher(ABC):
    """按游标获取下一页候选帖子.

    实现必须是无状态的，游标由调用方保存。认证失败必须抛出
    AuthenticationError，而不是返回空结果。
    """

    @abstractmethod
    async def fetch_page(self, query: str, cursor: str | None) -> Page:
        """获取一页结果."""
        ...

    async def close(self) -> None:
        """释放底层连接."""
        return None


class HashLookup(ABC):
    """主来源按内容哈希反查帖子的能力."""

    @abstractmethod
    async def lookup_by_hash(self, md5: str) -> PostSummary | None:
        """按 MD5 查找主来源帖子，找不到返回 None."""
        ...
