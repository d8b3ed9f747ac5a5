"""FurAffinity 页面解析工具."""

import re
from dataclasses import dataclass, field

from bs4 import BeautifulSoup

from tailburrow.core.errors import ScrapeError
from tailburrow.core.library import sanitize_slug

ARTIST_SELECTORS = (
    "div.submission-id-sub-container a strong",
    "div.submission-id-sub-container a[href*='/user/']",
    ".submission-sidebar .user-name",
)

LOGGED_IN_SELECTORS = "#my-username, img.loggedin_user_avatar"

RATING_MAP = {"adult": "e", "mature": "q"}

_ART_PATH_RE = re.compile(r"/art/([^/]+)/")


@dataclass
class SubmissionPage:
    """投稿页面中提取的元数据."""

    download_url: str
    tags: list[str] = field(default_factory=list)
    artist: str = "unknown"
    rating: str = "s"

    @property
    def ext(self) -> str:
        tail = self.download_url.rsplit("/", 1)[-1]
        return tail.rsplit(".", 1)[-1] if "." in tail else "jpg"


def is_logged_in(html: str) -> bool:
    """页面是否带有登录用户标记."""
    soup = BeautifulSoup(html, "lxml")
    return soup.select_one(LOGGED_IN_SELECTORS) is not None


def parse_favorite_ids(html: str) -> list[str]:
    """
    提取收藏页中的投稿 ID.

    Args:
        html: 收藏页 HTML

    Returns:
        按页面顺序排列的投稿 ID
    """
    soup = BeautifulSoup(html, "lxml")
    ids: list[str] = []
    for figure in soup.select("figure.t-image"):
        raw = figure.get("id")
        if isinstance(raw, list):
            raw = raw[0] if raw else None
        if not raw:
            continue
        sid = str(raw).replace("sid-", "").strip()
        if sid:
            ids.append(sid)
    return ids


def _absolute_url(href: str) -> str:
    if href.startswith("//"):
        return f"https:{href}"
    return href


def _artist_from_url(url: str) -> str | None:
    match = _ART_PATH_RE.search(url)
    return match.group(1) if match else None


def parse_submission(html: str) -> SubmissionPage:
    """
    解析投稿页面.

    没有下载链接时抛出 ScrapeError。
    """
    soup = BeautifulSoup(html, "lxml")

    link = soup.select_one("div.download > a")
    href = link.get("href") if link else None
    if isinstance(href, list):
        href = href[0] if href else None
    if not href:
        msg = "投稿页面中没有下载链接"
        raise ScrapeError(msg)
    download_url = _absolute_url(str(href))

    tags = [
        a.get_text().strip()
        for a in soup.select("section.tags-row span.tags a")
        if a.get_text().strip()
    ]

    artist = "unknown"
    for selector in ARTIST_SELECTORS:
        el = soup.select_one(selector)
        if el:
            text = el.get_text().strip()
            if text:
                artist = text
                break

    if artist == "unknown":
        artist = _artist_from_url(download_url) or artist

    rating_el = soup.select_one("div.rating span")
    rating_text = rating_el.get_text().strip().lower() if rating_el else "general"

    return SubmissionPage(
        download_url=download_url,
        tags=tags,
        artist=sanitize_slug(artist),
        rating=RATING_MAP.get(rating_text, "s"),
    )
