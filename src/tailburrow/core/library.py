"""资料库目录布局与媒体文件存储."""

import logging
import os
import shutil
from pathlib import Path

from tailburrow.core.errors import StorageError

logger = logging.getLogger(__name__)

ARTIST_DENY_LIST = frozenset({"sound_warning", "conditional_dnp"})
UNKNOWN_ARTIST = "unknown_artist"
_SLUG_STRIP = '<>;:"/\\|?*'


def ensure_layout(root: Path) -> None:
    """创建资料库目录结构."""
    for sub in ("db", "media", "cache/tmp", ".trash/media"):
        (root / sub).mkdir(parents=True, exist_ok=True)


def db_path(root: Path) -> Path:
    """资料库数据库文件路径."""
    return root / "db" / "library.sqlite"


def database_url(root: Path) -> str:
    """资料库的 SQLAlchemy 连接串."""
    return f"sqlite+aiosqlite:///{db_path(root)}"


def sanitize_slug(value: str) -> str:
    """把作者名等转换成安全的文件名片段."""
    out = value.strip().lower().replace(" ", "_")
    for ch in _SLUG_STRIP:
        out = out.replace(ch, "")
    return out or UNKNOWN_ARTIST


def pick_primary_artist(artists: list[str]) -> str:
    """选出第一个不在屏蔽列表中的作者."""
    for artist in artists:
        if artist not in ARTIST_DENY_LIST:
            return artist
    return UNKNOWN_ARTIST


def normalize_ext(ext: str | None, default: str = "jpg") -> str:
    """统一扩展名格式（小写、无点）."""
    ext = (ext or "").strip().lower().lstrip(".")
    return ext or default


class MediaStore:
    """管理 media/ 目录下的文件.

    文件先写入 cache/tmp/*.part 再重命名到 media/，
    因此 media/ 中不会出现写了一半的文件。
    """

    def __init__(self, root: Path) -> None:
        self.root = root
        self.media_dir = root / "media"
        self.tmp_dir = root / "cache" / "tmp"
        self.trash_dir = root / ".trash"

    def abs_path(self, file_rel: str) -> Path:
        """相对路径转绝对路径."""
        return self.root / file_rel

    def _unique_name(self, stem: str, ext: str) -> str:
        filename = f"{stem}.{ext}"
        n = 1
        while (self.media_dir / filename).exists():
            filename = f"{stem}_dup{n}.{ext}"
            n += 1
        return filename

    def write(self, stem: str, ext: str, data: bytes) -> str:
        """写入文件，返回相对路径 media/<name>."""
        try:
            self.media_dir.mkdir(parents=True, exist_ok=True)
            self.tmp_dir.mkdir(parents=True, exist_ok=True)
            filename = self._unique_name(stem, ext)
            tmp_path = self.tmp_dir / f"{filename}.part"
            with tmp_path.open("wb") as fh:
                fh.write(data)
                fh.flush()
                os.fsync(fh.fileno())
            tmp_path.replace(self.media_dir / filename)
        except OSError as e:
            msg = f"写入文件失败: {e}"
            raise StorageError(msg) from e
        return f"media/{filename}"

    def remove(self, file_rel: str) -> None:
        """删除文件（提交失败时回滚用）."""
        path = self.abs_path(file_rel)
        try:
            path.unlink(missing_ok=True)
        except OSError:
            logger.warning(f"删除文件失败: {path}")

    def move_to_trash(self, file_rel: str) -> str:
        """把 media/ 下的文件移到 .trash/，返回新的相对路径."""
        trash_rel = f".trash/{file_rel}"
        src = self.abs_path(file_rel)
        dst = self.abs_path(trash_rel)
        try:
            dst.parent.mkdir(parents=True, exist_ok=True)
            if src.exists():
                shutil.move(str(src), str(dst))
        except OSError as e:
            msg = f"移动到回收站失败: {e}"
            raise StorageError(msg) from e
        return trash_rel

    def purge_trashed(self, file_rel: str) -> None:
        """永久删除回收站中的文件."""
        self.remove(f".trash/{file_rel}")
