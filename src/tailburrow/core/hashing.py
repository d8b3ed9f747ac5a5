"""内容哈希，用作跨来源去重键."""

import hashlib


def content_hash(data: bytes) -> str:
    """计算文件内容的 MD5（小写十六进制）."""
    return hashlib.md5(data).hexdigest()  # noqa: S324


def normalize_hash(value: str | None) -> str | None:
    """统一远程返回的哈希格式."""
    if not value:
        return None
    value = value.strip().lower()
    return value or None
