"""TailBurrow - 本地优先的收藏归档工具."""

__version__ = "0.1.0"
