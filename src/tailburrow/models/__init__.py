"""数据模型."""

from tailburrow.models.database import get_session, init_db
from tailburrow.models.feed import Feed
from tailburrow.models.item import Item, ItemSource, ItemTag, SourceLink, Tag
from tailburrow.models.settings import SettingItem
from tailburrow.models.sync import SyncRunRecord
from tailburrow.models.unavailable import UnavailablePost

__all__ = [
    "Feed",
    "Item",
    "ItemSource",
    "ItemTag",
    "SettingItem",
    "SourceLink",
    "SyncRunRecord",
    "Tag",
    "UnavailablePost",
    "get_session",
    "init_db",
]
