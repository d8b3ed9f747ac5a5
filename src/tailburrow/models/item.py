"""Item 归档作品模型."""

from datetime import UTC, datetime

from sqlalchemy import UniqueConstraint
from sqlmodel import Field, SQLModel


class Item(SQLModel, table=True):
    """已归档的作品，(source, source_id) 唯一."""

    __tablename__ = "items"  # type: ignore[assignment]
    __table_args__ = (UniqueConstraint("source", "source_id"),)

    item_id: int | None = Field(default=None, primary_key=True)
    source: str = Field(index=True, description="来源: e621|furaffinity")
    source_id: str = Field(description="来源站点中的帖子 ID")
    md5: str | None = Field(default=None, index=True, description="文件内容哈希")
    remote_url: str | None = Field(default=None, index=True, description="远程地址")
    file_rel: str = Field(description="相对资料库根目录的文件路径")
    ext: str | None = Field(default=None, description="文件扩展名")
    size_bytes: int | None = Field(default=None, description="文件大小")
    rating: str | None = Field(default=None, description="分级: s|q|e")
    fav_count: int | None = Field(default=None, description="收藏数")
    score_total: int | None = Field(default=None, description="评分")
    created_at: str | None = Field(default=None, description="远程发布时间")
    added_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    primary_artist: str | None = Field(default=None, description="主作者")
    trashed_at: datetime | None = Field(default=None, index=True)


class Tag(SQLModel, table=True):
    """标签."""

    __tablename__ = "tags"  # type: ignore[assignment]

    tag_id: int | None = Field(default=None, primary_key=True)
    name: str = Field(unique=True)
    type: str = Field(default="general", description="general|artist|species|...")


class ItemTag(SQLModel, table=True):
    """作品与标签的关联，position 保留标签顺序."""

    __tablename__ = "item_tags"  # type: ignore[assignment]

    item_id: int = Field(
        foreign_key="items.item_id", primary_key=True, ondelete="CASCADE"
    )
    tag_id: int = Field(foreign_key="tags.tag_id", primary_key=True, ondelete="CASCADE")
    position: int = Field(default=0)


class SourceLink(SQLModel, table=True):
    """外部出处链接."""

    __tablename__ = "sources"  # type: ignore[assignment]

    source_row_id: int | None = Field(default=None, primary_key=True)
    url: str = Field(unique=True)


class ItemSource(SQLModel, table=True):
    """作品与出处链接的关联."""

    __tablename__ = "item_sources"  # type: ignore[assignment]

    item_id: int = Field(
        foreign_key="items.item_id", primary_key=True, ondelete="CASCADE"
    )
    source_row_id: int = Field(
        foreign_key="sources.source_row_id", primary_key=True, ondelete="CASCADE"
    )
