"""Feed 保存的查询."""

from datetime import UTC, datetime

from sqlmodel import Field, SQLModel


class Feed(SQLModel, table=True):
    """针对主来源保存的查询."""

    __tablename__ = "feeds"  # type: ignore[assignment]

    id: int | None = Field(default=None, primary_key=True)
    name: str = Field(description="名称")
    query: str = Field(description="查询字符串（e621 标签语法）")
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
