"""UnavailablePost 无法归档的帖子记录."""

from datetime import UTC, datetime

from sqlalchemy import UniqueConstraint
from sqlmodel import Field, SQLModel


class UnavailablePost(SQLModel, table=True):
    """无法归档的候选帖子，供用户后续跟进."""

    __tablename__ = "unavailable_posts"  # type: ignore[assignment]
    __table_args__ = (UniqueConstraint("source", "source_id"),)

    id: int | None = Field(default=None, primary_key=True)
    source: str = Field(description="来源")
    source_id: str = Field(description="帖子 ID")
    reason: str = Field(description="原因: no file URL|download_failed")
    sources_json: str = Field(default="[]", description="外部出处链接 (JSON 数组)")
    seen_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
