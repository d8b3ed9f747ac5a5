"""SyncRunRecord 同步历史模型."""

from datetime import UTC, datetime

from sqlmodel import Field, SQLModel


class SyncRunRecord(SQLModel, table=True):
    """一次同步运行的结果."""

    __tablename__ = "sync_runs"  # type: ignore[assignment]

    id: int | None = Field(default=None, primary_key=True)
    source: str = Field(index=True, description="来源")
    status: str = Field(description="状态: running|completed|cancelled|failed")
    counters_json: str = Field(default="{}", description="计数器快照 (JSON)")
    error_message: str | None = Field(default=None, description="错误信息")
    started_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    completed_at: datetime | None = Field(default=None)
