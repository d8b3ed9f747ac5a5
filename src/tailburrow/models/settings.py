"""Settings 键值存储模型."""

from datetime import UTC, datetime

from sqlmodel import Field, SQLModel


class SettingItem(SQLModel, table=True):
    """配置项存储（凭据等）."""

    __tablename__ = "settings"  # type: ignore[assignment]

    key: str = Field(primary_key=True, description="配置键")
    value: str = Field(description="配置值")
    updated_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
