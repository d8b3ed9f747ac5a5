"""应用配置管理."""

import json
import logging
from functools import lru_cache
from pathlib import Path

from pydantic import BaseModel
from pydantic_settings import BaseSettings, SettingsConfigDict

from tailburrow.core.errors import LibraryNotConfiguredError

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    """应用配置（环境变量）."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # 资料库配置
    library_root: str = ""
    app_data_dir: str = "~/.tailburrow"

    # 远程站点
    e621_base_url: str = "https://e621.net"
    fa_base_url: str = "https://www.furaffinity.net"
    user_agent: str = "TailBurrow/0.1.0 (local archiver)"
    browser_user_agent: str = (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
    )

    # 同步配置
    e621_page_limit: int = 320
    fa_max_pages: int = 50
    fa_request_delay_seconds: float = 0.8
    hash_lookup_delay_seconds: float = 0.5
    max_consecutive_storage_failures: int = 3

    # HTTP 配置
    http_timeout_seconds: int = 30
    http_retry_max: int = 3
    http_retry_backoff_seconds: float = 2.0

    # 定时任务
    auto_sync_interval_minutes: int = 0
    trash_retention_days: int = 30


class AppConfig(BaseModel):
    """持久化的应用配置（config.json）."""

    library_root: str | None = None


@lru_cache
def get_settings() -> Settings:
    """获取应用配置（带缓存）."""
    return Settings()


def _config_path() -> Path:
    data_dir = Path(get_settings().app_data_dir).expanduser()
    data_dir.mkdir(parents=True, exist_ok=True)
    return data_dir / "config.json"


def load_app_config() -> AppConfig:
    """读取 config.json，不存在时返回默认配置."""
    path = _config_path()
    if not path.exists():
        return AppConfig()
    return AppConfig.model_validate(json.loads(path.read_text(encoding="utf-8")))


def save_app_config(config: AppConfig) -> None:
    """写入 config.json."""
    _config_path().write_text(config.model_dump_json(indent=2), encoding="utf-8")


def clear_app_config() -> None:
    """删除 config.json."""
    path = _config_path()
    if path.exists():
        path.unlink()
        logger.info("已清除资料库配置")


def get_library_root() -> Path:
    """获取有效的资料库根目录（config.json 优先）."""
    configured = load_app_config().library_root or get_settings().library_root
    if not configured:
        msg = "资料库根目录未设置"
        raise LibraryNotConfiguredError(msg)
    return Path(configured)
