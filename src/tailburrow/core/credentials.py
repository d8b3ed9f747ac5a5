"""凭据存储 - 基于 settings 键值表."""

import logging
from dataclasses import dataclass
from datetime import UTC, datetime

from sqlalchemy.ext.asyncio import AsyncSession

from tailburrow.core.errors import CredentialsMissingError, InvalidOptionsError
from tailburrow.models.settings import SettingItem

logger = logging.getLogger(__name__)

PRIMARY_SOURCE = "e621"
SECONDARY_SOURCE = "furaffinity"
SOURCES = (PRIMARY_SOURCE, SECONDARY_SOURCE)


@dataclass
class CredInfo:
    """对外展示的凭据信息，不包含密钥本身."""

    username: str | None
    has_secret: bool


@dataclass
class Credentials:
    """完整凭据（仅供客户端使用）."""

    username: str
    secret: str


def format_cookie_secret(cookie_a: str, cookie_b: str) -> str:
    """把 FurAffinity 的 a/b cookie 拼成 Cookie 请求头."""
    return f"a={cookie_a.strip()}; b={cookie_b.strip()}"


def _check_source(source: str) -> None:
    if source not in SOURCES:
        msg = f"未知来源: {source}"
        raise InvalidOptionsError(msg)


class CredentialStore:
    """按来源保存用户名与密钥（API key 或会话 cookie）."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def _get(self, key: str) -> str | None:
        item = await self.session.get(SettingItem, key)
        return item.value if item else None

    async def _set(self, key: str, value: str) -> None:
        item = await self.session.get(SettingItem, key)
        if item:
            item.value = value
            item.updated_at = datetime.now(UTC)
        else:
            self.session.add(SettingItem(key=key, value=value))

    async def get_cred_info(self, source: str) -> CredInfo:
        """获取凭据信息."""
        _check_source(source)
        username = await self._get(f"{source}_username")
        secret = await self._get(f"{source}_secret")
        return CredInfo(username=username, has_secret=bool(secret))

    async def set_credentials(self, source: str, username: str, secret: str = "") -> None:
        """保存凭据，secret 为空时保留原有密钥."""
        _check_source(source)
        username = username.strip()
        if not username:
            msg = "用户名不能为空"
            raise InvalidOptionsError(msg)

        await self._set(f"{source}_username", username)
        if secret.strip():
            await self._set(f"{source}_secret", secret.strip())

        await self.session.commit()
        logger.info(f"已保存 {source} 凭据: {username}")

    async def clear_credentials(self, source: str) -> None:
        """删除凭据."""
        _check_source(source)
        for key in (f"{source}_username", f"{source}_secret"):
            item = await self.session.get(SettingItem, key)
            if item:
                await self.session.delete(item)
        await self.session.commit()
        logger.info(f"已清除 {source} 凭据")

    async def load(self, source: str) -> Credentials:
        """读取完整凭据，缺失时抛出 CredentialsMissingError."""
        _check_source(source)
        username = await self._get(f"{source}_username")
        secret = await self._get(f"{source}_secret")
        if not username or not secret:
            msg = f"{source} 凭据未设置"
            raise CredentialsMissingError(msg)
        return Credentials(username=username, secret=secret)
