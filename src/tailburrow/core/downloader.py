"""文件下载：超时、重试、指数退避."""

import asyncio
import logging

import httpx

from tailburrow.core.errors import AuthenticationError, TransientFetchError

logger = logging.getLogger(__name__)

AUTH_FAILURE_STATUSES = frozenset({401, 403})


def check_auth(response: httpx.Response) -> None:
    """401/403 视为认证失败."""
    if response.status_code in AUTH_FAILURE_STATUSES:
        msg = f"认证失败: HTTP {response.status_code}"
        raise AuthenticationError(msg)


class Downloader:
    """下载远程文件为字节串.

    网络错误和 5xx 会重试；4xx 直接失败。最终失败抛出 TransientFetchError。
    """

    def __init__(
        self,
        client: httpx.AsyncClient | None = None,
        *,
        headers: dict[str, str] | None = None,
        timeout: float = 30.0,
        retry_max: int = 3,
        retry_backoff: float = 2.0,
    ) -> None:
        self._client = client or httpx.AsyncClient(timeout=timeout, follow_redirects=True)
        self._headers = headers or {}
        self.retry_max = retry_max
        self.retry_backoff = retry_backoff

    async def close(self) -> None:
        """关闭客户端."""
        await self._client.aclose()

    async def download(self, url: str) -> bytes:
        """下载 url，返回文件内容."""
        last_error: str | None = None

        for attempt in range(self.retry_max + 1):
            try:
                response = await self._client.get(url, headers=self._headers)
            except httpx.HTTPError as e:
                last_error = f"{type(e).__name__}: {e}"
            else:
                if response.is_success:
                    return response.content
                last_error = f"HTTP {response.status_code}"
                if response.status_code < 500:
                    break

            if attempt < self.retry_max:
                delay = self.retry_backoff * (2**attempt)
                logger.info(f"下载失败，{delay:.1f} 秒后重试: {url} ({last_error})")
                await asyncio.sleep(delay)

        msg = f"下载失败: {url} ({last_error})"
        raise TransientFetchError(msg)
