"""凭据 API."""

from typing import Any

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from tailburrow.api.errors import http_error
from tailburrow.core.credentials import (
    SECONDARY_SOURCE,
    SOURCES,
    CredentialStore,
    format_cookie_secret,
)
from tailburrow.core.errors import TailburrowError
from tailburrow.core.runs import build_e621_client
from tailburrow.models.database import get_session

router = APIRouter(prefix="/api/credentials", tags=["credentials"])


class CredentialsRequest(BaseModel):
    """保存凭据；secret 留空表示保留原值."""

    username: str
    secret: str = ""
    # FurAffinity 的会话 cookie，可替代 secret
    cookie_a: str = ""
    cookie_b: str = ""


def _check_source(source: str) -> None:
    if source not in SOURCES:
        raise HTTPException(status_code=404, detail=f"未知来源: {source}")


@router.get("/{source}")
async def get_credentials(
    source: str,
    session: AsyncSession = Depends(get_session),
) -> dict[str, Any]:
    """凭据信息（不返回密钥）."""
    _check_source(source)
    info = await CredentialStore(session).get_cred_info(source)
    return {"username": info.username, "has_secret": info.has_secret}


@router.put("/{source}")
async def set_credentials(
    source: str,
    request: CredentialsRequest,
    session: AsyncSession = Depends(get_session),
) -> dict[str, Any]:
    """保存凭据."""
    _check_source(source)
    secret = request.secret
    if source == SECONDARY_SOURCE and request.cookie_a.strip() and request.cookie_b.strip():
        secret = format_cookie_secret(request.cookie_a, request.cookie_b)

    store = CredentialStore(session)
    try:
        await store.set_credentials(source, request.username, secret)
    except TailburrowError as e:
        raise http_error(e) from e

    info = await store.get_cred_info(source)
    return {"username": info.username, "has_secret": info.has_secret}


@router.delete("/{source}")
async def clear_credentials(
    source: str,
    session: AsyncSession = Depends(get_session),
) -> dict[str, bool]:
    """清除凭据."""
    _check_source(source)
    await CredentialStore(session).clear_credentials(source)
    return {"success": True}


@router.post("/e621/test")
async def test_e621(
    session: AsyncSession = Depends(get_session),
) -> dict[str, Any]:
    """测试 e621 凭据."""
    try:
        client = await build_e621_client(session)
    except TailburrowError as e:
        raise http_error(e) from e

    try:
        await client.test_connection()
    except TailburrowError as e:
        return {"success": False, "message": str(e)}
    finally:
        await client.close()
    return {"success": True, "message": "连接成功"}
