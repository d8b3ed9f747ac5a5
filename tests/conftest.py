"""测试配置和 fixtures."""

from collections.abc import AsyncGenerator, Generator
from pathlib import Path

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlmodel import SQLModel

import tailburrow.models  # noqa: F401  注册所有表
from tailburrow.config import get_settings
from tailburrow.core.library import MediaStore, ensure_layout
from tailburrow.core.runs import reset_engines
from tailburrow.main import app
from tailburrow.models.database import create_engine, dispose_db


@pytest.fixture(autouse=True)
def _clean_engines() -> Generator[None, None, None]:
    """每个测试结束后清空全局引擎注册表."""
    yield
    reset_engines()


@pytest_asyncio.fixture
async def session_factory(tmp_path: Path) -> AsyncGenerator[async_sessionmaker[AsyncSession], None]:
    """临时 SQLite 文件上的会话工厂（引擎测试需要多个会话）."""
    engine = create_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.sqlite'}")

    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)

    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    await engine.dispose()


@pytest_asyncio.fixture
async def async_session(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncSession, None]:
    """创建测试用的数据库会话."""
    async with session_factory() as session:
        yield session


@pytest.fixture
def library_root(tmp_path: Path) -> Path:
    """创建测试用的资料库目录."""
    root = tmp_path / "library"
    ensure_layout(root)
    return root


@pytest.fixture
def media(library_root: Path) -> MediaStore:
    return MediaStore(library_root)


@pytest_asyncio.fixture
async def client(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> AsyncGenerator[AsyncClient, None]:
    """创建测试用的 HTTP 客户端，配置目录指向临时目录."""
    monkeypatch.setenv("APP_DATA_DIR", str(tmp_path / "appdata"))
    monkeypatch.delenv("LIBRARY_ROOT", raising=False)
    get_settings.cache_clear()

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    await dispose_db()
    get_settings.cache_clear()
