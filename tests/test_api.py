"""测试 HTTP API."""

from pathlib import Path
from unittest.mock import AsyncMock, patch

from httpx import AsyncClient

from fakes import FakeFetcher, downloader_for, make_post
from tailburrow.config import get_library_root
from tailburrow.core.library import MediaStore
from tailburrow.core.runs import get_engine
from tailburrow.core.sync import SyncEngine


async def setup_library(client: AsyncClient, tmp_path: Path) -> Path:
    root = tmp_path / "lib"
    root.mkdir()
    response = await client.put("/api/library", json={"library_root": str(root)})
    assert response.status_code == 200
    return root


def fake_primary_engine(posts, delay: float = 0.0) -> SyncEngine:
    fetcher = FakeFetcher(posts)
    fetcher.delay = delay
    return SyncEngine(
        fetcher,
        downloader_for(posts),  # type: ignore[arg-type]
        MediaStore(get_library_root()),
        "fav:fox order:id_desc",
    )


class TestBasics:
    """测试根路径和健康检查."""

    async def test_health(self, client: AsyncClient) -> None:
        response = await client.get("/health")
        assert response.status_code == 200
        assert response.json() == {"status": "ok"}

    async def test_root(self, client: AsyncClient) -> None:
        response = await client.get("/")
        assert response.json()["name"] == "TailBurrow"


class TestLibraryApi:
    """测试资料库设置."""

    async def test_not_configured(self, client: AsyncClient) -> None:
        response = await client.get("/api/library")
        assert response.json()["library_root"] is None

        response = await client.get("/api/items")
        assert response.status_code == 400

    async def test_set_library_root(self, client: AsyncClient, tmp_path: Path) -> None:
        root = await setup_library(client, tmp_path)

        assert (root / "db" / "library.sqlite").exists()
        assert (root / ".trash" / "media").is_dir()

        response = await client.get("/api/library")
        assert response.json() == {"library_root": str(root.resolve()), "initialized": True}

        response = await client.get("/api/library/stats")
        assert response.json() == {"items": 0}

    async def test_missing_directory(self, client: AsyncClient, tmp_path: Path) -> None:
        response = await client.put(
            "/api/library", json={"library_root": str(tmp_path / "nope")}
        )
        assert response.status_code == 400

    async def test_clear_library_root(self, client: AsyncClient, tmp_path: Path) -> None:
        await setup_library(client, tmp_path)
        response = await client.delete("/api/library")
        assert response.status_code == 200

        response = await client.get("/api/library")
        assert response.json() == {"library_root": None, "initialized": False}


class TestCredentialsApi:
    """测试凭据接口."""

    async def test_secret_is_never_returned(self, client: AsyncClient, tmp_path: Path) -> None:
        await setup_library(client, tmp_path)

        response = await client.put(
            "/api/credentials/e621", json={"username": "fox", "secret": "api-key"}
        )
        assert response.status_code == 200
        assert response.json() == {"username": "fox", "has_secret": True}

        response = await client.get("/api/credentials/e621")
        assert "api-key" not in response.text

    async def test_fa_cookies(self, client: AsyncClient, tmp_path: Path) -> None:
        await setup_library(client, tmp_path)

        response = await client.put(
            "/api/credentials/furaffinity",
            json={"username": "fox", "cookie_a": "A", "cookie_b": "B"},
        )
        assert response.json()["has_secret"] is True

    async def test_blank_username(self, client: AsyncClient, tmp_path: Path) -> None:
        await setup_library(client, tmp_path)
        response = await client.put("/api/credentials/e621", json={"username": " "})
        assert response.status_code == 400

    async def test_unknown_source(self, client: AsyncClient, tmp_path: Path) -> None:
        await setup_library(client, tmp_path)
        response = await client.get("/api/credentials/deviantart")
        assert response.status_code == 404


class TestSyncApi:
    """测试同步控制面."""

    async def test_idle_status(self, client: AsyncClient) -> None:
        response = await client.get("/api/sync/e621/status")
        data = response.json()
        assert data["state"] == "idle"
        assert data["running"] is False
        assert data["downloaded_ok"] == 0

        response = await client.get("/api/sync/furaffinity/status")
        assert "skipped_md5" in response.json()

    async def test_cancel_when_idle(self, client: AsyncClient) -> None:
        response = await client.post("/api/sync/e621/cancel")
        assert response.status_code == 409

    async def test_unknown_source(self, client: AsyncClient) -> None:
        response = await client.get("/api/sync/deviantart/status")
        assert response.status_code == 404

    async def test_start_without_credentials(self, client: AsyncClient, tmp_path: Path) -> None:
        await setup_library(client, tmp_path)
        response = await client.post("/api/sync/e621/start")
        assert response.status_code == 400

    async def test_start_with_invalid_options(self, client: AsyncClient, tmp_path: Path) -> None:
        await setup_library(client, tmp_path)
        response = await client.post(
            "/api/sync/e621/start", json={"max_new_downloads": 0}
        )
        assert response.status_code == 400

    async def test_full_run(self, client: AsyncClient, tmp_path: Path) -> None:
        """启动 -> 后台运行 -> 轮询状态 -> 历史记录 -> 作品列表."""
        await setup_library(client, tmp_path)
        posts = [make_post("1"), make_post("2"), make_post("3", with_file=False)]
        engine = fake_primary_engine(posts, delay=0.3)

        with patch(
            "tailburrow.core.runs.build_primary_engine", AsyncMock(return_value=engine)
        ):
            response = await client.post("/api/sync/e621/start")
            assert response.status_code == 200
            assert response.json()["running"] is True

            response = await client.post("/api/sync/e621/start")
            assert response.status_code == 409

        assert get_engine("e621") is engine
        await engine.wait()

        status = (await client.get("/api/sync/e621/status")).json()
        assert status["state"] == "completed"
        assert status["downloaded_ok"] == 2
        assert status["unavailable"] == 1

        history = (await client.get("/api/sync/e621/history")).json()["items"]
        assert len(history) == 1
        assert history[0]["counters"]["downloaded_ok"] == 2

        unavailable = (await client.get("/api/sync/e621/unavailable")).json()["items"]
        assert [u["source_id"] for u in unavailable] == ["3"]

        items = (await client.get("/api/items")).json()
        assert items["total"] == 2
        assert items["items"][0]["artists"] == ["artist_a"]


class TestItemsApi:
    """测试作品编辑与回收站."""

    async def test_edit_and_trash(self, client: AsyncClient, tmp_path: Path) -> None:
        await setup_library(client, tmp_path)
        engine = fake_primary_engine([make_post("1")])
        await engine.run()

        item_id = (await client.get("/api/items")).json()["items"][0]["item_id"]

        response = await client.patch(f"/api/items/{item_id}/tags", json={"tags": ["B", "a"]})
        assert response.json()["tags"] == ["b", "a"]

        response = await client.delete(f"/api/items/{item_id}")
        assert response.status_code == 200
        assert (await client.get("/api/items/count")).json() == {"count": 0}

        response = await client.delete(f"/api/items/{item_id}")
        assert response.status_code == 404

    async def test_missing_item(self, client: AsyncClient, tmp_path: Path) -> None:
        await setup_library(client, tmp_path)
        response = await client.patch("/api/items/999/tags", json={"tags": []})
        assert response.status_code == 404


class TestFeedsApi:
    """测试保存的查询."""

    async def test_crud(self, client: AsyncClient, tmp_path: Path) -> None:
        await setup_library(client, tmp_path)

        response = await client.post("/api/feeds", json={"name": "Wolves", "query": "wolf"})
        feed = response.json()
        assert feed["name"] == "Wolves"

        response = await client.put(
            f"/api/feeds/{feed['id']}", json={"name": "Wolves", "query": "wolf solo"}
        )
        assert response.json()["query"] == "wolf solo"

        listing = (await client.get("/api/feeds")).json()
        assert listing["total"] == 1

        response = await client.delete(f"/api/feeds/{feed['id']}")
        assert response.status_code == 200
        response = await client.delete(f"/api/feeds/{feed['id']}")
        assert response.status_code == 404

    async def test_blank_query_rejected(self, client: AsyncClient, tmp_path: Path) -> None:
        await setup_library(client, tmp_path)
        response = await client.post("/api/feeds", json={"name": "x", "query": " "})
        assert response.status_code == 400

    async def test_browse_marks_archived(self, client: AsyncClient, tmp_path: Path) -> None:
        """浏览是只读的，并标注已归档的帖子."""
        await setup_library(client, tmp_path)
        await fake_primary_engine([make_post("1")]).run()
        feed = (await client.post("/api/feeds", json={"name": "W", "query": "wolf"})).json()

        fetcher = FakeFetcher([make_post("1"), make_post("2")])
        with patch("tailburrow.api.feeds.build_e621_client", AsyncMock(return_value=fetcher)):
            response = await client.get(f"/api/feeds/{feed['id']}/browse")

        data = response.json()
        assert [(p["id"], p["archived"]) for p in data["items"]] == [("1", True), ("2", False)]
        assert data["next_cursor"] is None
        assert fetcher.closed
        assert (await client.get("/api/items/count")).json() == {"count": 1}
