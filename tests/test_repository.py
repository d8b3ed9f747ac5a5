"""测试作品仓库."""

from datetime import UTC, datetime, timedelta

from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from fakes import file_bytes, make_post
from tailburrow.core.hashing import content_hash
from tailburrow.core.library import MediaStore
from tailburrow.core.repository import ItemDraft, ItemRepository, draft_from_primary_post
from tailburrow.models.item import Item
from tailburrow.models.sync import SyncRunRecord
from tailburrow.models.unavailable import UnavailablePost


def fa_draft(source_id: str = "100", md5: str = "f" * 32) -> ItemDraft:
    return ItemDraft(
        source="furaffinity",
        source_id=source_id,
        md5=md5,
        remote_url=f"https://d.fa.example/art/wolf/{source_id}.jpg",
        ext="jpg",
        rating="s",
        primary_artist="wolf",
        tags=[("wolf", "artist"), ("forest", "general")],
        sources=[f"https://fa.example/view/{source_id}/"],
    )


class TestDraft:
    """测试主来源帖子转换."""

    def test_draft_from_primary_post(self) -> None:
        post = make_post("7", artists=("conditional_dnp", "Big Wolf"), sources=("https://x/1",))
        draft = draft_from_primary_post(post, "abc")

        assert draft.source == "e621"
        assert draft.source_id == "7"
        assert draft.md5 == "abc"
        assert draft.primary_artist == "big_wolf"
        assert draft.sources == ["https://x/1", "https://e621.example/posts/7"]
        assert ("canine", "general") in draft.tags
        assert ("Big Wolf", "artist") in draft.tags


class TestCommit:
    """测试作品提交."""

    async def test_commit_new_item(self, async_session: AsyncSession, media: MediaStore) -> None:
        """文件和元数据一起写入."""
        repo = ItemRepository(async_session)
        post = make_post("1")
        data = file_bytes("1")

        item = await repo.commit_new_item(
            draft_from_primary_post(post, content_hash(data)), data, media, "artist_a_e621_1"
        )

        assert item is not None
        assert item.file_rel == "media/artist_a_e621_1.png"
        assert item.size_bytes == len(data)
        assert media.abs_path(item.file_rel).read_bytes() == data
        assert await repo.exists("e621", "1")
        assert not await repo.exists("e621", "2")

    def test_timestamps_are_timezone_aware(self) -> None:
        """默认时间戳带 UTC 时区."""
        item = Item(source="e621", source_id="1", file_rel="media/a.png")
        record = UnavailablePost(source="e621", source_id="1", reason="no file URL")
        run = SyncRunRecord(source="e621", status="running")

        assert item.added_at.tzinfo is UTC
        assert record.seen_at.tzinfo is UTC
        assert run.started_at.tzinfo is UTC

    async def test_duplicate_key_returns_none_and_removes_file(
        self, async_session: AsyncSession, media: MediaStore
    ) -> None:
        """重复键不会产生第二行，也不会留下孤立文件."""
        repo = ItemRepository(async_session)
        draft = fa_draft()

        first = await repo.commit_new_item(draft, b"one", media, "wolf_fa_100")
        second = await repo.commit_new_item(draft, b"two", media, "wolf_fa_100")

        assert first is not None
        assert second is None
        assert [p.name for p in media.media_dir.iterdir()] == ["wolf_fa_100.jpg"]

        result = await async_session.execute(select(Item))
        assert len(result.scalars().all()) == 1

    async def test_tags_keep_order(self, async_session: AsyncSession) -> None:
        repo = ItemRepository(async_session)
        draft = fa_draft()
        draft.tags = [("zebra", "general"), ("Apple", "general"), ("zebra", "general")]
        item = await repo.insert(draft, "media/x.jpg")

        assert item.item_id is not None
        assert await repo.item_tags(item.item_id) == [("zebra", "general"), ("apple", "general")]


class TestLookups:
    """测试存在性检查."""

    async def test_exists_by_hash(self, async_session: AsyncSession) -> None:
        repo = ItemRepository(async_session)
        await repo.insert(fa_draft(md5="a" * 32), "media/a.jpg")

        found = await repo.exists_by_hash("a" * 32)
        assert found is not None
        assert found.source_id == "100"
        assert await repo.exists_by_hash("b" * 32) is None

    async def test_exists_by_url_checks_remote_url_and_links(
        self, async_session: AsyncSession
    ) -> None:
        """remote_url 和出处链接都算已存在."""
        repo = ItemRepository(async_session)
        await repo.insert(fa_draft(), "media/a.jpg")

        assert await repo.exists_by_url("https://d.fa.example/art/wolf/100.jpg")
        assert await repo.exists_by_url("https://fa.example/view/100/")
        assert not await repo.exists_by_url("https://fa.example/view/101/")

    async def test_add_provenance(self, async_session: AsyncSession) -> None:
        repo = ItemRepository(async_session)
        item = await repo.insert(fa_draft(), "media/a.jpg")

        assert await repo.add_provenance(item, "https://other.example/1") is True
        assert await repo.add_provenance(item, "https://other.example/1") is False
        assert item.item_id is not None
        assert "https://other.example/1" in await repo.item_sources(item.item_id)


class TestUpgrade:
    """测试次来源作品原地升级."""

    async def test_upgrade_to_primary_keeps_file(self, async_session: AsyncSession) -> None:
        repo = ItemRepository(async_session)
        item = await repo.insert(fa_draft(md5="c" * 32), "media/wolf_fa_100.jpg")
        assert item.item_id is not None

        post = make_post("555", md5="c" * 32)
        upgraded = await repo.upgrade_to_primary(item, post)

        assert upgraded.item_id == item.item_id
        assert upgraded.source == "e621"
        assert upgraded.source_id == "555"
        assert upgraded.file_rel == "media/wolf_fa_100.jpg"
        assert await repo.exists("e621", "555")
        assert not await repo.exists("furaffinity", "100")

        sources = await repo.item_sources(item.item_id)
        assert "https://fa.example/view/100/" in sources
        assert "https://e621.example/posts/555" in sources


class TestEditing:
    """测试标签编辑、回收站."""

    async def test_update_tags_replaces_list(self, async_session: AsyncSession) -> None:
        repo = ItemRepository(async_session)
        item = await repo.insert(fa_draft(), "media/a.jpg")
        assert item.item_id is not None

        assert await repo.update_tags(item.item_id, [" New ", "", "other"]) is True
        assert await repo.item_tags(item.item_id) == [("new", "general"), ("other", "general")]
        assert await repo.update_tags(9999, ["x"]) is False

    async def test_soft_delete_keeps_item_existing(
        self, async_session: AsyncSession, media: MediaStore
    ) -> None:
        """回收站中的作品仍算已存在，不会被重新下载."""
        repo = ItemRepository(async_session)
        item = await repo.commit_new_item(fa_draft(), b"data", media, "wolf_fa_100")
        assert item is not None and item.item_id is not None

        assert await repo.soft_delete(item.item_id, media) is True
        assert await repo.soft_delete(item.item_id, media) is False

        assert await repo.exists("furaffinity", "100")
        assert await repo.count_items() == 0
        assert not media.abs_path(item.file_rel).exists()
        assert media.abs_path(f".trash/{item.file_rel}").exists()

    async def test_purge_trash_respects_cutoff(
        self, async_session: AsyncSession, media: MediaStore
    ) -> None:
        repo = ItemRepository(async_session)
        old = await repo.commit_new_item(fa_draft("1", "1" * 32), b"old", media, "wolf_fa_1")
        new = await repo.commit_new_item(fa_draft("2", "2" * 32), b"new", media, "wolf_fa_2")
        assert old is not None and old.item_id is not None
        assert new is not None and new.item_id is not None

        await repo.soft_delete(old.item_id, media)
        await repo.soft_delete(new.item_id, media)
        old.trashed_at = datetime.now(UTC) - timedelta(days=40)
        await async_session.commit()

        purged = await repo.purge_trash(datetime.now(UTC) - timedelta(days=30), media)

        assert purged == 1
        assert not await repo.exists("furaffinity", "1")
        assert await repo.exists("furaffinity", "2")
        assert not media.abs_path(f".trash/{old.file_rel}").exists()


class TestUnavailable:
    """测试无法归档记录."""

    async def test_record_unavailable_upserts(self, async_session: AsyncSession) -> None:
        repo = ItemRepository(async_session)
        await repo.record_unavailable("e621", "9", "no file URL", ["https://x/9"])
        await repo.record_unavailable("e621", "9", "download_failed", [])

        result = await async_session.execute(select(UnavailablePost))
        records = result.scalars().all()
        assert len(records) == 1
        assert records[0].reason == "download_failed"

        listed = await repo.list_unavailable()
        assert listed[0]["source_id"] == "9"
        assert listed[0]["sources"] == []
