"""Relational store against a real SQLite database (aiosqlite)."""
from datetime import datetime, timedelta, timezone

import pytest
import pytest_asyncio

from filevault.database import build_engine
from filevault.errors import BackendUnavailableError, NotFoundError
from filevault.models import Base
from filevault.services.records import Backend, FileFilter, NewFileRecord
from filevault.services.relational_store import RelationalMetadataStore

T0 = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


@pytest_asyncio.fixture
async def store(tmp_path):
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'meta.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield RelationalMetadataStore(engine)
    await engine.dispose()


async def _insert(store, name, minutes=0, **kwargs):
    kwargs.setdefault("category", "docs")
    return await store.insert(
        NewFileRecord(
            original_name=name,
            stored_path=f"{name}.blob",
            created_at=T0 + timedelta(minutes=minutes),
            **kwargs,
        )
    )


class TestRelationalMetadataStore:
    @pytest.mark.asyncio
    async def test_insert_and_get(self, store):
        record = await _insert(store, "Photo.PNG", tags=["a", "b"], size_bytes=10, mime_type="image/png")

        fetched = await store.get(record.id)
        assert fetched.backend == Backend.RELATIONAL
        assert fetched.original_name == "Photo.PNG"
        assert fetched.extension == "png"
        assert fetched.tags == ("a", "b")
        assert fetched.size_bytes == 10
        assert fetched.created_at == T0
        assert fetched.created_at.tzinfo is not None

    @pytest.mark.asyncio
    async def test_get_unknown_or_malformed_id(self, store):
        with pytest.raises(NotFoundError):
            await store.get("12345")
        with pytest.raises(NotFoundError):
            await store.get("not-a-number")

    @pytest.mark.parametrize("record_id", ["99999999999999999999", "2147483648", "0", "-5"])
    @pytest.mark.asyncio
    async def test_out_of_range_id_is_not_found(self, store, record_id):
        await _insert(store, "present.txt")
        with pytest.raises(NotFoundError):
            await store.get(record_id)
        with pytest.raises(NotFoundError):
            await store.rename(record_id, "x.txt")
        with pytest.raises(NotFoundError):
            await store.delete(record_id)

    @pytest.mark.asyncio
    async def test_list_newest_first(self, store):
        await _insert(store, "old.txt", minutes=1)
        await _insert(store, "new.txt", minutes=5)
        await _insert(store, "mid.txt", minutes=3)

        records = await store.list(FileFilter())
        assert [r.original_name for r in records] == ["new.txt", "mid.txt", "old.txt"]

    @pytest.mark.asyncio
    async def test_query_is_case_insensitive_substring(self, store):
        await _insert(store, "Quarterly Report.pdf")
        await _insert(store, "notes.txt")
        records = await store.list(FileFilter.build(query="report"))
        assert [r.original_name for r in records] == ["Quarterly Report.pdf"]

    @pytest.mark.asyncio
    async def test_query_wildcards_are_literal(self, store):
        await _insert(store, "100%_done.txt")
        await _insert(store, "100 done.txt")
        records = await store.list(FileFilter.build(query="100%_"))
        assert [r.original_name for r in records] == ["100%_done.txt"]

    @pytest.mark.asyncio
    async def test_category_extension_and_tags(self, store):
        await _insert(store, "a.json", category="reports", tags=["x", "y"])
        await _insert(store, "b.json", category="reports", tags=["x"])
        await _insert(store, "c.csv", category="reports", tags=["x", "y"])
        await _insert(store, "d.json", category="other", tags=["x", "y"])

        records = await store.list(FileFilter.build(category="reports", extension="JSON", tags=["x", "y"]))
        assert [r.original_name for r in records] == ["a.json"]

    @pytest.mark.asyncio
    async def test_rename(self, store):
        record = await _insert(store, "before.txt")
        renamed = await store.rename(record.id, "after.txt")
        assert renamed.original_name == "after.txt"
        assert renamed.stored_path == record.stored_path
        assert (await store.get(record.id)).original_name == "after.txt"

    @pytest.mark.asyncio
    async def test_rename_missing(self, store):
        with pytest.raises(NotFoundError):
            await store.rename("77", "x.txt")

    @pytest.mark.asyncio
    async def test_delete_returns_record_then_not_found(self, store):
        record = await _insert(store, "bye.txt")
        deleted = await store.delete(record.id)
        assert deleted.stored_path == "bye.txt.blob"
        with pytest.raises(NotFoundError):
            await store.get(record.id)
        with pytest.raises(NotFoundError):
            await store.delete(record.id)

    @pytest.mark.asyncio
    async def test_aggregate(self, store):
        await _insert(store, "a.json", category="reports")
        await _insert(store, "b.json", category="data")
        await _insert(store, "c.csv", category="reports")

        stats = await store.aggregate()
        assert stats.total == 3
        assert stats.by_category == {"reports": 2, "data": 1}
        assert stats.by_extension == {"json": 2, "csv": 1}

    @pytest.mark.asyncio
    async def test_aggregate_empty(self, store):
        stats = await store.aggregate()
        assert (stats.total, stats.by_category, stats.by_extension) == (0, {}, {})

    @pytest.mark.asyncio
    async def test_driver_errors_become_backend_unavailable(self, store):
        async with store.engine.begin() as conn:
            await conn.run_sync(Base.metadata.drop_all)
        with pytest.raises(BackendUnavailableError):
            await store.list(FileFilter())
