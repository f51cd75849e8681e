"""Tests for bulk delete and bulk archive."""
import io
import zipfile

import pytest

from filevault.errors import InvalidInputError, NotFoundError
from filevault.services.bulk import BulkOperationEngine
from filevault.services.records import Backend, RecordRef

R, D = Backend.RELATIONAL, Backend.DOCUMENT


class TestBulkDelete:
    @pytest.mark.asyncio
    async def test_five_valid_one_missing(self, registry, bulk_engine, add_file):
        records = [await add_file(f"f{i}.txt", R if i % 2 else D) for i in range(5)]
        refs = [r.ref for r in records]
        refs.insert(2, RecordRef("999", R))

        result = await bulk_engine.bulk_delete(refs)

        assert result.succeeded == 5
        assert result.failed == 1
        assert len(result.errors) == 1
        assert "999" in result.errors[0]
        for record in records:
            with pytest.raises(NotFoundError):
                await registry.get(record.id, record.backend)

    @pytest.mark.asyncio
    async def test_one_failure_in_a_hundred(self, registry, add_file, relational_store):
        records = [await add_file(f"f{i}.txt", R) for i in range(100)]
        relational_store.unavailable_ids.add(records[36].id)
        engine = BulkOperationEngine(registry, concurrency=8)

        result = await engine.bulk_delete([r.ref for r in records])

        assert (result.succeeded, result.failed) == (99, 1)
        assert result.errors == [f"Failed to delete file {records[36].id}: relational store unreachable"]
        relational_store.unavailable_ids.clear()
        assert [r.id for r in await registry.list()] == [records[36].id]

    @pytest.mark.asyncio
    async def test_sequential_and_concurrent_agree(self, registry, add_file):
        refs = [(await add_file(f"s{i}.txt", D)).ref for i in range(4)] + [RecordRef("x", D)]
        result = await BulkOperationEngine(registry, concurrency=1).bulk_delete(refs)
        assert (result.succeeded, result.failed) == (4, 1)

    @pytest.mark.asyncio
    async def test_errors_keep_input_order(self, bulk_engine):
        refs = [RecordRef("a", R), RecordRef("b", D), RecordRef("c", R)]
        result = await bulk_engine.bulk_delete(refs)
        assert result.failed == 3
        assert [e.split(":")[0] for e in result.errors] == [
            "Failed to delete file a",
            "Failed to delete file b",
            "Failed to delete file c",
        ]

    @pytest.mark.asyncio
    async def test_same_id_different_backends(self, registry, bulk_engine, add_file):
        rel = await add_file("rel.txt", R)
        doc = await add_file("doc.txt", D)
        assert rel.id == doc.id

        result = await bulk_engine.bulk_delete([rel.ref])

        assert result.succeeded == 1
        assert (await registry.get(doc.id, D)).original_name == "doc.txt"

    @pytest.mark.asyncio
    async def test_empty_input_is_rejected(self, bulk_engine):
        with pytest.raises(InvalidInputError):
            await bulk_engine.bulk_delete([])

    @pytest.mark.asyncio
    async def test_run_dispatches_delete_and_rejects_unknown(self, bulk_engine, add_file):
        record = await add_file("a.txt", R)
        result = await bulk_engine.run("delete", [record.ref])
        assert result.succeeded == 1
        with pytest.raises(InvalidInputError):
            await bulk_engine.run("explode", [record.ref])


class TestBulkArchive:
    @pytest.mark.asyncio
    async def test_archives_under_original_names(self, bulk_engine, add_file):
        a = await add_file("report.txt", R, content="one")
        b = await add_file("report.txt", D, content="two")
        c = await add_file("data.json", D, content={"k": 1})

        data, errors = await bulk_engine.archive([a.ref, b.ref, c.ref, RecordRef("404", R)])

        assert len(errors) == 1 and "404" in errors[0]
        with zipfile.ZipFile(io.BytesIO(data)) as archive:
            assert archive.namelist() == ["report.txt", "report (1).txt", "data.json"]
            assert archive.read("report.txt") == b"one"
            assert archive.read("report (1).txt") == b"two"

    @pytest.mark.asyncio
    async def test_missing_blob_is_skipped(self, registry, bulk_engine, add_file):
        a = await add_file("a.txt", R, content="x")
        registry.blobs.resolve(a.stored_path).unlink()
        data, errors = await bulk_engine.archive([a.ref])
        assert len(errors) == 1
        with zipfile.ZipFile(io.BytesIO(data)) as archive:
            assert archive.namelist() == []
