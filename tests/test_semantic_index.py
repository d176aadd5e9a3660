"""Tests for the semantic index manager, the indexing pipeline and index persistence."""

import asyncio
import json

import pytest

from conftest import FakeEmbeddings, FakeStore
from vaultsearch.core.cancellation import CancellationToken
from vaultsearch.models.chunk import ChunkRecord
from vaultsearch.models.document import DocumentInfo
from vaultsearch.rag.chunking import ChunkManager
from vaultsearch.services.index_persistence import IndexPersistence
from vaultsearch.services.indexing_service import IndexingPipeline
from vaultsearch.services.semantic_index import IndexState, SemanticIndexManager


class CancelAfterFirstBatch:
    """Hooks that request cancellation once the first progress report arrives."""

    def __init__(self):
        self.progress = []

    def on_progress(self, completed: int, total: int) -> None:
        self.progress.append((completed, total))

    def on_pause_requested(self) -> bool:
        return False

    def on_cancel_requested(self) -> bool:
        return bool(self.progress)


class ShortEmbeddings(FakeEmbeddings):
    """Returns one vector fewer than requested."""

    async def embed_documents(self, texts):
        vectors = await super().embed_documents(texts)
        return vectors[:-1]


# ============================================================================
# Lifecycle
# ============================================================================


class TestLifecycle:
    async def test_open_without_index_file(self, make_index, fruit_store) -> None:
        index = make_index(fruit_store)
        assert index.state == IndexState.UNLOADED

        await index.open()

        assert index.state == IndexState.EMPTY
        assert index.chunk_count == 0
        assert await index.search(["apple"], 5) == []

    async def test_async_context_manager(self, make_index, fruit_store) -> None:
        async with make_index(fruit_store) as index:
            await index.index_vault()
            assert index.state == IndexState.READY
        assert index.state == IndexState.UNLOADED
        assert index.chunk_count == 0

    async def test_reload_from_disk(self, make_index, fruit_store) -> None:
        first = make_index(fruit_store)
        await first.index_vault()

        second = make_index(fruit_store)
        await second.open()

        assert second.state == IndexState.READY
        assert second.chunk_count == 3
        assert second.get_indexed_paths() == ["a.md", "b.md", "c.md"]

        result = await second.index_vault_incremental()
        assert result.status == "unchanged"

    async def test_malformed_lines_are_skipped(self, tmp_path, make_index, fruit_store) -> None:
        index_path = tmp_path / "index.jsonl"
        record = ChunkRecord(id="a.md#0", path="a.md", title="a", mtime=1000, embedding=[1.0, 0.0])
        index_path.write_text(
            "\n".join(
                [
                    json.dumps(record.model_dump()),
                    "not json",
                    json.dumps({"id": "b.md#0"}),
                    json.dumps({"id": "c.md#0", "path": "c.md", "mtime": 1, "embedding": []}),
                ]
            )
            + "\n",
            encoding="utf-8",
        )

        index = make_index(fruit_store)
        await index.open()

        assert index.chunk_count == 1
        assert index.has_document("a.md")

    async def test_unreadable_index_starts_empty(self, tmp_path, make_index, fruit_store) -> None:
        (tmp_path / "index.jsonl").write_bytes(b"\xff\xfe\xfa not utf-8")

        index = make_index(fruit_store)
        await index.open()

        assert index.state == IndexState.EMPTY
        assert index.chunk_count == 0


# ============================================================================
# Indexing
# ============================================================================


class TestIndexing:
    async def test_index_vault(self, tmp_path, make_index, fruit_store, embeddings) -> None:
        index = make_index(fruit_store)

        result = await index.index_vault()

        assert result.status == "success"
        assert result.ok
        assert result.documents == 3
        assert result.chunks == 3
        assert result.embed_calls == 1
        assert result.duration_ms >= 0
        assert index.state == IndexState.READY
        assert (tmp_path / "index.jsonl").is_file()
        assert embeddings.document_calls == 1

    async def test_batches_respect_batch_size(self, make_index, fruit_store, embeddings) -> None:
        index = make_index(fruit_store)
        index.pipeline.set_batch_size(2)

        result = await index.index_vault()

        assert result.embed_calls == 2
        assert [len(batch) for batch in embeddings.batches] == [2, 1]

    async def test_incremental_without_index_builds_everything(self, make_index, fruit_store) -> None:
        result = await make_index(fruit_store).index_vault_incremental()

        assert result.status == "success"
        assert result.documents == 3

    async def test_incremental_no_op(self, make_index, fruit_store, embeddings) -> None:
        """Should report UNCHANGED without embedding or rewriting anything."""
        index = make_index(fruit_store)
        await index.index_vault()

        result = await index.index_vault_incremental()

        assert result.status == "unchanged"
        assert result.ok
        assert result.embed_calls == 0
        assert result.documents == 0
        assert result.chunks == 3
        assert embeddings.document_calls == 1

    async def test_incremental_reembeds_modified_notes(self, make_index, fruit_store, embeddings) -> None:
        index = make_index(fruit_store)
        await index.index_vault()

        fruit_store.set_note("a.md", "apple cider")
        result = await index.index_vault_incremental()

        assert result.status == "success"
        assert result.documents == 1
        assert result.chunks == 3
        assert len(embeddings.batches[-1]) == 1
        assert "apple cider" in embeddings.batches[-1][0]
        assert index.get_document_embeddings("a.md")[0].mtime == 2000

    async def test_incremental_adds_new_notes(self, make_index, fruit_store) -> None:
        index = make_index(fruit_store)
        await index.index_vault()

        fruit_store.set_note("d.md", "dog")
        result = await index.index_vault_incremental()

        assert result.documents == 1
        assert result.chunks == 4
        assert index.has_document("d.md")

    async def test_incremental_drops_removed_notes(self, tmp_path, make_index, fruit_store, embeddings) -> None:
        index = make_index(fruit_store)
        await index.index_vault()

        fruit_store.remove_note("b.md")
        result = await index.index_vault_incremental()

        assert result.status == "success"
        assert result.documents == 0
        assert result.chunks == 2
        assert not index.has_document("b.md")
        assert embeddings.document_calls == 1

        reloaded = make_index(fruit_store)
        await reloaded.open()
        assert reloaded.get_indexed_paths() == ["a.md", "c.md"]

    async def test_empty_notes_do_not_retrigger(self, make_index, embeddings) -> None:
        store = FakeStore({"a.md": "apple", "empty.md": "   "})
        index = make_index(store)

        first = await index.index_vault()
        second = await index.index_vault_incremental()

        assert first.documents == 1
        assert first.chunks == 1
        assert second.status == "unchanged"

    async def test_reindex_document(self, make_index, fruit_store, embeddings) -> None:
        index = make_index(fruit_store)
        await index.index_vault()

        result = await index.reindex_document("a.md")

        assert result.status == "success"
        assert result.documents == 1
        assert result.chunks == 3
        assert embeddings.document_calls == 2

    async def test_reindex_removed_document(self, make_index, fruit_store) -> None:
        index = make_index(fruit_store)
        await index.index_vault()

        fruit_store.remove_note("a.md")
        result = await index.reindex_document("a.md")

        assert result.documents == 0
        assert result.chunks == 2
        assert not index.has_document("a.md")

    async def test_failed_batch_is_partial_and_retried(self, make_index, fruit_store, embeddings) -> None:
        index = make_index(fruit_store)
        index.pipeline.set_batch_size(1)
        embeddings.fail_batches = {2}

        result = await index.index_vault()

        assert result.status == "partial"
        assert not result.ok
        assert result.documents == 2
        assert result.chunks == 2
        assert result.errors[0].startswith("batch 1:")
        assert not index.has_document("b.md")

        retry = await index.index_vault_incremental()

        assert retry.status == "success"
        assert retry.documents == 1
        assert retry.chunks == 3

    async def test_cancelled_before_first_batch(self, make_index, fruit_store, embeddings) -> None:
        token = CancellationToken()
        token.cancel()

        result = await make_index(fruit_store).index_vault(token)

        assert result.status == "cancelled"
        assert result.documents == 0
        assert result.embed_calls == 0
        assert embeddings.document_calls == 0

    async def test_cancelled_mid_run_keeps_finished_notes(self, make_index, fruit_store) -> None:
        index = make_index(fruit_store)
        index.pipeline.set_batch_size(1)
        hooks = CancelAfterFirstBatch()

        result = await index.index_vault(CancellationToken(hooks=hooks))

        assert result.status == "cancelled"
        assert result.documents == 1
        assert result.chunks == 1
        assert hooks.progress == [(1, 3)]

        resumed = await index.index_vault_incremental()
        assert resumed.documents == 2
        assert resumed.chunks == 3

    async def test_write_failure_returns_failed(self, tmp_path, settings, embeddings, rate_limiter, fruit_store) -> None:
        blocker = tmp_path / "blocker"
        blocker.write_text("not a directory")
        index = SemanticIndexManager(
            fruit_store,
            embeddings,
            persistence=IndexPersistence(blocker / "index.jsonl"),
            settings=settings,
            rate_limiter=rate_limiter,
        )

        result = await index.index_vault()

        assert result.status == "failed"
        assert result.documents == 0
        assert result.chunks == 0
        assert result.errors
        assert index.metrics.get_metrics()["indexing.failures"] == 1

    async def test_indexing_runs_are_serialized(self, make_index, fruit_store, embeddings) -> None:
        index = make_index(fruit_store)

        full, incremental = await asyncio.gather(index.index_vault(), index.index_vault_incremental())

        assert full.status == "success"
        assert incremental.status == "unchanged"
        assert embeddings.document_calls == 1

    async def test_clear_index(self, tmp_path, make_index, fruit_store) -> None:
        index = make_index(fruit_store)
        await index.index_vault()

        await index.clear_index()

        assert index.chunk_count == 0
        assert index.state == IndexState.EMPTY
        assert not (tmp_path / "index.jsonl").exists()


# ============================================================================
# Querying
# ============================================================================


class TestSemanticSearch:
    async def test_ranking(self, make_index, fruit_store) -> None:
        index = make_index(fruit_store)
        await index.index_vault()

        hits = await index.search(["apple banana"], 2)

        assert [chunk_id for chunk_id, _ in hits] == ["a.md#0", "c.md#0"]
        assert hits[0][1] == pytest.approx(1.0)
        assert hits[1][1] == pytest.approx(0.5)

    async def test_variants_are_averaged_and_deduplicated(self, make_index, fruit_store, embeddings) -> None:
        index = make_index(fruit_store)
        await index.index_vault()

        hits = await index.search(["apple", "apple ", "banana", ""], 3)

        assert embeddings.query_calls == 2
        assert [chunk_id for chunk_id, _ in hits] == ["a.md#0", "c.md#0", "b.md#0"]
        assert [score for _, score in hits] == pytest.approx([1.0, 0.5, 0.0])

    async def test_candidates_restrict_hits(self, make_index, fruit_store) -> None:
        index = make_index(fruit_store)
        await index.index_vault()

        hits = await index.search(["apple banana"], 5, candidates=["c.md", "b.md"])

        assert [chunk_id for chunk_id, _ in hits] == ["c.md#0", "b.md#0"]

    async def test_empty_candidates_match_nothing(self, make_index, fruit_store, embeddings) -> None:
        """Should not fall back to the whole index when no candidate survived the scan."""
        index = make_index(fruit_store)
        await index.index_vault()

        assert await index.search(["apple"], 5, candidates=[]) == []
        assert embeddings.query_calls == 0
        assert len(await index.search(["apple"], 5, candidates=None)) == 3

    async def test_failed_query_embedding(self, make_index, fruit_store, embeddings) -> None:
        index = make_index(fruit_store)
        await index.index_vault()
        embeddings.fail_query = True

        assert await index.search(["apple"], 3) == []
        assert index.metrics.get_metrics()["semantic.variant_failures"] == 1

    async def test_non_positive_top_k(self, make_index, fruit_store) -> None:
        index = make_index(fruit_store)
        await index.index_vault()

        assert await index.search(["apple"], 0) == []

    async def test_accessors(self, make_index, fruit_store) -> None:
        index = make_index(fruit_store)
        await index.index_vault()

        assert index.get_indexed_paths() == ["a.md", "b.md", "c.md"]
        assert index.has_document("a.md")
        assert not index.has_document("z.md")
        record = index.get_document_embeddings("a.md")[0]
        assert record.id == "a.md#0"
        assert record.title == "a"
        assert record.ctime == 1000

    def test_update_rate_limit(self, make_index, fruit_store) -> None:
        index = make_index(fruit_store)
        index.update_rate_limit(5)
        assert index.rate_limiter.requests_per_minute == 5


# ============================================================================
# Pipeline and persistence
# ============================================================================


class TestIndexingPipeline:
    async def test_empty_document(self, embeddings, rate_limiter) -> None:
        store = FakeStore({"e.md": ""})
        pipeline = IndexingPipeline(ChunkManager(store), embeddings, rate_limiter)

        outcome = await pipeline.run([DocumentInfo(path="e.md", mtime=1000)])

        assert outcome.empty_paths == {"e.md"}
        assert outcome.completed_paths == {"e.md"}
        assert outcome.documents == 0
        assert outcome.embed_calls == 0

    async def test_vector_count_mismatch_is_an_error(self, rate_limiter, fruit_store) -> None:
        pipeline = IndexingPipeline(ChunkManager(fruit_store), ShortEmbeddings(), rate_limiter)

        outcome = await pipeline.run(fruit_store.list_documents())

        assert outcome.records == []
        assert len(outcome.errors) == 1
        assert outcome.documents == 0

    async def test_no_documents(self, embeddings, rate_limiter, fruit_store) -> None:
        pipeline = IndexingPipeline(ChunkManager(fruit_store), embeddings, rate_limiter)
        outcome = await pipeline.run([])
        assert outcome.records == []
        assert embeddings.document_calls == 0


class TestIndexPersistence:
    async def test_round_trip(self, tmp_path) -> None:
        persistence = IndexPersistence(tmp_path / "nested" / "index.jsonl")
        records = [
            ChunkRecord(id="été.md#0", path="été.md", title="été", mtime=5, ctime=3, embedding=[0.5, 0.25]),
            ChunkRecord(id="b.md#1", path="b.md", mtime=7, embedding=[1.0]),
        ]

        await persistence.write_records(records)

        assert persistence.has_index()
        assert await persistence.read_records() == records
        assert "été" in (tmp_path / "nested" / "index.jsonl").read_text(encoding="utf-8")

    async def test_missing_file_reads_empty(self, tmp_path) -> None:
        assert await IndexPersistence(tmp_path / "none.jsonl").read_records() == []

    async def test_clear(self, tmp_path) -> None:
        persistence = IndexPersistence(tmp_path / "index.jsonl")
        await persistence.write_records([])
        await persistence.clear()
        await persistence.clear()
        assert not persistence.has_index()
