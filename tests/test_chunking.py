"""Tests for heading-first chunking and the recursive splitter."""

import pytest

from conftest import FakeStore
from vaultsearch.models.chunk import ChunkOptions
from vaultsearch.rag.chunking import ChunkManager, RecursiveTextSplitter
from vaultsearch.rag.chunking.chunk_manager import content_hash, note_header

TWO_SECTIONS = "# Intro\nIntro text here.\n\n# Body\nBody text here.\n"


def long_note(paragraphs: int = 30) -> str:
    return "\n\n".join(
        f"Paragraph {i} talks about the release plan and the people working on it."
        for i in range(paragraphs)
    )


# ============================================================================
# RecursiveTextSplitter
# ============================================================================


class TestRecursiveTextSplitter:
    def test_rejects_invalid_sizes(self) -> None:
        with pytest.raises(ValueError):
            RecursiveTextSplitter(0)
        with pytest.raises(ValueError):
            RecursiveTextSplitter(10, chunk_overlap=10)

    def test_prefers_paragraph_boundaries(self) -> None:
        splitter = RecursiveTextSplitter(5)
        assert splitter.split_text("aaa\n\nbbb") == ["aaa", "bbb"]

    def test_greedy_merge_without_overlap(self) -> None:
        splitter = RecursiveTextSplitter(10)
        assert splitter.split_text("one two three four five six") == [
            "one two",
            "three four",
            "five six",
        ]

    def test_overlap_repeats_tail_words(self) -> None:
        splitter = RecursiveTextSplitter(10, chunk_overlap=4)
        assert splitter.split_text("one two three four five six") == [
            "one two",
            "two three",
            "four five",
            "five six",
        ]

    def test_pieces_never_exceed_chunk_size(self) -> None:
        splitter = RecursiveTextSplitter(40)
        text = long_note(10) + "\n" + "x" * 95
        pieces = splitter.split_text(text)
        assert pieces
        assert all(len(piece) <= 40 for piece in pieces)

    def test_deterministic(self) -> None:
        text = long_note(8)
        assert RecursiveTextSplitter(50, 10).split_text(text) == RecursiveTextSplitter(
            50, 10
        ).split_text(text)


# ============================================================================
# ChunkManager
# ============================================================================


class TestChunkManager:
    async def test_two_fitting_sections_give_two_chunks(self) -> None:
        """Should produce one chunk per heading section when each fits."""
        store = FakeStore({"doc.md": TWO_SECTIONS})
        manager = ChunkManager(store, ChunkOptions(max_chars=500))

        chunks = await manager.get_chunks(["doc.md"])

        assert [c.id for c in chunks] == ["doc.md#0", "doc.md#1"]
        assert [c.heading for c in chunks] == ["Intro", "Body"]
        assert [c.chunk_index for c in chunks] == [0, 1]
        assert all(c.content.startswith(note_header("doc")) for c in chunks)
        assert "Intro text here." in chunks[0].content
        assert "Body text here." in chunks[1].content
        assert chunks[0].title == "doc"

    async def test_chunking_is_deterministic(self) -> None:
        store = FakeStore({"doc.md": TWO_SECTIONS + long_note(20)})
        options = ChunkOptions(max_chars=400)

        first = await ChunkManager(store, options).get_chunks(["doc.md"])
        second = await ChunkManager(store, options).get_chunks(["doc.md"])

        assert [(c.id, c.content, c.content_hash) for c in first] == [
            (c.id, c.content, c.content_hash) for c in second
        ]

    async def test_chunks_respect_max_chars(self) -> None:
        store = FakeStore({"notes/plan.md": "# Plan\n" + long_note(40)})
        manager = ChunkManager(store, ChunkOptions(max_chars=300))

        chunks = await manager.get_chunks(["notes/plan.md"])

        assert len(chunks) > 1
        assert all(len(c.content) <= 300 for c in chunks)
        assert [c.chunk_index for c in chunks] == list(range(len(chunks)))

    async def test_heading_only_section_merges_forward(self) -> None:
        store = FakeStore({"doc.md": "# Title\n\n## Sub\nText body."})
        manager = ChunkManager(store, ChunkOptions(max_chars=500))

        chunks = await manager.get_chunks(["doc.md"])

        assert len(chunks) == 1
        assert "# Title" in chunks[0].content
        assert "Text body." in chunks[0].content
        assert chunks[0].heading == "Title"

    async def test_trailing_heading_only_section_merges_backward(self) -> None:
        """Should never emit a chunk holding nothing but a closing heading."""
        store = FakeStore({"doc.md": "# A\n\nbody of section a\n\n# B\n"})
        manager = ChunkManager(store, ChunkOptions(max_chars=500))

        chunks = await manager.get_chunks(["doc.md"])

        assert [c.id for c in chunks] == ["doc.md#0"]
        assert chunks[0].heading == "A"
        assert chunks[0].content.endswith("body of section a\n\n# B")

    async def test_frontmatter_is_not_chunked(self) -> None:
        store = FakeStore({"doc.md": "---\ntags: [alpha]\n---\nBody only."})
        manager = ChunkManager(store)

        chunks = await manager.get_chunks(["doc.md"])

        assert len(chunks) == 1
        assert "tags:" not in chunks[0].content
        assert chunks[0].content.endswith("Body only.")

    async def test_empty_and_unreadable_documents_yield_nothing(self) -> None:
        store = FakeStore({"empty.md": "   \n", "broken.md": "text"})
        store.fail_reads.add("broken.md")
        manager = ChunkManager(store)

        assert await manager.get_chunks(["empty.md", "broken.md"]) == []

    async def test_invalid_paths_are_dropped(self) -> None:
        store = FakeStore({"doc.md": "text"})
        manager = ChunkManager(store)

        assert await manager.get_chunks(["../doc.md", "/doc.md", "", None]) == []
        assert await manager.get_chunks("doc.md") == []
        assert len(await manager.get_chunks(["doc.md", "doc.md"])) == 1

    async def test_double_dots_inside_a_name_are_allowed(self) -> None:
        store = FakeStore({"notes..md": "text", "sub/doc.md": "text"})
        manager = ChunkManager(store)

        assert [c.id for c in await manager.get_chunks(["notes..md"])] == ["notes..md#0"]
        assert await manager.get_chunks(["sub/../sub/doc.md"]) == []

    async def test_cache_hit_avoids_rereading(self) -> None:
        store = FakeStore({"doc.md": TWO_SECTIONS})
        manager = ChunkManager(store)

        await manager.get_chunks(["doc.md"])
        await manager.get_chunks(["doc.md"])

        assert store.reads == 1
        assert manager.memory_usage > 0
        assert manager.metrics.get_metrics()["chunking.cache.hits"] == 1

    async def test_modified_document_is_rechunked(self) -> None:
        store = FakeStore({"doc.md": "old text"})
        manager = ChunkManager(store)
        await manager.get_chunks(["doc.md"])

        store.set_note("doc.md", "new text")
        chunks = await manager.get_chunks(["doc.md"])

        assert chunks[0].content.endswith("new text")
        assert chunks[0].mtime == store.mtimes["doc.md"]

    async def test_removed_document_is_evicted(self) -> None:
        store = FakeStore({"doc.md": "text"})
        manager = ChunkManager(store)
        await manager.get_chunks(["doc.md"])

        store.remove_note("doc.md")

        assert await manager.get_chunks(["doc.md"]) == []
        assert manager.memory_usage == 0

    async def test_zero_budget_disables_cache(self) -> None:
        store = FakeStore({"doc.md": "text"})
        manager = ChunkManager(store, ChunkOptions(max_bytes_total=0))

        await manager.get_chunks(["doc.md"])
        await manager.get_chunks(["doc.md"])

        assert store.reads == 2
        assert manager.memory_usage == 0

    async def test_get_chunk_text(self) -> None:
        store = FakeStore({"doc.md": TWO_SECTIONS})
        manager = ChunkManager(store, ChunkOptions(max_chars=500))

        text = await manager.get_chunk_text("doc.md#1")

        assert "Body text here." in text
        assert await manager.get_chunk_text("doc.md#7") == ""

    def test_content_hash_is_stable(self) -> None:
        assert content_hash("abc def") == content_hash("abc def")
        assert content_hash("abc def") != content_hash("abc deg ")
