"""
Shared test fixtures and fakes for the whole test suite.

Provides: an in-memory document store, a counting embedding provider, a scriptable chat
model, settings isolated from the working directory
"""

import asyncio
import re
from typing import Callable, Dict, List, Optional, Sequence, Union

import pytest

from vaultsearch.core.exceptions import EmbeddingError
from vaultsearch.core.rate_limiter import RateLimiter
from vaultsearch.core.secure_config import Settings
from vaultsearch.models.document import DocumentInfo, Heading
from vaultsearch.services.index_persistence import IndexPersistence
from vaultsearch.services.semantic_index import SemanticIndexManager
from vaultsearch.store.markdown import extract_tags, parse_frontmatter, parse_headings

WORD_RE = re.compile(r"\w+")
EMBEDDING_DIMENSION = 256


class FakeStore:
    """In-memory DocumentStore. Notes keep insertion order; mtimes start at 1000 ms."""

    def __init__(
        self,
        notes: Optional[Dict[str, str]] = None,
        links: Optional[Dict[str, List[str]]] = None,
    ):
        self.notes: Dict[str, str] = dict(notes or {})
        self.mtimes: Dict[str, float] = {path: 1000.0 for path in self.notes}
        self.links: Dict[str, List[str]] = dict(links or {})
        self.fail_reads: set = set()
        self.reads = 0

    def set_note(self, path: str, content: str) -> None:
        self.notes[path] = content
        self.mtimes[path] = self.mtimes.get(path, 1000.0) + 1000.0

    def remove_note(self, path: str) -> None:
        self.notes.pop(path, None)
        self.mtimes.pop(path, None)

    def list_documents(self) -> List[DocumentInfo]:
        return [DocumentInfo(path=path, mtime=self.mtimes[path]) for path in self.notes]

    async def read_document(self, path: str) -> str:
        self.reads += 1
        if path in self.fail_reads or path not in self.notes:
            raise FileNotFoundError(path)
        return self.notes[path]

    def get_headings(self, path: str) -> List[Heading]:
        return parse_headings(self.notes.get(path, ""))

    def get_outgoing_links(self, path: str) -> List[str]:
        return list(self.links.get(path, []))

    def get_backlinks(self, path: str) -> List[str]:
        return sorted(source for source, targets in self.links.items() if path in targets)

    def get_tags(self, path: str) -> List[str]:
        return extract_tags(self.notes.get(path, ""))

    def get_frontmatter(self, path: str) -> Dict:
        return parse_frontmatter(self.notes.get(path, ""))


class FakeEmbeddings:
    """
    Bag-of-words embeddings with one dimension per distinct word.

    Words get dimensions in first-seen order, so there are no collisions within a test.
    """

    def __init__(self):
        self.vocabulary: Dict[str, int] = {}
        self.document_calls = 0
        self.query_calls = 0
        self.batches: List[List[str]] = []
        self.fail_batches: set = set()
        self.fail_query = False
        self.closed = False

    def embed(self, text: str) -> List[float]:
        vector = [0.0] * EMBEDDING_DIMENSION
        for word in WORD_RE.findall(text.lower()):
            index = self.vocabulary.setdefault(word, len(self.vocabulary) % EMBEDDING_DIMENSION)
            vector[index] += 1.0
        return vector

    async def embed_documents(self, texts: Sequence[str]) -> List[List[float]]:
        self.document_calls += 1
        self.batches.append(list(texts))
        if self.document_calls in self.fail_batches:
            raise EmbeddingError("Embedding batch rejected")
        return [self.embed(text) for text in texts]

    async def embed_query(self, text: str) -> List[float]:
        self.query_calls += 1
        if self.fail_query:
            raise EmbeddingError("Query embedding rejected")
        return self.embed(text)

    async def close(self) -> None:
        self.closed = True


class FakeChatModel:
    """Chat model returning a fixed (or prompt-dependent) response."""

    def __init__(
        self,
        response: Union[str, Callable[[str], str]] = "",
        delay: float = 0.0,
        error: Optional[Exception] = None,
    ):
        self.response = response
        self.delay = delay
        self.error = error
        self.prompts: List[str] = []

    async def complete(self, prompt: str) -> str:
        self.prompts.append(prompt)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        if callable(self.response):
            return self.response(prompt)
        return self.response


@pytest.fixture
def settings(tmp_path) -> Settings:
    """Defaults only; never picks up a .vaultsearch file from the working directory."""
    return Settings(tmp_path / ".vaultsearch")


@pytest.fixture
def embeddings() -> FakeEmbeddings:
    return FakeEmbeddings()


@pytest.fixture
def rate_limiter() -> RateLimiter:
    return RateLimiter(10_000)


@pytest.fixture
def fruit_store() -> FakeStore:
    return FakeStore(
        {
            "a.md": "apple banana",
            "b.md": "car engine",
            "c.md": "apple pie",
        }
    )


@pytest.fixture
def make_index(tmp_path, settings, embeddings, rate_limiter):
    """Build a SemanticIndexManager persisting under tmp_path."""

    def factory(store: FakeStore, index_name: str = "index.jsonl") -> SemanticIndexManager:
        return SemanticIndexManager(
            store,
            embeddings,
            persistence=IndexPersistence(tmp_path / index_name),
            settings=settings,
            rate_limiter=rate_limiter,
        )

    return factory
