"""
Contracts of the host collaborators.

The engine never touches files, models or UI directly; it is handed objects implementing
these protocols.
"""

from typing import Any, Dict, List, Protocol, Sequence, runtime_checkable

from vaultsearch.models.document import DocumentInfo, Heading


@runtime_checkable
class DocumentStore(Protocol):
    """Host document store: the source of truth for note content and link metadata."""

    def list_documents(self) -> List[DocumentInfo]:
        """All indexable documents with their modification times."""
        ...  # pragma: no cover

    async def read_document(self, path: str) -> str:
        """Raw document content. Raises if the document cannot be read."""
        ...  # pragma: no cover

    def get_headings(self, path: str) -> List[Heading]:
        """Headings of the document with offsets into the raw content."""
        ...  # pragma: no cover

    def get_outgoing_links(self, path: str) -> List[str]:
        """Resolved paths this document links to."""
        ...  # pragma: no cover

    def get_backlinks(self, path: str) -> List[str]:
        """Resolved paths of documents linking to this one."""
        ...  # pragma: no cover

    def get_tags(self, path: str) -> List[str]:
        """Inline and front-matter tags, with or without the leading '#'."""
        ...  # pragma: no cover

    def get_frontmatter(self, path: str) -> Dict[str, Any]:
        """Parsed front-matter properties, empty when there are none."""
        ...  # pragma: no cover


@runtime_checkable
class EmbeddingProvider(Protocol):
    """Embedding model used for both indexing and querying."""

    async def embed_documents(self, texts: Sequence[str]) -> List[List[float]]:
        ...  # pragma: no cover

    async def embed_query(self, text: str) -> List[float]:
        ...  # pragma: no cover


@runtime_checkable
class ChatModel(Protocol):
    """
    Optional chat model for paraphrases and hypothetical passages.

    Callers bound ``complete`` with a timeout and cancel it when the deadline passes.
    """

    async def complete(self, prompt: str) -> str:
        ...  # pragma: no cover


@runtime_checkable
class IndexingHooks(Protocol):
    """Host notification contract for long-running indexing."""

    def on_progress(self, completed: int, total: int) -> None:
        ...  # pragma: no cover

    def on_pause_requested(self) -> bool:
        ...  # pragma: no cover

    def on_cancel_requested(self) -> bool:
        ...  # pragma: no cover
