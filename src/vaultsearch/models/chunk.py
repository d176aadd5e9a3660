"""
Chunk models.
Defines how notes are fragmented, and what the semantic index persists per fragment.
"""

from typing import List
from pydantic import Field, field_validator

from vaultsearch.models.base import VaultSearchBaseModel

# Default chunk size in characters, header included
CHUNK_SIZE = 6000


class ChunkOptions(VaultSearchBaseModel):
    """Chunking parameters. Also part of the chunk cache key."""

    max_chars: int = Field(CHUNK_SIZE, ge=1, description="Maximum characters per chunk")
    overlap: int = Field(0, ge=0, description="Characters repeated between split pieces")
    max_bytes_total: int = Field(
        10 * 1024 * 1024, ge=0, description="Byte budget of the chunk cache"
    )

    @field_validator("overlap")
    @classmethod
    def _overlap_below_size(cls, value: int, info) -> int:
        max_chars = info.data.get("max_chars", CHUNK_SIZE)
        # An overlap as large as the chunk would never advance
        return min(value, max(max_chars - 1, 0))


class Chunk(VaultSearchBaseModel):
    """
    A bounded fragment of a note, the unit of indexing and retrieval.

    The id is ``document_path#chunk_index`` and is identical in the lexical and semantic paths.
    """

    id: str = Field(..., description="document_path#chunk_index")
    document_path: str = Field(..., description="Path of the source note")
    chunk_index: int = Field(..., ge=0, description="Position in document order")
    content: str = Field(..., description="Header + fragment text")
    content_hash: str = Field(..., description="Lightweight integrity hash, not for security")
    title: str = Field(..., description="Note title (file name without extension)")
    heading: str = Field("", description="Heading of the section the chunk belongs to")
    mtime: float = Field(..., ge=0, description="Document mtime when the chunk was built")

    @property
    def byte_size(self) -> int:
        return len(self.content.encode("utf-8"))


class ChunkRecord(VaultSearchBaseModel):
    """
    Persisted embedding of a chunk. One JSON object per line in the index file:
    ``{id, path, title, mtime, ctime, embedding}``.
    """

    id: str = Field(..., description="Chunk id")
    path: str = Field(..., description="Document path")
    title: str = Field("", description="Note title")
    mtime: float = Field(..., ge=0, description="Document mtime at indexing time")
    ctime: float = Field(0, ge=0, description="Document ctime")
    embedding: List[float] = Field(..., min_length=1, description="Embedding vector")
