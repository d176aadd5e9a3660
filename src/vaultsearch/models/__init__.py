"""
Data models for vaultsearch.
"""

from vaultsearch.models.base import VaultSearchBaseModel
from vaultsearch.models.chunk import CHUNK_SIZE, Chunk, ChunkOptions, ChunkRecord
from vaultsearch.models.document import DocumentInfo, Heading
from vaultsearch.models.indexing import IndexingResult, IndexingStatus
from vaultsearch.models.search import (
    MAX_QUERY_LENGTH,
    RETURN_ALL_LIMIT,
    EngineType,
    ExpandedQuery,
    RankedResult,
    RetrieveResult,
    SearchOptions,
    SemanticMode,
)

__all__ = [
    "VaultSearchBaseModel",
    "CHUNK_SIZE",
    "Chunk",
    "ChunkOptions",
    "ChunkRecord",
    "DocumentInfo",
    "Heading",
    "IndexingResult",
    "IndexingStatus",
    "MAX_QUERY_LENGTH",
    "RETURN_ALL_LIMIT",
    "EngineType",
    "ExpandedQuery",
    "RankedResult",
    "RetrieveResult",
    "SearchOptions",
    "SemanticMode",
]
