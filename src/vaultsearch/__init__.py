"""
vaultsearch - hybrid lexical + semantic retrieval over a vault of markdown notes.

Keyword scanning narrows the vault to candidate notes, a per-query BM25 index and an embedding
index rank their chunks, and reciprocal rank fusion merges both rankings.
"""

__version__ = "0.1.0"
__version_info__ = tuple(int(part) for part in __version__.split("."))

# Core components
from vaultsearch.core import (
    logger,
    Settings,
    VaultSearchError,
    ValidationError,
    ConfigurationError,
    NotFoundError,
    ExternalServiceError,
    CancellationToken,
    RateLimiter,
)

# Models
from vaultsearch.models import (
    Chunk,
    ChunkOptions,
    ChunkRecord,
    DocumentInfo,
    EngineType,
    ExpandedQuery,
    IndexingResult,
    IndexingStatus,
    RankedResult,
    RetrieveResult,
    SearchOptions,
    SemanticMode,
)

# Retrieval
from vaultsearch.rag import ChunkManager, HybridSearch

# Indexing
from vaultsearch.services import SemanticIndexManager

__all__ = [
    # Version info
    "__version__",
    "__version_info__",
    # Core
    "logger",
    "Settings",
    "CancellationToken",
    "RateLimiter",
    # Exceptions
    "VaultSearchError",
    "ValidationError",
    "ConfigurationError",
    "NotFoundError",
    "ExternalServiceError",
    # Models
    "Chunk",
    "ChunkOptions",
    "ChunkRecord",
    "DocumentInfo",
    "EngineType",
    "ExpandedQuery",
    "IndexingResult",
    "IndexingStatus",
    "RankedResult",
    "RetrieveResult",
    "SearchOptions",
    "SemanticMode",
    # Retrieval
    "ChunkManager",
    "HybridSearch",
    # Indexing
    "SemanticIndexManager",
]
