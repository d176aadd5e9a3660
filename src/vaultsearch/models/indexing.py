"""
Indexing run outcome.
"""

from enum import Enum
from typing import List
from pydantic import Field

from vaultsearch.models.base import VaultSearchBaseModel


class IndexingStatus(str, Enum):
    SUCCESS = "success"
    PARTIAL = "partial"
    CANCELLED = "cancelled"
    FAILED = "failed"
    UNCHANGED = "unchanged"


class IndexingResult(VaultSearchBaseModel):
    """Coarse outcome of index_vault, index_vault_incremental or reindex_document."""

    status: IndexingStatus = Field(..., description="Final status of the run")
    documents: int = Field(0, ge=0, description="Documents embedded in this run")
    chunks: int = Field(0, ge=0, description="Records in the index after the run")
    embed_calls: int = Field(0, ge=0, description="Embedding requests issued")
    duration_ms: float = Field(0.0, ge=0, description="Wall time of the run")
    errors: List[str] = Field(default_factory=list, description="Error messages, if any")

    @property
    def ok(self) -> bool:
        return self.status in (IndexingStatus.SUCCESS, IndexingStatus.UNCHANGED)
