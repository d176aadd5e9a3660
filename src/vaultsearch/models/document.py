"""
Views of host documents as seen by the engine.
"""

from typing import Optional
from pydantic import Field, model_validator

from vaultsearch.models.base import VaultSearchBaseModel


class DocumentInfo(VaultSearchBaseModel):
    """A document listed by the host store. Times are epoch milliseconds."""

    path: str = Field(..., min_length=1, description="Vault-relative document path")
    mtime: float = Field(..., ge=0, description="Last modification time (epoch ms)")
    ctime: Optional[float] = Field(None, ge=0, description="Creation time (epoch ms)")

    @model_validator(mode="after")
    def _default_ctime(self) -> "DocumentInfo":
        if self.ctime is None:
            # Stores without creation times report the modification time
            object.__setattr__(self, "ctime", self.mtime)
        return self


class Heading(VaultSearchBaseModel):
    """A heading with its character offset in the raw document."""

    text: str = Field(..., description="Heading text without the leading #'s")
    offset: int = Field(..., ge=0, description="Offset of the heading line in the raw content")
    level: int = Field(1, ge=1, le=6, description="Heading level")
