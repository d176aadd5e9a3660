"""
vaultsearch services module.

Indexing and persistence of the semantic index.
"""

from vaultsearch.services.index_persistence import IndexPersistence
from vaultsearch.services.indexing_service import IndexingPipeline, PipelineResult
from vaultsearch.services.semantic_index import IndexState, SemanticIndexManager

__all__ = [
    "IndexPersistence",
    "IndexingPipeline",
    "PipelineResult",
    "IndexState",
    "SemanticIndexManager",
]
