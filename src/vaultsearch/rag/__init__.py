"""
Retrieval module for vaultsearch.

Chunking of notes and the hybrid lexical + semantic retrieval pipeline.
"""

from vaultsearch.rag.chunking import ChunkManager, RecursiveTextSplitter
from vaultsearch.rag.retrieval import HybridSearch

__all__ = [
    "ChunkManager",
    "RecursiveTextSplitter",
    "HybridSearch",
]
