"""
Chunking of notes into heading-aligned, size-bounded fragments.
"""

from .splitter import RecursiveTextSplitter
from .chunk_manager import ChunkManager

__all__ = [
    'ChunkManager',
    'RecursiveTextSplitter',
]
