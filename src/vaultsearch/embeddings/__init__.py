"""
Embeddings module for vaultsearch.

Vector representation, the in-memory vector store and the Ollama embedding provider.
"""

from vaultsearch.embeddings.types import EmbeddingVector
from vaultsearch.embeddings.vector_store import InMemoryVectorStore
from vaultsearch.embeddings.ollama import OllamaEmbeddings

__all__ = [
    "EmbeddingVector",
    "InMemoryVectorStore",
    "OllamaEmbeddings",
]
