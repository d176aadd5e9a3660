"""
Host collaborator contracts and the bundled filesystem store.
"""

from vaultsearch.store.protocols import ChatModel, DocumentStore, EmbeddingProvider, IndexingHooks
from vaultsearch.store.filesystem import FilesystemDocumentStore

__all__ = [
    "ChatModel",
    "DocumentStore",
    "EmbeddingProvider",
    "IndexingHooks",
    "FilesystemDocumentStore",
]
