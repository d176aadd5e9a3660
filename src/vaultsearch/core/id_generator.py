"""
Centralized ID generation for vaultsearch.

Chunk ids are deterministic (`path#index`) and built by the chunker; the ids here are for
errors, trace spans and indexing runs.
"""

import secrets


def generate_id() -> str:
    """Generate a random 32-character hex id."""
    return secrets.token_hex(16)


def make_chunk_id(document_path: str, chunk_index: int) -> str:
    """
    Build the chunk id shared by the lexical and semantic paths.

    Format: "note_path#chunk_index" (e.g. "note.md#0", "note.md#123"), no padding.
    """
    return f"{document_path}#{chunk_index}"


def document_path_from_chunk_id(chunk_id: str) -> str:
    """
    Extract the document path from a chunk id.

    Only a numeric suffix after the last '#' is treated as the chunk index, so paths that
    themselves contain '#' survive; ids without an index are returned unchanged.
    """
    path, sep, index = chunk_id.rpartition("#")
    if sep and index.isdigit():
        return path
    return chunk_id
