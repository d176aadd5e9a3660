"""
Recursive character splitter.

Splits on the coarsest separator present ("\\n\\n", then "\\n", ". ", " ", and finally single
characters) and greedily merges the pieces back up to the size limit. Output is deterministic
for a given text and configuration.
"""

from typing import List, Optional, Sequence

DEFAULT_SEPARATORS = ("\n\n", "\n", ". ", " ", "")


class RecursiveTextSplitter:
    """
    Deterministic paragraph-first text splitter.

    Every returned piece is at most ``chunk_size`` characters long.
    """

    def __init__(
        self,
        chunk_size: int,
        chunk_overlap: int = 0,
        separators: Optional[Sequence[str]] = None,
    ):
        if chunk_size < 1:
            raise ValueError(f"chunk_size must be positive, got {chunk_size}")
        if chunk_overlap < 0 or chunk_overlap >= chunk_size:
            raise ValueError(
                f"chunk_overlap must be in [0, chunk_size), got {chunk_overlap} for {chunk_size}"
            )
        self.chunk_size = chunk_size
        self.chunk_overlap = chunk_overlap
        self.separators = list(separators) if separators is not None else list(DEFAULT_SEPARATORS)

    def split_text(self, text: str) -> List[str]:
        return self._split(text, self.separators)

    def _split(self, text: str, separators: List[str]) -> List[str]:
        separator = separators[-1]
        remaining: List[str] = []
        for i, candidate in enumerate(separators):
            if candidate == "":
                separator = candidate
                break
            if candidate in text:
                separator = candidate
                remaining = separators[i + 1:]
                break

        splits = text.split(separator) if separator else list(text)

        chunks: List[str] = []
        pending: List[str] = []
        for piece in splits:
            if len(piece) < self.chunk_size:
                pending.append(piece)
                continue

            if pending:
                chunks.extend(self._merge(pending, separator))
                pending = []
            if remaining:
                chunks.extend(self._split(piece, remaining))
            else:
                chunks.append(piece)

        if pending:
            chunks.extend(self._merge(pending, separator))
        return chunks

    def _merge(self, pieces: List[str], separator: str) -> List[str]:
        """Greedily join pieces with ``separator`` without exceeding the size limit."""
        sep_len = len(separator)
        docs: List[str] = []
        current: List[str] = []
        total = 0

        for piece in pieces:
            extra = sep_len if current else 0
            if current and total + extra + len(piece) > self.chunk_size:
                doc = separator.join(current).strip()
                if doc:
                    docs.append(doc)
                # Keep a tail of the previous window as overlap
                while current and (
                    total > self.chunk_overlap
                    or total + (sep_len if current else 0) + len(piece) > self.chunk_size
                ):
                    total -= len(current[0]) + (sep_len if len(current) > 1 else 0)
                    current.pop(0)
            current.append(piece)
            total += len(piece) + (sep_len if len(current) > 1 else 0)

        doc = separator.join(current).strip()
        if doc:
            docs.append(doc)
        return docs
