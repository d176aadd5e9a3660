"""
Substring scan over the vault used to seed the candidate set.

Two passes: path matches first (no I/O), ranked by how many terms they contain, then
content matches in store order until the limit is reached.
"""

import asyncio
import re
from typing import Dict, List, Sequence

from vaultsearch.core.logging import logger
from vaultsearch.store.protocols import DocumentStore

READ_BATCH_SIZE = 30
DEFAULT_GREP_LIMIT = 200

CJK_RE = re.compile(r"[一-鿿぀-ゟ゠-ヿ가-힯]")


def is_grep_worthy(term: str) -> bool:
    """Short ASCII terms match too many paths; CJK is dense enough at two characters."""
    if not term:
        return False
    if CJK_RE.search(term):
        return len(term) >= 2
    return len(term) >= 3


class GrepScanner:
    """Case-insensitive substring search over document paths and contents."""

    def __init__(self, store: DocumentStore):
        self.store = store

    async def batch_cached_read_grep(self, terms: Sequence[str], limit: int) -> List[str]:
        """
        Find documents whose path or content contains any of the terms.

        Args:
            terms: Search strings, matched as lowercase substrings
            limit: Maximum number of paths to return

        Returns:
            Path matches (most matched terms first), then content matches in store order
        """
        if limit <= 0:
            return []

        normalized = list(
            dict.fromkeys(t.lower() for t in terms if isinstance(t, str) and is_grep_worthy(t.lower()))
        )
        if not normalized:
            return []

        documents = self.store.list_documents()

        path_scores: Dict[str, int] = {}
        for doc in documents:
            path_lower = doc.path.lower()
            count = sum(1 for term in normalized if term in path_lower)
            if count:
                path_scores[doc.path] = count

        # sorted() is stable, so equal counts keep store order
        path_matches = sorted(path_scores, key=lambda p: path_scores[p], reverse=True)

        content_limit = max(0, limit - len(path_matches))
        content_matches: List[str] = []
        remaining = [doc.path for doc in documents if doc.path not in path_scores]

        for start in range(0, len(remaining), READ_BATCH_SIZE):
            if len(content_matches) >= content_limit:
                break
            batch = remaining[start:start + READ_BATCH_SIZE]
            hits = await asyncio.gather(*(self._content_matches(path, normalized) for path in batch))
            for path, hit in zip(batch, hits):
                if hit and len(content_matches) < content_limit:
                    content_matches.append(path)

        results = (path_matches + content_matches)[:limit]
        if results:
            path_count = min(len(path_matches), limit)
            logger.debug(
                "Grep scan complete",
                matches=len(results),
                path_matches=path_count,
                content_matches=len(results) - path_count,
                terms=normalized[:3],
            )
        return results

    async def grep(self, query: str, limit: int = DEFAULT_GREP_LIMIT) -> List[str]:
        """Scan for a single query string."""
        return await self.batch_cached_read_grep([query], limit)

    async def _content_matches(self, path: str, terms: List[str]) -> bool:
        try:
            content = await self.store.read_document(path)
        except Exception as e:
            logger.debug("Skipping unreadable document", path=path, error=str(e))
            return False
        lower = content.lower()
        return any(term in lower for term in terms)
