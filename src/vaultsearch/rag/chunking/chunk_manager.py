"""
Heading-first chunking with an mtime-validated, memory-bounded cache.

The same ChunkManager feeds the lexical index and the embedding pipeline, so a chunk id
always denotes the same text on both paths.
"""

import re
from dataclasses import dataclass
from pathlib import PurePosixPath
from typing import Dict, List, Optional, Sequence, Tuple

from vaultsearch.core.id_generator import document_path_from_chunk_id, make_chunk_id
from vaultsearch.core.logging import logger
from vaultsearch.core.tracing import MetricsCollector
from vaultsearch.models.chunk import Chunk, ChunkOptions
from vaultsearch.rag.chunking.splitter import RecursiveTextSplitter
from vaultsearch.store.markdown import HEADING_RE, frontmatter_end
from vaultsearch.store.protocols import DocumentStore

MAX_PATHS_PER_CALL = 1000
# Trailing split remainders shorter than this are folded into the previous piece
MIN_FRAGMENT_CHARS = 64

CacheKey = Tuple[str, int, int]


@dataclass
class _Fragment:
    heading: str
    body: str
    from_split: bool = False


def note_header(title: str) -> str:
    return f"\n\nNOTE TITLE: [[{title}]]\n\nNOTE BLOCK CONTENT:\n\n"


def content_hash(content: str) -> str:
    """Length in hex plus a short whitespace-free sample. Integrity check, not security."""
    sample = re.sub(r"\s", "", content[:32])[:8]
    return format(len(content), "x") + sample


def _is_heading_only(body: str) -> bool:
    lines = [line for line in body.strip().splitlines() if line.strip()]
    return bool(lines) and all(HEADING_RE.match(line.strip()) for line in lines)


def _is_valid_path(path) -> bool:
    if not path or not isinstance(path, str):
        return False
    return ".." not in PurePosixPath(path).parts and not path.startswith("/")


class ChunkManager:
    """
    Splits notes into heading-scoped, size-bounded chunks.

    Cache key is ``(path, max_chars, overlap)``. An entry is dropped as soon as the store
    reports a newer mtime for its document, or when the document disappears.
    """

    def __init__(self, store: DocumentStore, options: Optional[ChunkOptions] = None):
        self.store = store
        self.default_options = options or ChunkOptions()
        self._cache: Dict[CacheKey, List[Chunk]] = {}
        self._memory_usage = 0
        self.metrics = MetricsCollector()

    @property
    def memory_usage(self) -> int:
        """Bytes of chunk content currently cached."""
        return self._memory_usage

    async def get_chunks(
        self, document_paths: Sequence[str], options: Optional[ChunkOptions] = None
    ) -> List[Chunk]:
        """
        Chunks for the given documents, in input order.

        Invalid paths are dropped silently; unreadable or empty documents contribute nothing.
        """
        if not isinstance(document_paths, (list, tuple)) or not document_paths:
            return []

        if len(document_paths) > MAX_PATHS_PER_CALL:
            logger.warning(
                "Too many document paths, truncating",
                requested=len(document_paths),
                limit=MAX_PATHS_PER_CALL,
            )
            document_paths = document_paths[:MAX_PATHS_PER_CALL]

        valid_paths = list(dict.fromkeys(p for p in document_paths if _is_valid_path(p)))
        if not valid_paths:
            return []

        options = options or self.default_options
        current = {doc.path: doc for doc in self.store.list_documents()}

        all_chunks: List[Chunk] = []
        for path in valid_paths:
            doc = current.get(path)
            if doc is None:
                self.evict(path)
                continue

            key = (path, options.max_chars, options.overlap)
            chunks = self._cache.get(key)
            if chunks is not None and chunks[0].mtime < doc.mtime:
                logger.debug("Document modified, regenerating chunks", path=path)
                self._drop(key)
                chunks = None

            if chunks is None:
                self.metrics.increment("chunking.cache.misses")
                chunks = await self._generate_chunks(path, doc.mtime, options)
                if chunks:
                    self._store(key, chunks, options)
            else:
                self.metrics.increment("chunking.cache.hits")

            all_chunks.extend(chunks)

        logger.debug(
            "Chunks retrieved",
            chunks=len(all_chunks),
            documents=len(valid_paths),
            cache_mb=round(self._memory_usage / 1024 / 1024, 1),
        )
        return all_chunks

    async def get_chunk_text(self, chunk_id: str) -> str:
        """Text of one chunk, regenerating its document's chunks when stale."""
        path = document_path_from_chunk_id(chunk_id)
        for chunk in await self.get_chunks([path]):
            if chunk.id == chunk_id:
                return chunk.content
        logger.warning("Chunk not found after regeneration", chunk_id=chunk_id)
        return ""

    def evict(self, path: str) -> None:
        """Forget every cached chunking of a document."""
        for key in [k for k in self._cache if k[0] == path]:
            self._drop(key)

    def clear_cache(self) -> None:
        self._cache.clear()
        self._memory_usage = 0
        logger.info("Chunk cache cleared")

    def _drop(self, key: CacheKey) -> None:
        chunks = self._cache.pop(key, None)
        if chunks:
            self._memory_usage -= sum(c.byte_size for c in chunks)

    def _store(self, key: CacheKey, chunks: List[Chunk], options: ChunkOptions) -> None:
        size = sum(c.byte_size for c in chunks)
        if self._memory_usage + size > options.max_bytes_total:
            self.metrics.increment("chunking.cache.skipped")
            logger.debug("Skipping chunk cache, budget exceeded", path=key[0], bytes=size)
            return
        self._cache[key] = chunks
        self._memory_usage += size

    async def _generate_chunks(
        self, path: str, mtime: float, options: ChunkOptions
    ) -> List[Chunk]:
        try:
            content = await self.store.read_document(path)
        except Exception as e:
            logger.warning("Failed to read document", path=path, error=str(e))
            return []

        if not content or not content.strip():
            return []

        title = PurePosixPath(path).stem
        header = note_header(title)
        fragments: List[_Fragment] = []
        for heading, text in self._sections(path, content):
            fragments.extend(self._split_section(path, heading, text, header, options))

        fragments = self._coalesce(fragments, len(header), options.max_chars)

        chunks = []
        for index, fragment in enumerate(fragments):
            full_content = header + fragment.body
            chunks.append(
                Chunk(
                    id=make_chunk_id(path, index),
                    document_path=path,
                    chunk_index=index,
                    content=full_content,
                    content_hash=content_hash(full_content),
                    title=title,
                    heading=fragment.heading,
                    mtime=mtime,
                )
            )
        return chunks

    def _sections(self, path: str, content: str) -> List[Tuple[str, str]]:
        """(heading, text) pairs in document order, front-matter excluded."""
        body_start = frontmatter_end(content)
        try:
            headings = self.store.get_headings(path)
        except Exception as e:
            logger.warning("Failed to read headings, chunking without them", path=path, error=str(e))
            headings = []

        headings = sorted(
            (h for h in headings if body_start <= h.offset < len(content)),
            key=lambda h: h.offset,
        )

        if not headings:
            sections = [("", content[body_start:])]
        else:
            sections = [("", content[body_start:headings[0].offset])]
            for i, heading in enumerate(headings):
                end = headings[i + 1].offset if i + 1 < len(headings) else len(content)
                sections.append((heading.text, content[heading.offset:end]))

        return [(heading, text.strip()) for heading, text in sections if text.strip()]

    def _split_section(
        self, path: str, heading: str, text: str, header: str, options: ChunkOptions
    ) -> List[_Fragment]:
        if len(header) + len(text) <= options.max_chars:
            return [_Fragment(heading, text)]

        try:
            budget = options.max_chars - len(header)
            splitter = RecursiveTextSplitter(budget, min(options.overlap, max(budget - 1, 0)))
            pieces = splitter.split_text(text)
        except ValueError as e:
            logger.warning("Failed to split section, keeping it whole", path=path, error=str(e))
            return [_Fragment(heading, text)]

        if not pieces:
            return [_Fragment(heading, text)]
        return [_Fragment(heading, piece, from_split=True) for piece in pieces]

    def _coalesce(
        self, fragments: List[_Fragment], header_len: int, max_chars: int
    ) -> List[_Fragment]:
        """
        Fold structural leftovers into their neighbours when the result still fits.

        - a heading-only fragment merges into the fragment after it
        - a tiny trailing split remainder merges into the piece before it
        - a heading-only fragment left at the end merges into the one before it
        """

        def fits(first: _Fragment, second: _Fragment) -> bool:
            return header_len + len(first.body) + 2 + len(second.body) <= max_chars

        merged: List[_Fragment] = []
        i = 0
        while i < len(fragments):
            fragment = fragments[i]
            nxt = fragments[i + 1] if i + 1 < len(fragments) else None
            if nxt is not None and _is_heading_only(fragment.body) and fits(fragment, nxt):
                fragments[i + 1] = _Fragment(
                    fragment.heading or nxt.heading,
                    fragment.body + "\n\n" + nxt.body,
                    nxt.from_split,
                )
                i += 1
                continue
            merged.append(fragment)
            i += 1

        result: List[_Fragment] = []
        for index, fragment in enumerate(merged):
            is_trailing_piece = fragment.from_split and (
                index + 1 == len(merged)
                or not merged[index + 1].from_split
                or merged[index + 1].heading != fragment.heading
            )
            lone_heading = _is_heading_only(fragment.body) and index + 1 == len(merged)
            tiny_remainder = (
                is_trailing_piece
                and len(fragment.body) < MIN_FRAGMENT_CHARS
                and bool(result)
                and result[-1].from_split
                and result[-1].heading == fragment.heading
            )
            if result and (lone_heading or tiny_remainder) and fits(result[-1], fragment):
                previous = result[-1]
                result[-1] = _Fragment(
                    previous.heading, previous.body + "\n\n" + fragment.body, previous.from_split
                )
                continue
            result.append(fragment)
        return result
