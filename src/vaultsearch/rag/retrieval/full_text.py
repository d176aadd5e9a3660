"""
Ephemeral fielded full-text index over candidate chunks.

Built per retrieval from the chunks of the candidate documents and discarded afterwards.
Scoring is BM25+ per field (rank_bm25), weighted by field and combined 90/10 between the
salient query terms and the expansion terms.
"""

import bisect
import re
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Set

from rank_bm25 import BM25Plus

from vaultsearch.core.logging import logger
from vaultsearch.models.chunk import Chunk
from vaultsearch.models.search import EngineType, RankedResult
from vaultsearch.rag.chunking import ChunkManager
from vaultsearch.store.protocols import DocumentStore

FIELD_WEIGHTS = {
    "title": 3.0,
    "heading": 2.5,
    "path": 1.5,
    "tags": 4.0,
    "body": 1.0,
}

SALIENT_WEIGHT = 0.9
EXPANDED_WEIGHT = 0.1
PREFIX_WEIGHT = 0.5
PHRASE_BOOST = 1.5
MAX_PREFIX_EXPANSIONS = 20

# Front-matter extraction limits
MAX_ARRAY_ITEMS = 10
MAX_EXTRACTION_DEPTH = 2

TAG_TOKEN_RE = re.compile(r"#[\w/-]+")
ASCII_WORD_RE = re.compile(r"[a-z0-9_]+")
CJK_RUN_RE = re.compile(r"[一-鿿぀-ゟ゠-ヿ가-힯]+")


def tokenize(text: str) -> List[str]:
    """
    Mixed tokenizer: tags with their hierarchy, ASCII words, CJK bigrams.

    ``#project/alpha`` yields ``#project/alpha``, ``project/alpha``, ``project``,
    ``#project`` and ``alpha``.
    """
    if not text:
        return []

    tokens: Dict[str, None] = {}
    lowered = text.lower()
    ascii_source = lowered

    for tag in TAG_TOKEN_RE.findall(lowered):
        tokens[tag] = None
        body = tag[1:]
        if not body:
            continue
        tokens[body] = None
        prefix = ""
        for segment in (s for s in body.split("/") if s):
            prefix = f"{prefix}/{segment}" if prefix else segment
            tokens[prefix] = None
            tokens[f"#{prefix}"] = None
            tokens[segment] = None
        ascii_source = ascii_source.replace(tag, " ")

    for word in ASCII_WORD_RE.findall(ascii_source):
        tokens[word] = None

    for run in CJK_RUN_RE.findall(text):
        if len(run) == 1:
            tokens[run] = None
        for i in range(len(run) - 1):
            tokens[run[i:i + 2]] = None

    return list(tokens)


def _tokenize_with_counts(text: str) -> List[str]:
    """Token stream keeping repeats, so term frequency reaches BM25."""
    if not text:
        return []
    stream: List[str] = []
    for line in text.splitlines():
        for word in line.split():
            stream.extend(tokenize(word))
    return stream


def _flatten_frontmatter(value: Any, depth: int = 0) -> List[str]:
    if depth > MAX_EXTRACTION_DEPTH or value is None:
        return []
    if isinstance(value, (str, int, float)) and not isinstance(value, bool):
        return [str(value)]
    if isinstance(value, list):
        values: List[str] = []
        for item in value[:MAX_ARRAY_ITEMS]:
            values.extend(_flatten_frontmatter(item, depth + 1))
        return values
    if isinstance(value, dict):
        values = []
        for item in list(value.values())[:MAX_ARRAY_ITEMS]:
            values.extend(_flatten_frontmatter(item, depth + 1))
        return values
    return []


@dataclass
class _FieldIndex:
    """BM25+ model over one field plus the postings needed to score only matching docs."""

    model: Optional[BM25Plus]
    postings: Dict[str, Set[int]] = field(default_factory=dict)


class FullTextEngine:
    """
    Per-retrieval lexical engine.

    Fields and weights: title 3, heading 2.5, path 1.5, tags 4, body 1. Prefix matches
    count at half weight. Chunks are produced by the shared ChunkManager so their ids line
    up with the semantic index.
    """

    def __init__(self, store: DocumentStore, chunk_manager: ChunkManager):
        self.store = store
        self.chunk_manager = chunk_manager
        self._chunks: List[Chunk] = []
        self._fields: Dict[str, _FieldIndex] = {}
        self._vocabulary: List[str] = []
        self._documents: Set[str] = set()

    async def build_from_candidates(self, candidate_paths: Iterable[str]) -> int:
        """
        Index the chunks of the candidate documents.

        Args:
            candidate_paths: Document paths from the candidate scan

        Returns:
            Number of chunks indexed
        """
        self.clear()
        paths = list(dict.fromkeys(candidate_paths))
        if not paths:
            return 0

        chunks = await self.chunk_manager.get_chunks(paths)
        if not chunks:
            return 0

        tags_by_path: Dict[str, str] = {}
        props_by_path: Dict[str, str] = {}
        for path in {c.document_path for c in chunks}:
            try:
                tags_by_path[path] = " ".join(f"#{t.lstrip('#')}" for t in self.store.get_tags(path))
                props_by_path[path] = " ".join(_flatten_frontmatter(self.store.get_frontmatter(path)))
            except Exception as e:
                logger.warning("Failed to read note metadata", path=path, error=str(e))
                tags_by_path[path] = ""
                props_by_path[path] = ""

        field_texts: Dict[str, List[List[str]]] = {name: [] for name in FIELD_WEIGHTS}
        for chunk in chunks:
            path_text = chunk.document_path
            if path_text.lower().endswith(".md"):
                path_text = path_text[:-3]
            field_texts["title"].append(_tokenize_with_counts(chunk.title))
            field_texts["heading"].append(_tokenize_with_counts(chunk.heading))
            field_texts["path"].append(_tokenize_with_counts(path_text.replace("/", " ")))
            field_texts["tags"].append(_tokenize_with_counts(tags_by_path.get(chunk.document_path, "")))
            field_texts["body"].append(
                _tokenize_with_counts(chunk.content + "\n" + props_by_path.get(chunk.document_path, ""))
            )

        vocabulary: Set[str] = set()
        for name, corpus in field_texts.items():
            postings: Dict[str, Set[int]] = defaultdict(set)
            for doc_index, tokens in enumerate(corpus):
                for token in tokens:
                    postings[token].add(doc_index)
            vocabulary.update(postings)
            # BM25 needs a non-zero average document length
            model = BM25Plus(corpus) if any(corpus) else None
            self._fields[name] = _FieldIndex(model=model, postings=dict(postings))

        self._chunks = chunks
        self._vocabulary = sorted(vocabulary)
        self._documents = {c.document_path for c in chunks}

        logger.debug(
            "Full-text index built",
            documents=len(self._documents),
            chunks=len(chunks),
            vocabulary=len(self._vocabulary),
        )
        return len(chunks)

    def search(
        self,
        queries: List[str],
        limit: int = 30,
        salient_terms: Optional[List[str]] = None,
        original_query: Optional[str] = None,
        expanded_terms: Optional[List[str]] = None,
    ) -> List[RankedResult]:
        """
        Rank indexed chunks.

        Args:
            queries: Original query first, then paraphrases (used for secondary scoring)
            limit: Maximum results
            salient_terms: Primary scoring terms; the original query is used when empty
            original_query: Query as typed, also used for the exact-phrase boost
            expanded_terms: LLM terms, secondary scoring only

        Returns:
            Results sorted by score, descending
        """
        if not self._chunks:
            return []

        salient_terms = salient_terms or []
        expanded_terms = expanded_terms or []
        primary_query = (
            " ".join(salient_terms) if salient_terms else (original_query or (queries[0] if queries else ""))
        )
        if not primary_query.strip():
            return []

        secondary_query = " ".join(list(expanded_terms) + list(queries[1:])).strip()

        primary = self._score(primary_query)
        secondary = self._score(secondary_query) if secondary_query else {}

        phrase = (original_query or (queries[0] if queries else "")).strip().lower()

        results: List[RankedResult] = []
        for doc_index, chunk in enumerate(self._chunks):
            base = primary.get(doc_index, 0.0)
            expanded = secondary.get(doc_index, 0.0)
            if base <= 0 and expanded <= 0:
                continue

            if secondary_query:
                score = base * SALIENT_WEIGHT + expanded * EXPANDED_WEIGHT
            else:
                score = base

            phrase_match = bool(phrase) and phrase in chunk.content.lower()
            if phrase_match:
                score *= PHRASE_BOOST

            results.append(
                RankedResult(
                    id=chunk.id,
                    score=score,
                    engine=EngineType.LEXICAL,
                    explanation={
                        "base_score": base,
                        "expanded_boost": expanded * EXPANDED_WEIGHT if secondary_query else 0.0,
                        "phrase_match": phrase_match,
                        "final_score": score,
                    },
                )
            )

        results.sort(key=lambda r: r.score, reverse=True)
        logger.debug(
            "Full-text search complete",
            query=primary_query[:50],
            matches=len(results),
            returned=min(len(results), limit),
        )
        return results[:limit]

    def _expand_prefix(self, token: str) -> List[str]:
        start = bisect.bisect_right(self._vocabulary, token)
        matches = []
        for candidate in self._vocabulary[start:]:
            if not candidate.startswith(token) or len(matches) >= MAX_PREFIX_EXPANSIONS:
                break
            matches.append(candidate)
        return matches

    def _score(self, query: str) -> Dict[int, float]:
        """Weighted field score for every chunk matching at least one query token."""
        scores: Dict[int, float] = defaultdict(float)
        for token in tokenize(query):
            weighted_terms = [(token, 1.0)] + [(t, PREFIX_WEIGHT) for t in self._expand_prefix(token)]
            for name, index in self._fields.items():
                if index.model is None:
                    continue
                field_weight = FIELD_WEIGHTS[name]
                for term, term_weight in weighted_terms:
                    doc_ids = sorted(index.postings.get(term, ()))
                    if not doc_ids:
                        continue
                    term_scores = index.model.get_batch_scores([term], doc_ids)
                    for doc_index, value in zip(doc_ids, term_scores):
                        scores[doc_index] += field_weight * term_weight * max(float(value), 0.0)
        return scores

    def clear(self) -> None:
        """Drop the index; it is rebuilt for every retrieval."""
        self._chunks = []
        self._fields = {}
        self._vocabulary = []
        self._documents = set()

    def get_stats(self) -> Dict[str, Any]:
        return {
            "documents": len(self._documents),
            "chunks": len(self._chunks),
            "vocabulary": len(self._vocabulary),
        }
