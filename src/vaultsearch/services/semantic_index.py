"""
Semantic index manager.

Owns the persisted chunk embeddings, the in-memory vector store built from them, and the
indexing entry points. Constructed explicitly and injected; use ``open()``/``close()`` or
``async with``.

STATES: unloaded -> loading -> {empty | ready}; ``reload()`` goes back through loading.
"""

import asyncio
import time
from enum import Enum
from pathlib import Path
from typing import Awaitable, Callable, Dict, List, Optional, Sequence, Set, Tuple

from vaultsearch.core.cancellation import CancellationToken
from vaultsearch.core.exceptions import IndexPersistenceError
from vaultsearch.core.logging import logger
from vaultsearch.core.rate_limiter import RateLimiter
from vaultsearch.core.secure_config import Settings
from vaultsearch.core.tracing import MetricsCollector
from vaultsearch.embeddings.vector_store import InMemoryVectorStore
from vaultsearch.models.chunk import ChunkOptions, ChunkRecord
from vaultsearch.models.document import DocumentInfo
from vaultsearch.models.indexing import IndexingResult, IndexingStatus
from vaultsearch.rag.chunking import ChunkManager
from vaultsearch.services.index_persistence import IndexPersistence
from vaultsearch.services.indexing_service import IndexingPipeline, PipelineResult
from vaultsearch.store.protocols import DocumentStore, EmbeddingProvider

# Hits requested per query variant never drop below this
MIN_HITS_PER_VARIANT = 100
# Scores of one chunk averaged across variants
TOP_SCORES_PER_CHUNK = 3
MIN_SCORE_RANGE = 1e-6


class IndexState(str, Enum):
    UNLOADED = "unloaded"
    LOADING = "loading"
    EMPTY = "empty"
    READY = "ready"


class SemanticIndexManager:
    """
    Embedding index over the chunks of the vault.

    CONCURRENCY:
    - loading happens once, under a load lock
    - index_vault, index_vault_incremental, reindex_document and clear_index are serialized
    - every embedding request (indexing and querying) goes through one RateLimiter

    Indexing never raises: failures come back as a FAILED IndexingResult.
    """

    def __init__(
        self,
        store: DocumentStore,
        embeddings: EmbeddingProvider,
        chunk_manager: Optional[ChunkManager] = None,
        persistence: Optional[IndexPersistence] = None,
        settings: Optional[Settings] = None,
        rate_limiter: Optional[RateLimiter] = None,
    ):
        config = settings or Settings()
        self.store = store
        self.embeddings = embeddings
        self.chunk_manager = chunk_manager or ChunkManager(
            store,
            ChunkOptions(
                max_chars=config.get("chunking.max_chars", 6000),
                overlap=config.get("chunking.overlap", 0),
                max_bytes_total=config.get("chunking.max_bytes_total", 10 * 1024 * 1024),
            ),
        )
        self.persistence = persistence or IndexPersistence(
            Path(config.get("indexing.index_path", ".vaultsearch-index/index.jsonl"))
        )
        self.rate_limiter = rate_limiter or RateLimiter(
            config.get("embeddings.requests_per_minute", 90)
        )
        self.vector_batch_size = max(1, int(config.get("indexing.vector_batch_size", 1000)))
        self.pipeline = IndexingPipeline(
            self.chunk_manager,
            embeddings,
            self.rate_limiter,
            batch_size=config.get("embeddings.batch_size", 16),
        )

        self._records: Dict[str, ChunkRecord] = {}
        self._vectors = InMemoryVectorStore()
        # Documents that produced no chunks, by mtime; not persisted
        self._empty_documents: Dict[str, float] = {}
        self._state = IndexState.UNLOADED
        self._load_lock = asyncio.Lock()
        self._indexing_lock = asyncio.Lock()
        self.metrics = MetricsCollector()

        logger.info(
            "SemanticIndexManager initialized",
            index_path=str(self.persistence.index_path),
            batch_size=self.pipeline.batch_size,
            requests_per_minute=self.rate_limiter.requests_per_minute,
        )

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @property
    def state(self) -> IndexState:
        return self._state

    @property
    def chunk_count(self) -> int:
        return len(self._records)

    async def open(self) -> "SemanticIndexManager":
        await self.ensure_loaded()
        return self

    async def close(self) -> None:
        """Drop the in-memory index. The persisted file is untouched."""
        self._records = {}
        self._vectors.clear()
        self._empty_documents = {}
        self._state = IndexState.UNLOADED

    async def __aenter__(self) -> "SemanticIndexManager":
        return await self.open()

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    async def ensure_loaded(self) -> None:
        """Load the persisted index on first use."""
        if self._state in (IndexState.EMPTY, IndexState.READY):
            return
        async with self._load_lock:
            if self._state in (IndexState.EMPTY, IndexState.READY):
                return
            await self._load()

    async def reload(self) -> None:
        """Re-read the persisted index, replacing the in-memory copy."""
        async with self._load_lock:
            await self._load()

    async def _load(self) -> None:
        self._state = IndexState.LOADING
        try:
            records = await self.persistence.read_records()
        except IndexPersistenceError as e:
            logger.error("Failed to load semantic index, starting empty", error=str(e))
            records = []
        self._set_records(records)
        logger.info("Semantic index loaded", state=self._state.value, chunks=len(self._records))

    def _set_records(self, records: Sequence[ChunkRecord]) -> None:
        self._vectors.clear()
        self._records = {}
        for start in range(0, len(records), self.vector_batch_size):
            batch = list(records[start:start + self.vector_batch_size])
            self._vectors.add(
                [r.id for r in batch],
                [r.path for r in batch],
                [r.embedding for r in batch],
            )
            for record in batch:
                self._records[record.id] = record
        self._state = IndexState.READY if len(self._vectors) else IndexState.EMPTY
        self.metrics.gauge("semantic.chunks", len(self._records))

    # ------------------------------------------------------------------
    # Querying
    # ------------------------------------------------------------------

    async def search(
        self,
        query_variants: Sequence[str],
        top_k: int,
        candidates: Optional[Sequence[str]] = None,
    ) -> List[Tuple[str, float]]:
        """
        Rank chunks by similarity to the query variants.

        Args:
            query_variants: Query paraphrases; each is embedded separately
            top_k: Number of chunks to return
            candidates: Restrict hits to these document paths. None searches the whole index,
                an empty sequence matches nothing

        Returns:
            (chunk id, score) pairs, best first, scores in [0, 1]
        """
        await self.ensure_loaded()
        if self._state != IndexState.READY or top_k <= 0:
            return []

        variants = [v for v in dict.fromkeys((q or "").strip() for q in query_variants) if v]
        if not variants:
            return []

        if candidates is not None and not candidates:
            return []

        allowed_paths = set(candidates) if candidates is not None else None
        k = min(len(self._vectors), max(top_k * 3, MIN_HITS_PER_VARIANT))

        scores_by_chunk: Dict[str, List[float]] = {}
        for variant in variants:
            try:
                await self.rate_limiter.wait()
                embedding = await self.embeddings.embed_query(variant)
                hits = self._vectors.search(embedding, k, allowed_paths=allowed_paths)
            except Exception as e:
                logger.warning("Query variant embedding failed, skipping", error=str(e))
                self.metrics.increment("semantic.variant_failures")
                continue
            for chunk_id, score in hits:
                scores_by_chunk.setdefault(chunk_id, []).append(min(max(score, 0.0), 1.0))

        aggregated = [
            (chunk_id, sum(top) / len(top))
            for chunk_id, top in (
                (cid, sorted(scores, reverse=True)[:TOP_SCORES_PER_CHUNK])
                for cid, scores in scores_by_chunk.items()
            )
        ]
        if len(aggregated) > 1:
            low = min(score for _, score in aggregated)
            high = max(score for _, score in aggregated)
            if high - low > MIN_SCORE_RANGE:
                aggregated = [(cid, (score - low) / (high - low)) for cid, score in aggregated]

        aggregated.sort(key=lambda item: item[1], reverse=True)
        return aggregated[:top_k]

    def get_indexed_paths(self) -> List[str]:
        return sorted({record.path for record in self._records.values()})

    def has_document(self, path: str) -> bool:
        return any(record.path == path for record in self._records.values())

    def get_document_embeddings(self, path: str) -> List[ChunkRecord]:
        return [record for record in self._records.values() if record.path == path]

    def update_rate_limit(self, requests_per_minute: int) -> None:
        self.rate_limiter.set_requests_per_minute(requests_per_minute)

    # ------------------------------------------------------------------
    # Indexing
    # ------------------------------------------------------------------

    async def index_vault(self, token: Optional[CancellationToken] = None) -> IndexingResult:
        """Re-embed every document in the store."""
        return await self._run("full", lambda: self._index_documents(self.store.list_documents(), token))

    async def index_vault_incremental(
        self, token: Optional[CancellationToken] = None
    ) -> IndexingResult:
        """
        Bring the index up to date with the store.

        Without an index file this is a full build. Otherwise documents gone from the store are
        dropped and documents that are new or modified since indexing are re-embedded.
        """
        return await self._run("incremental", lambda: self._index_incremental(token))

    async def reindex_document(self, path: str) -> IndexingResult:
        """Re-embed one document, or drop it if the store no longer has it."""
        return await self._run("document", lambda: self._reindex_document(path))

    async def clear_index(self) -> None:
        """Delete the persisted index and empty the in-memory one."""
        async with self._indexing_lock:
            await self.persistence.clear()
            self._set_records([])
            self._empty_documents = {}

    async def _run(
        self, trigger: str, operation: Callable[[], Awaitable[IndexingResult]]
    ) -> IndexingResult:
        start_time = time.time()
        async with self._indexing_lock:
            try:
                await self.ensure_loaded()
                logger.info("Starting indexing", trigger=trigger, chunks=len(self._records))
                result = await operation()
            except Exception as e:
                logger.error("Indexing failed", trigger=trigger, error=str(e))
                self.metrics.increment("indexing.failures")
                result = IndexingResult(
                    status=IndexingStatus.FAILED,
                    documents=0,
                    chunks=len(self._records),
                    errors=[str(e)],
                )

        result.duration_ms = (time.time() - start_time) * 1000
        self.metrics.increment(f"indexing.trigger.{trigger}")
        self.metrics.gauge("indexing.embed_calls_last_run", result.embed_calls)
        logger.info(
            "Indexing complete",
            trigger=trigger,
            status=result.status,
            documents=result.documents,
            chunks=result.chunks,
            embed_calls=result.embed_calls,
            duration_ms=round(result.duration_ms, 1),
        )
        return result

    async def _index_incremental(self, token: Optional[CancellationToken]) -> IndexingResult:
        documents = self.store.list_documents()
        if not self.persistence.has_index():
            return await self._index_documents(documents, token)

        indexed_mtimes: Dict[str, float] = {}
        for record in self._records.values():
            indexed_mtimes[record.path] = max(indexed_mtimes.get(record.path, 0.0), record.mtime)

        store_paths = {doc.path for doc in documents}
        removed = [path for path in indexed_mtimes if path not in store_paths]
        changed = [doc for doc in documents if self._needs_embedding(doc, indexed_mtimes)]

        if not removed and not changed:
            return IndexingResult(status=IndexingStatus.UNCHANGED, chunks=len(self._records))

        logger.info("Incremental changes", removed=len(removed), changed=len(changed))
        return await self._index_documents(changed, token, store_paths=store_paths)

    def _needs_embedding(self, doc: DocumentInfo, indexed_mtimes: Dict[str, float]) -> bool:
        if doc.path in indexed_mtimes:
            return doc.mtime > indexed_mtimes[doc.path]
        if doc.path in self._empty_documents:
            return doc.mtime > self._empty_documents[doc.path]
        return True

    async def _reindex_document(self, path: str) -> IndexingResult:
        documents = self.store.list_documents()
        store_paths = {doc.path for doc in documents}
        self.chunk_manager.evict(path)
        target = [doc for doc in documents if doc.path == path]
        if not target:
            logger.info("Document no longer in store, removing", path=path)
        return await self._index_documents(target, None, store_paths=store_paths)

    async def _index_documents(
        self,
        documents: Sequence[DocumentInfo],
        token: Optional[CancellationToken],
        store_paths: Optional[Set[str]] = None,
    ) -> IndexingResult:
        """Embed ``documents``, merge with the kept records and persist the result."""
        if store_paths is None:
            store_paths = {doc.path for doc in documents}

        outcome = await self.pipeline.run(documents, token)
        merged = self._merge(outcome, store_paths)
        await self.persistence.write_records(merged)
        self._set_records(merged)

        mtimes = {doc.path: doc.mtime for doc in documents}
        self._empty_documents = {
            path: mtime for path, mtime in self._empty_documents.items() if path in store_paths
        }
        for path in outcome.empty_paths & outcome.completed_paths:
            self._empty_documents[path] = mtimes[path]

        return IndexingResult(
            status=self._status(outcome),
            documents=outcome.documents,
            chunks=len(self._records),
            embed_calls=outcome.embed_calls,
            errors=outcome.errors,
        )

    def _merge(self, outcome: PipelineResult, store_paths: Set[str]) -> List[ChunkRecord]:
        # Documents not refreshed by this run keep their previous records
        kept = [
            record
            for record in self._records.values()
            if record.path in store_paths and record.path not in outcome.completed_paths
        ]
        return kept + outcome.records

    @staticmethod
    def _status(outcome: PipelineResult) -> IndexingStatus:
        if outcome.cancelled:
            return IndexingStatus.CANCELLED
        if outcome.errors:
            return IndexingStatus.PARTIAL
        return IndexingStatus.SUCCESS
