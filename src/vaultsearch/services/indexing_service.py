"""
Indexing pipeline: chunk -> embed in rate-limited batches -> ChunkRecords.

Persistence and in-memory state belong to SemanticIndexManager; this module only turns
documents into records.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Set

from vaultsearch.core.cancellation import CancellationToken
from vaultsearch.core.exceptions import EmbeddingError, IndexingCancelledError
from vaultsearch.core.logging import logger
from vaultsearch.core.rate_limiter import RateLimiter
from vaultsearch.core.tracing import MetricsCollector
from vaultsearch.models.chunk import Chunk, ChunkRecord
from vaultsearch.models.document import DocumentInfo
from vaultsearch.rag.chunking import ChunkManager
from vaultsearch.store.protocols import EmbeddingProvider

DEFAULT_BATCH_SIZE = 16


@dataclass
class PipelineResult:
    """
    Records built by one run.

    Only documents whose chunks were ALL embedded contribute records; a document cut by a
    failed batch or by cancellation is left out entirely so the next run retries it.
    """

    records: List[ChunkRecord] = field(default_factory=list)
    completed_paths: Set[str] = field(default_factory=set)
    empty_paths: Set[str] = field(default_factory=set)
    embed_calls: int = 0
    errors: List[str] = field(default_factory=list)
    cancelled: bool = False

    @property
    def documents(self) -> int:
        return len(self.completed_paths - self.empty_paths)


class IndexingPipeline:
    """
    Embeds document chunks in batches.

    BATCHING:
    - ``batch_size`` chunks per embedding request (minimum 1)
    - every request waits on the shared RateLimiter first
    - the cancellation token is checked before every batch

    A failed batch is logged and skipped; the other batches still produce records.
    """

    def __init__(
        self,
        chunk_manager: ChunkManager,
        embeddings: EmbeddingProvider,
        rate_limiter: RateLimiter,
        batch_size: int = DEFAULT_BATCH_SIZE,
    ):
        self.chunk_manager = chunk_manager
        self.embeddings = embeddings
        self.rate_limiter = rate_limiter
        self.batch_size = max(1, int(batch_size))
        self.metrics = MetricsCollector()

    def set_batch_size(self, batch_size: int) -> None:
        self.batch_size = max(1, int(batch_size))

    async def _collect_chunks(self, documents: Sequence[DocumentInfo]) -> Dict[str, List[Chunk]]:
        chunks_by_path: Dict[str, List[Chunk]] = {}
        for document in documents:
            chunks_by_path[document.path] = await self.chunk_manager.get_chunks([document.path])
        return chunks_by_path

    async def _embed_batch(self, batch: List[Chunk]) -> List[List[float]]:
        await self.rate_limiter.wait()
        vectors = await self.embeddings.embed_documents([c.content for c in batch])
        if len(vectors) != len(batch):
            raise EmbeddingError(
                "Embedding provider returned a different number of vectors",
                context={"expected": len(batch), "received": len(vectors)},
            )
        return vectors

    async def run(
        self,
        documents: Sequence[DocumentInfo],
        token: Optional[CancellationToken] = None,
    ) -> PipelineResult:
        """
        Build records for ``documents``.

        Args:
            documents: Documents to (re-)embed
            token: Cancellation/pause token; progress is reported through it

        Returns:
            PipelineResult; ``cancelled`` is set when the token fired mid-run
        """
        result = PipelineResult()
        if not documents:
            return result

        by_path = {doc.path: doc for doc in documents}
        chunks_by_path = await self._collect_chunks(documents)
        chunks = [chunk for path_chunks in chunks_by_path.values() for chunk in path_chunks]
        result.empty_paths = {path for path, path_chunks in chunks_by_path.items() if not path_chunks}
        total = len(chunks)
        logger.info(
            "Embedding chunks",
            documents=len(documents),
            chunks=total,
            batch_size=self.batch_size,
        )

        built: Dict[str, List[ChunkRecord]] = {path: [] for path in chunks_by_path}
        completed = 0
        try:
            for start in range(0, total, self.batch_size):
                if token is not None:
                    await token.checkpoint()

                batch_index = start // self.batch_size
                batch = chunks[start:start + self.batch_size]
                result.embed_calls += 1
                self.metrics.increment("indexing.embed_calls")
                try:
                    vectors = await self._embed_batch(batch)
                except Exception as e:
                    logger.error(
                        "Embedding batch failed",
                        batch_index=batch_index,
                        chunks=len(batch),
                        error=str(e),
                    )
                    result.errors.append(f"batch {batch_index}: {e}")
                    vectors = []

                for chunk, vector in zip(batch, vectors):
                    doc = by_path[chunk.document_path]
                    try:
                        record = ChunkRecord(
                            id=chunk.id,
                            path=chunk.document_path,
                            title=chunk.title,
                            mtime=doc.mtime,
                            ctime=doc.ctime or doc.mtime,
                            embedding=list(vector),
                        )
                    except ValueError as e:
                        logger.warning("Skipping invalid embedding", chunk_id=chunk.id, error=str(e))
                        result.errors.append(f"{chunk.id}: {e}")
                        continue
                    built[chunk.document_path].append(record)

                completed += len(batch)
                if token is not None:
                    token.report_progress(completed, total)

        except IndexingCancelledError:
            logger.info("Indexing cancelled", completed_chunks=completed, total_chunks=total)
            result.cancelled = True

        for path, path_chunks in chunks_by_path.items():
            if len(built[path]) == len(path_chunks):
                result.completed_paths.add(path)
                result.records.extend(built[path])

        incomplete = len(chunks_by_path) - len(result.completed_paths)
        if incomplete:
            logger.warning("Documents left for the next run", documents=incomplete)
        return result
