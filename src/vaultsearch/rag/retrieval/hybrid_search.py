"""
Hybrid retrieval: lexical and semantic search over a shared candidate set.

This is the entry point for search. Pipeline:
query expansion -> candidate scan -> lexical + semantic in parallel -> boosts -> fusion
-> normalization -> note-diverse top-k. Any failure falls back to a plain keyword scan.
"""

import asyncio
from typing import Any, Dict, List, Optional, Union

from vaultsearch.core.logging import PerformanceLogger, logger
from vaultsearch.core.secure_config import Settings
from vaultsearch.core.tracing import MetricsCollector, tracer
from vaultsearch.models.chunk import ChunkOptions
from vaultsearch.models.search import (
    MAX_QUERY_LENGTH,
    RETURN_ALL_LIMIT,
    EngineType,
    ExpandedQuery,
    RankedResult,
    RetrieveResult,
    SearchOptions,
    SemanticMode,
)
from vaultsearch.rag.chunking import ChunkManager
from vaultsearch.rag.retrieval.boosts import FolderBoostCalculator, GraphBoostCalculator
from vaultsearch.rag.retrieval.cutoff import select_diverse_top_k
from vaultsearch.rag.retrieval.full_text import FullTextEngine
from vaultsearch.rag.retrieval.fusion import weighted_rrf
from vaultsearch.rag.retrieval.grep_scanner import GrepScanner
from vaultsearch.rag.retrieval.hyde import HydeGenerator
from vaultsearch.rag.retrieval.normalizer import NormalizationMethod, ScoreNormalizer
from vaultsearch.rag.retrieval.query_expander import QueryExpander
from vaultsearch.store.protocols import ChatModel, DocumentStore

DEFAULT_GREP_LIMIT = 500

perf_logger = PerformanceLogger()


def build_tag_recall_queries(salient_terms: List[str]) -> List[str]:
    """
    Recall terms for hash tags: the tag body plus every hierarchy prefix and segment.

    ``#project/alpha`` -> ``project/alpha``, ``project``, ``alpha``.
    """
    recall: Dict[str, None] = {}
    for term in salient_terms:
        if not term or not term.startswith("#"):
            continue
        body = term.lower()[1:]
        if not body:
            continue
        recall[body] = None
        prefix = ""
        for segment in (s for s in body.split("/") if s):
            prefix = f"{prefix}/{segment}" if prefix else segment
            recall[prefix] = None
            recall[segment] = None
    return list(recall)


class HybridSearch:
    """
    Retrieval orchestrator.

    The semantic index is optional and injected; without it, or with
    ``enable_semantic`` off, retrieval is lexical only. ``retrieve`` never raises.
    """

    def __init__(
        self,
        store: DocumentStore,
        semantic_index=None,
        chat_model: Optional[ChatModel] = None,
        chunk_manager: Optional[ChunkManager] = None,
        query_expander: Optional[QueryExpander] = None,
        settings: Optional[Settings] = None,
    ):
        """
        Initialize hybrid search.

        Args:
            store: Document store holding the vault
            semantic_index: SemanticIndexManager, or None for lexical-only retrieval
            chat_model: Optional chat model for query expansion and HyDE
            chunk_manager: Shared chunker; must be the one the semantic index uses
            query_expander: Custom expander, built from settings when omitted
            settings: Configuration, loaded from the environment when omitted
        """
        config = settings or Settings()
        self.store = store
        self.semantic_index = semantic_index
        self.chat_model = chat_model

        self.chunk_manager = chunk_manager or getattr(semantic_index, "chunk_manager", None) or ChunkManager(
            store,
            ChunkOptions(
                max_chars=config.get("chunking.max_chars", 6000),
                overlap=config.get("chunking.overlap", 0),
                max_bytes_total=config.get("chunking.max_bytes_total", 10 * 1024 * 1024),
            ),
        )
        self.query_expander = query_expander or QueryExpander(
            chat_model=chat_model,
            max_variants=config.get("expansion.max_variants", 3),
            timeout=config.get("expansion.timeout_seconds", 5.0),
            cache_size=config.get("expansion.cache_size", 100),
            min_term_length=config.get("expansion.min_term_length", 2),
        )
        self.grep_scanner = GrepScanner(store)
        self.full_text = FullTextEngine(store, self.chunk_manager)
        self.folder_boost = FolderBoostCalculator()
        self.graph_boost = GraphBoostCalculator(store)
        self.normalizer = ScoreNormalizer(method=NormalizationMethod.MINMAX, clip_min=0.02, clip_max=0.98)
        self.enable_hyde = bool(config.get("search.enable_hyde", True))
        self.hyde = HydeGenerator(chat_model, timeout=config.get("expansion.timeout_seconds", 5.0))
        self.grep_limit = config.get("search.grep_limit", DEFAULT_GREP_LIMIT)

        self.metrics = MetricsCollector()
        self._last_stats: Dict[str, Any] = {}

        logger.info(
            "HybridSearch initialized",
            semantic="enabled" if semantic_index is not None else "disabled",
            chat_model="enabled" if chat_model is not None else "disabled",
            hyde=self.enable_hyde,
        )

    async def retrieve(
        self, query: str, options: Union[SearchOptions, Dict[str, Any], None] = None
    ) -> RetrieveResult:
        """
        Run the retrieval pipeline.

        Args:
            query: User query; blank input returns no results
            options: SearchOptions or a dict of its fields; values are clamped

        Returns:
            Ranked chunk results and the query expansion used
        """
        if not isinstance(query, str) or not query.strip():
            logger.warning("Empty query provided")
            return RetrieveResult(results=[], query_expansion=ExpandedQuery(original_query=query or ""))

        query = query.strip()
        if len(query) > MAX_QUERY_LENGTH:
            logger.warning("Query too long, truncating", length=len(query), limit=MAX_QUERY_LENGTH)
            query = query[:MAX_QUERY_LENGTH]

        try:
            options = self._coerce_options(options)
        except Exception as e:
            logger.warning("Invalid search options, using defaults", error=str(e))
            options = SearchOptions()

        stage = "expansion"
        candidates: List[str] = []
        try:
            with tracer.span("retrieve", {"query": query[:50]}):
                if options.pre_expanded_query is not None:
                    expanded = self._from_pre_expanded(options.pre_expanded_query, query)
                    logger.debug("Using pre-expanded query", query=query[:50])
                else:
                    expanded = await self.query_expander.expand(query)

                salient_terms = list(dict.fromkeys(expanded.salient_terms + options.salient_terms))
                recall_queries = self._build_recall_queries(expanded, salient_terms)
                logger.debug(
                    "Query expanded",
                    variants=expanded.queries,
                    salient=salient_terms,
                    recall=len(recall_queries),
                )

                stage = "candidates"
                grep_limit = RETURN_ALL_LIMIT if options.return_all else self.grep_limit
                grep_hits = await self.grep_scanner.batch_cached_read_grep(recall_queries, grep_limit)
                candidates = grep_hits[: options.candidate_limit]
                logger.info(
                    "Candidates selected", candidates=len(candidates), grep_hits=len(grep_hits)
                )

                stage = "search"
                results = await self._search(
                    query, expanded, salient_terms, recall_queries, candidates, options
                )

                stage = "selection"
                self._last_stats = {"full_text": self.full_text.get_stats(), "candidates": len(candidates)}
                self.full_text.clear()

                if len(results) > options.max_results:
                    results = select_diverse_top_k(results, options.max_results)

            if results:
                logger.info("Retrieval complete", query=query[:50], results=len(results), top=results[0].id)
            else:
                logger.info(
                    "No results found", query=query[:50], candidates=len(candidates), stage=stage
                )
            return RetrieveResult(results=results, query_expansion=expanded)

        except Exception as e:
            self.full_text.clear()
            self.metrics.increment("rag.retrieval.fallbacks")
            logger.error(
                "Retrieval failed, falling back to keyword scan",
                query=query[:50],
                candidates=len(candidates),
                stage=stage,
                error=str(e),
            )
            fallback = await self._fallback_search(query, options.max_results)
            return RetrieveResult(results=fallback, query_expansion=ExpandedQuery(original_query=query))

    async def _search(
        self,
        query: str,
        expanded: ExpandedQuery,
        salient_terms: List[str],
        recall_queries: List[str],
        candidates: List[str],
        options: SearchOptions,
    ) -> List[RankedResult]:
        semantic_available = options.enable_semantic and self.semantic_index is not None
        weight = options.semantic_weight if semantic_available else 0.0
        limit = max(options.max_results * 3, 3)

        run_lexical = weight < 1.0
        run_semantic = semantic_available and weight > 0.0

        async def skipped() -> List[RankedResult]:
            return []

        lexical_task = (
            self._guarded(
                "lexical",
                self._lexical_search(expanded, recall_queries, salient_terms, candidates, limit),
            )
            if run_lexical
            else skipped()
        )
        semantic_task = (
            self._guarded("semantic", self._semantic_search(query, expanded, candidates, limit, options))
            if run_semantic
            else skipped()
        )
        lexical, semantic = await asyncio.gather(lexical_task, semantic_task)

        if options.enable_lexical_boosts and lexical:
            lexical = self.folder_boost.apply_boosts(lexical)
            lexical = self.graph_boost.apply_boost(lexical)
            lexical.sort(key=lambda r: r.score, reverse=True)

        if weight >= 1.0:
            fused = semantic
        elif weight <= 0.0:
            fused = lexical
        else:
            fused = weighted_rrf(
                lexical=lexical,
                semantic=semantic,
                weights={"lexical": 1.0 - weight, "semantic": weight},
                k=options.rrf_k,
            )

        logger.debug(
            "Search paths complete",
            lexical=len(lexical),
            semantic=len(semantic),
            fused=len(fused),
            semantic_weight=weight,
        )
        return self.normalizer.normalize(fused)

    async def _guarded(self, name: str, coro) -> List[RankedResult]:
        """One search path; its failure yields no results instead of failing the join."""
        try:
            with tracer.span(f"{name}_search"):
                return await coro
        except Exception as e:
            logger.warning("Search path failed", path=name, error=str(e))
            return []

    async def _lexical_search(
        self,
        expanded: ExpandedQuery,
        recall_queries: List[str],
        salient_terms: List[str],
        candidates: List[str],
        limit: int,
    ) -> List[RankedResult]:
        if not candidates:
            return []
        with perf_logger.measure("build_lexical_index", candidates=len(candidates)):
            indexed = await self.full_text.build_from_candidates(candidates)
        if not indexed:
            return []
        return self.full_text.search(
            queries=recall_queries or expanded.queries,
            limit=limit,
            salient_terms=salient_terms,
            original_query=expanded.original_query,
            expanded_terms=expanded.expanded_terms,
        )

    async def _semantic_search(
        self,
        query: str,
        expanded: ExpandedQuery,
        candidates: List[str],
        limit: int,
        options: SearchOptions,
    ) -> List[RankedResult]:
        scoped = options.semantic_mode == SemanticMode.SCOPED
        if scoped and not candidates:
            return []

        variants = list(expanded.queries) or [query]
        if self.enable_hyde and self.chat_model is not None:
            passage = await self.hyde.generate(query)
            if passage:
                variants.append(passage)

        if scoped:
            hits = await self.semantic_index.search(variants, limit, candidates=candidates)
        else:
            hits = await self.semantic_index.search(variants, limit)

        return [
            RankedResult(id=chunk_id, score=score, engine=EngineType.SEMANTIC)
            for chunk_id, score in hits
        ]

    async def _fallback_search(self, query: str, limit: int) -> List[RankedResult]:
        try:
            hits = await self.grep_scanner.grep(query, limit)
        except Exception as e:
            logger.error("Fallback search also failed", query=query[:50], error=str(e))
            return []
        return [
            RankedResult(id=path, score=1 / (index + 1), engine=EngineType.GREP)
            for index, path in enumerate(hits)
        ]

    @staticmethod
    def _coerce_options(options: Union[SearchOptions, Dict[str, Any], None]) -> SearchOptions:
        if options is None:
            return SearchOptions()
        if isinstance(options, SearchOptions):
            return options
        return SearchOptions.model_validate(options)

    @staticmethod
    def _from_pre_expanded(pre: ExpandedQuery, query: str) -> ExpandedQuery:
        return ExpandedQuery(
            queries=list(pre.queries) or [query],
            salient_terms=list(pre.salient_terms),
            expanded_terms=list(pre.expanded_terms),
            original_query=pre.original_query or query,
        )

    @staticmethod
    def _build_recall_queries(expanded: ExpandedQuery, salient_terms: List[str]) -> List[str]:
        recall: Dict[str, None] = {}
        for group in (
            expanded.queries,
            expanded.expanded_terms,
            salient_terms,
            build_tag_recall_queries(salient_terms),
        ):
            for term in group:
                if term and term.lower() not in recall:
                    recall[term.lower()] = None
        return list(recall)

    def clear(self) -> None:
        """Drop the lexical index and the expansion cache."""
        self.full_text.clear()
        self.query_expander.clear_cache()
        logger.info("Search caches cleared")

    def get_stats(self) -> Dict[str, Any]:
        return {
            "last_retrieval": dict(self._last_stats),
            "chunk_cache_bytes": self.chunk_manager.memory_usage,
            "metrics": self.metrics.get_metrics(),
        }
