"""
Retrieval module for vaultsearch.

Keyword candidate scan, per-query BM25 over candidate chunks, semantic ranking through the
SemanticIndexManager, and weighted reciprocal rank fusion with folder and link boosts.
"""

from vaultsearch.rag.retrieval.hybrid_search import HybridSearch, build_tag_recall_queries
from vaultsearch.rag.retrieval.query_expander import QueryExpander
from vaultsearch.rag.retrieval.grep_scanner import GrepScanner, is_grep_worthy
from vaultsearch.rag.retrieval.full_text import FullTextEngine, tokenize
from vaultsearch.rag.retrieval.fusion import apply_tie_breakers, simple_rrf, weighted_rrf
from vaultsearch.rag.retrieval.boosts import FolderBoostCalculator, GraphBoostCalculator
from vaultsearch.rag.retrieval.normalizer import NormalizationMethod, ScoreNormalizer
from vaultsearch.rag.retrieval.cutoff import CutoffResult, adaptive_cutoff, select_diverse_top_k
from vaultsearch.rag.retrieval.hyde import HydeGenerator

__all__ = [
    # Main search
    "HybridSearch",
    "build_tag_recall_queries",
    # Query
    "QueryExpander",
    "HydeGenerator",
    # Engines
    "GrepScanner",
    "is_grep_worthy",
    "FullTextEngine",
    "tokenize",
    # Fusion and ranking
    "weighted_rrf",
    "simple_rrf",
    "apply_tie_breakers",
    "FolderBoostCalculator",
    "GraphBoostCalculator",
    "NormalizationMethod",
    "ScoreNormalizer",
    "CutoffResult",
    "adaptive_cutoff",
    "select_diverse_top_k",
]
