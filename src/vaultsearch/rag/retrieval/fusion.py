"""
Reciprocal rank fusion.

Each list contributes ``weight / (k + rank + 1)`` per id (zero-based rank). The sum is scaled
by ``k / 2`` and capped at 1.0, so a single list tops out around 0.5 and agreement between
engines is what pushes a result towards 1.0.
"""

from typing import Callable, Dict, List, Optional, Sequence

from vaultsearch.models.search import EngineType, RankedResult

DEFAULT_RRF_K = 60
DEFAULT_WEIGHTS = {"lexical": 1.0, "semantic": 1.0, "grep": 0.1}

TieBreaker = Callable[[str], float]


def _fuse(
    named_rankings: Sequence[tuple],
    k: int,
) -> List[RankedResult]:
    scores: Dict[str, float] = {}
    contributions: Dict[str, Dict[str, float]] = {}

    for name, ranking, weight in named_rankings:
        if not ranking or weight <= 0:
            continue
        for rank, item in enumerate(ranking):
            contribution = weight / (k + rank + 1)
            scores[item.id] = scores.get(item.id, 0.0) + contribution
            per_source = contributions.setdefault(item.id, {})
            per_source[name] = per_source.get(name, 0.0) + contribution

    scale = k / 2
    fused = [
        RankedResult(
            id=doc_id,
            score=min(score * scale, 1.0),
            engine=EngineType.FUSED,
            explanation={"rrf": contributions[doc_id], "raw_score": score},
        )
        for doc_id, score in scores.items()
    ]
    fused.sort(key=lambda r: r.score, reverse=True)
    return fused


def weighted_rrf(
    lexical: Optional[List[RankedResult]] = None,
    semantic: Optional[List[RankedResult]] = None,
    grep_prior: Optional[List[RankedResult]] = None,
    weights: Optional[Dict[str, float]] = None,
    k: int = DEFAULT_RRF_K,
) -> List[RankedResult]:
    """
    Fuse lexical, semantic and grep rankings.

    Args:
        lexical: Lexical results in rank order
        semantic: Semantic results in rank order
        grep_prior: Candidate-scan order, a weak prior
        weights: Per-source weights; missing keys use lexical 1, semantic 1, grep 0.1
        k: Rank constant

    Returns:
        Fused results sorted by score, scores in (0, 1]
    """
    merged = dict(DEFAULT_WEIGHTS)
    merged.update(weights or {})
    return _fuse(
        [
            ("lexical", lexical, merged["lexical"]),
            ("semantic", semantic, merged["semantic"]),
            ("grep", grep_prior, merged["grep"]),
        ],
        k,
    )


def simple_rrf(rankings: List[List[RankedResult]], k: int = DEFAULT_RRF_K) -> List[RankedResult]:
    """Equal-weight fusion of any number of rankings."""
    return _fuse([(f"ranking_{i}", ranking, 1.0) for i, ranking in enumerate(rankings)], k)


def apply_tie_breakers(
    results: List[RankedResult], tie_breakers: List[TieBreaker]
) -> List[RankedResult]:
    """
    Reorder results with equal scores.

    Tie breakers are applied in order, higher values first. Scores are not changed.
    """
    if not tie_breakers:
        return list(results)
    return sorted(
        results,
        key=lambda r: (r.score, *(breaker(r.id) for breaker in tie_breakers)),
        reverse=True,
    )
