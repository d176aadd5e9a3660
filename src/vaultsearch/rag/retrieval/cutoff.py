"""
Score-based cutoff with note diversity.
"""

from dataclasses import dataclass
from typing import List, Optional

from vaultsearch.core.id_generator import document_path_from_chunk_id
from vaultsearch.core.logging import logger
from vaultsearch.models.search import RankedResult


@dataclass
class CutoffResult:
    results: List[RankedResult]
    cutoff_score: Optional[float]
    unique_notes: int
    total_before: int


def adaptive_cutoff(
    results: List[RankedResult],
    floor: int = 3,
    ceiling: int = 30,
    relative_threshold: float = 0.3,
    absolute_min_score: float = 0.01,
    ensure_diversity: bool = True,
) -> CutoffResult:
    """
    Keep results down to the relevance cliff.

    At least ``floor`` and at most ``ceiling`` results are kept. After the floor, results
    scoring below ``max(top * relative_threshold, absolute_min_score)`` are dropped. With
    diversity on, every note gets its best chunk in before any note gets a second one.

    Args:
        results: Results in any order
        floor: Minimum results regardless of score
        ceiling: Maximum results
        relative_threshold: Fraction of the top score
        absolute_min_score: Lowest acceptable score
        ensure_diversity: Best chunk per note first

    Returns:
        CutoffResult with the kept results sorted by score
    """
    if not results:
        return CutoffResult(results=[], cutoff_score=None, unique_notes=0, total_before=0)

    ordered = sorted(results, key=lambda r: r.score, reverse=True)
    threshold = max(ordered[0].score * relative_threshold, absolute_min_score)

    if ensure_diversity:
        selected = _diverse(ordered, threshold, floor, ceiling)
    else:
        selected = _simple(ordered, threshold, floor, ceiling)

    unique_notes = len({document_path_from_chunk_id(r.id) for r in selected})
    logger.debug(
        "Adaptive cutoff applied",
        kept=len(selected),
        total=len(ordered),
        unique_notes=unique_notes,
        threshold=round(threshold, 3),
    )
    return CutoffResult(
        results=selected,
        cutoff_score=threshold if len(selected) < len(ordered) else None,
        unique_notes=unique_notes,
        total_before=len(ordered),
    )


def _simple(
    ordered: List[RankedResult], threshold: float, floor: int, ceiling: int
) -> List[RankedResult]:
    selected: List[RankedResult] = []
    for result in ordered:
        if len(selected) >= ceiling:
            break
        if len(selected) >= floor and result.score < threshold:
            break
        selected.append(result)
    return selected


def _diverse(
    ordered: List[RankedResult], threshold: float, floor: int, ceiling: int
) -> List[RankedResult]:
    selected: List[RankedResult] = []
    seen_notes = set()
    remaining: List[RankedResult] = []

    for result in ordered:
        if len(selected) >= ceiling:
            break
        note = document_path_from_chunk_id(result.id)
        if note not in seen_notes and (len(selected) < floor or result.score >= threshold):
            seen_notes.add(note)
            selected.append(result)
            continue
        remaining.append(result)

    for result in remaining:
        if len(selected) >= ceiling:
            break
        if result.score < threshold and len(selected) >= floor:
            break
        selected.append(result)

    selected.sort(key=lambda r: r.score, reverse=True)
    return selected


def select_diverse_top_k(results: List[RankedResult], limit: int) -> List[RankedResult]:
    """Top ``limit`` results, best chunk of every note first, then by score."""
    if limit <= 0:
        return []
    return adaptive_cutoff(
        results,
        floor=0,
        ceiling=limit,
        relative_threshold=0.0,
        absolute_min_score=0.0,
        ensure_diversity=True,
    ).results
