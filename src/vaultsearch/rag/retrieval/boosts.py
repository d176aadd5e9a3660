"""
Structural boosts applied to lexical results before fusion.

FolderBoostCalculator: notes that cluster in one folder reinforce each other.
GraphBoostCalculator: notes linked to other top results (backlinks, outgoing links,
co-citations, shared tags) get a small multiplier.
"""

import math
from dataclasses import dataclass
from posixpath import dirname
from typing import Dict, List, Optional, Set

from vaultsearch.core.id_generator import document_path_from_chunk_id
from vaultsearch.core.logging import logger
from vaultsearch.models.search import RankedResult
from vaultsearch.store.protocols import DocumentStore


def _with_boost(result: RankedResult, factor: float, key: str, detail: Dict) -> RankedResult:
    explanation = dict(result.explanation or {})
    explanation[key] = detail
    return result.model_copy(update={"score": result.score * factor, "explanation": explanation})


@dataclass
class FolderBoostConfig:
    enabled: bool = True
    min_docs_for_boost: int = 2
    boost_strength: float = 0.1
    max_boost_factor: float = 1.3


class FolderBoostCalculator:
    """Boost chunks whose folder holds several distinct matching notes."""

    def __init__(self, config: Optional[FolderBoostConfig] = None):
        self.config = config or FolderBoostConfig()

    def get_folder_boosts(self, results: List[RankedResult]) -> Dict[str, float]:
        """Boost factor per folder, only for folders at or above the document minimum."""
        documents_by_folder: Dict[str, Set[str]] = {}
        for result in results:
            path = document_path_from_chunk_id(result.id)
            documents_by_folder.setdefault(dirname(path), set()).add(path)

        boosts = {}
        for folder, documents in documents_by_folder.items():
            count = len(documents)
            if count >= self.config.min_docs_for_boost:
                boosts[folder] = min(
                    1 + self.config.boost_strength * math.log2(count + 1),
                    self.config.max_boost_factor,
                )
        return boosts

    def apply_boosts(self, results: List[RankedResult]) -> List[RankedResult]:
        if not self.config.enabled or not results:
            return results

        boosts = self.get_folder_boosts(results)
        if not boosts:
            return results

        logger.debug(
            "Folder boost applied",
            folders=len(boosts),
            top=sorted(boosts.items(), key=lambda item: item[1], reverse=True)[:5],
        )

        boosted = []
        for result in results:
            folder = dirname(document_path_from_chunk_id(result.id))
            factor = boosts.get(folder)
            if factor is None:
                boosted.append(result)
            else:
                boosted.append(
                    _with_boost(result, factor, "folder_boost", {"folder": folder or "/", "factor": factor})
                )
        return boosted


@dataclass
class GraphBoostConfig:
    enabled: bool = True
    max_candidates: int = 20
    # Notes scoring below this fraction of the top score are not analyzed
    min_relative_score: float = 0.3
    backlink_weight: float = 1.0
    outgoing_link_weight: float = 1.0
    co_citation_weight: float = 0.5
    shared_tag_weight: float = 0.3
    boost_strength: float = 0.1
    max_boost_multiplier: float = 1.15


@dataclass
class GraphConnections:
    backlinks: int = 0
    outgoing_links: int = 0
    co_citations: int = 0
    shared_tags: int = 0
    score: float = 0.0
    multiplier: float = 1.0


class GraphBoostCalculator:
    """
    Boost notes connected to other top results.

    Only the best chunk of each of the top notes is used to pick the analyzed set, but the
    multiplier applies to every chunk of a boosted note.
    """

    def __init__(self, store: DocumentStore, config: Optional[GraphBoostConfig] = None):
        self.store = store
        self.config = config or GraphBoostConfig()

    def _candidate_notes(self, results: List[RankedResult]) -> List[str]:
        best: Dict[str, float] = {}
        for result in results:
            path = document_path_from_chunk_id(result.id)
            if path not in best or result.score > best[path]:
                best[path] = result.score
        if not best:
            return []

        ranked = sorted(best, key=lambda p: best[p], reverse=True)
        top_score = best[ranked[0]]
        cutoff = top_score * self.config.min_relative_score
        return [p for p in ranked if best[p] >= cutoff][: self.config.max_candidates]

    def calculate_connections(self, note: str, candidates: Set[str]) -> GraphConnections:
        others = candidates - {note}
        backlinks = set(self.store.get_backlinks(note))
        outgoing = set(self.store.get_outgoing_links(note))

        connections = GraphConnections(
            backlinks=len(backlinks & others),
            outgoing_links=len(outgoing & others),
        )

        if backlinks:
            connections.co_citations = sum(
                1 for other in others if backlinks & set(self.store.get_backlinks(other))
            )

        tags = set(self.store.get_tags(note))
        if tags:
            connections.shared_tags = sum(1 for other in others if tags & set(self.store.get_tags(other)))

        connections.score = (
            connections.backlinks * self.config.backlink_weight
            + connections.outgoing_links * self.config.outgoing_link_weight
            + connections.co_citations * self.config.co_citation_weight
            + connections.shared_tags * self.config.shared_tag_weight
        )
        if connections.score > 0:
            connections.multiplier = min(
                1 + self.config.boost_strength * math.log(1 + connections.score),
                self.config.max_boost_multiplier,
            )
        return connections

    def apply_boost(self, results: List[RankedResult]) -> List[RankedResult]:
        if not self.config.enabled or not results:
            return results

        candidates = self._candidate_notes(results)
        if len(candidates) < 2:
            return results

        candidate_set = set(candidates)
        connections = {}
        for note in candidates:
            try:
                connections[note] = self.calculate_connections(note, candidate_set)
            except Exception as e:
                logger.warning("Graph lookup failed, skipping note", path=note, error=str(e))

        boosted = []
        boosted_notes = set()
        for result in results:
            path = document_path_from_chunk_id(result.id)
            conn = connections.get(path)
            if conn is None or conn.multiplier <= 1.0:
                boosted.append(result)
                continue
            boosted_notes.add(path)
            boosted.append(
                _with_boost(
                    result,
                    conn.multiplier,
                    "graph_boost",
                    {
                        "backlinks": conn.backlinks,
                        "outgoing_links": conn.outgoing_links,
                        "co_citations": conn.co_citations,
                        "shared_tags": conn.shared_tags,
                        "score": conn.score,
                        "multiplier": conn.multiplier,
                    },
                )
            )

        if boosted_notes:
            logger.debug("Graph boost applied", notes=len(boosted_notes), analyzed=len(candidates))
        return boosted
