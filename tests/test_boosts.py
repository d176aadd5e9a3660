"""Tests for folder and link-graph boosts."""

import math

import pytest

from conftest import FakeStore
from vaultsearch.models.search import EngineType, RankedResult
from vaultsearch.rag.retrieval.boosts import (
    FolderBoostCalculator,
    FolderBoostConfig,
    GraphBoostCalculator,
    GraphBoostConfig,
)


def lexical(pairs):
    return [RankedResult(id=i, score=s, engine=EngineType.LEXICAL) for i, s in pairs]


class BrokenLinksStore(FakeStore):
    def get_backlinks(self, path):
        raise OSError("link cache unavailable")


# ============================================================================
# Folder boost
# ============================================================================


class TestFolderBoost:
    def test_boosts_folders_with_several_notes(self) -> None:
        results = lexical([("notes/x.md#0", 1.0), ("notes/y.md#0", 0.5), ("other.md#0", 0.4)])

        boosted = FolderBoostCalculator().apply_boosts(results)

        factor = 1 + 0.1 * math.log2(3)
        assert boosted[0].score == pytest.approx(factor)
        assert boosted[1].score == pytest.approx(0.5 * factor)
        assert boosted[2].score == 0.4
        assert boosted[0].explanation["folder_boost"]["folder"] == "notes"

    def test_counts_distinct_notes_not_chunks(self) -> None:
        results = lexical([("notes/x.md#0", 1.0), ("notes/x.md#1", 0.5)])

        assert FolderBoostCalculator().get_folder_boosts(results) == {}

    def test_factor_is_capped(self) -> None:
        results = lexical([(f"big/n{i}.md#0", 1.0) for i in range(200)])

        boosts = FolderBoostCalculator().get_folder_boosts(results)

        assert boosts["big"] == 1.3

    def test_disabled(self) -> None:
        results = lexical([("notes/x.md#0", 1.0), ("notes/y.md#0", 0.5)])
        calculator = FolderBoostCalculator(FolderBoostConfig(enabled=False))
        assert calculator.apply_boosts(results) == results


# ============================================================================
# Graph boost
# ============================================================================


class TestGraphBoost:
    def test_linked_top_notes_are_boosted(self) -> None:
        """Should boost both ends of a link between top notes and leave weak notes alone."""
        store = FakeStore(
            {"a.md": "alpha", "b.md": "beta", "c.md": "gamma"},
            links={"a.md": ["b.md"], "c.md": ["a.md"]},
        )
        results = lexical([("a.md#0", 1.0), ("b.md#0", 0.8), ("c.md#0", 0.1)])

        boosted = GraphBoostCalculator(store).apply_boost(results)

        multiplier = 1 + 0.1 * math.log(2)
        assert boosted[0].score == pytest.approx(multiplier)
        assert boosted[1].score == pytest.approx(0.8 * multiplier)
        assert boosted[2].score == 0.1
        assert boosted[0].explanation["graph_boost"]["outgoing_links"] == 1
        assert boosted[1].explanation["graph_boost"]["backlinks"] == 1

    def test_every_chunk_of_a_boosted_note(self) -> None:
        store = FakeStore({"a.md": "alpha", "b.md": "beta"}, links={"a.md": ["b.md"]})
        results = lexical([("a.md#0", 1.0), ("b.md#0", 0.9), ("a.md#1", 0.5)])

        boosted = GraphBoostCalculator(store).apply_boost(results)

        assert boosted[2].score > 0.5

    def test_shared_tags(self) -> None:
        store = FakeStore({"x.md": "#work one", "y.md": "#work two"})
        results = lexical([("x.md#0", 1.0), ("y.md#0", 0.9)])

        boosted = GraphBoostCalculator(store).apply_boost(results)

        assert boosted[0].score == pytest.approx(1 + 0.1 * math.log(1.3))
        assert boosted[0].explanation["graph_boost"]["shared_tags"] == 1

    def test_single_candidate_is_unchanged(self) -> None:
        store = FakeStore({"a.md": "alpha"})
        results = lexical([("a.md#0", 1.0), ("a.md#1", 0.9)])

        assert GraphBoostCalculator(store).apply_boost(results) == results

    def test_unconnected_notes_are_unchanged(self) -> None:
        store = FakeStore({"a.md": "alpha", "b.md": "beta"})
        results = lexical([("a.md#0", 1.0), ("b.md#0", 0.9)])

        assert GraphBoostCalculator(store).apply_boost(results) == results

    def test_lookup_failures_are_skipped(self) -> None:
        store = BrokenLinksStore({"a.md": "alpha", "b.md": "beta"}, links={"a.md": ["b.md"]})
        results = lexical([("a.md#0", 1.0), ("b.md#0", 0.9)])

        assert GraphBoostCalculator(store).apply_boost(results) == results

    def test_disabled(self) -> None:
        store = FakeStore({"a.md": "alpha", "b.md": "beta"}, links={"a.md": ["b.md"]})
        results = lexical([("a.md#0", 1.0), ("b.md#0", 0.9)])
        calculator = GraphBoostCalculator(store, GraphBoostConfig(enabled=False))
        assert calculator.apply_boost(results) == results
