"""
Retrieval models: options, expanded queries and ranked results.
"""

from enum import Enum
from typing import Any, Dict, List, Optional
from pydantic import Field, field_validator, model_validator

from vaultsearch.models.base import VaultSearchBaseModel

RETURN_ALL_LIMIT = 100
MAX_QUERY_LENGTH = 1000


class EngineType(str, Enum):
    """Which path produced a ranked result."""

    LEXICAL = "lexical"
    SEMANTIC = "semantic"
    FUSED = "fused"
    GREP = "grep"


class SemanticMode(str, Enum):
    """
    How the semantic engine relates to the keyword candidates.

    SCOPED: semantic hits are restricted to the candidate documents, so both engines rank
    the same chunk universe.
    INDEPENDENT: the whole persisted index is searched; notes without keyword overlap can
    surface.
    """

    SCOPED = "scoped"
    INDEPENDENT = "independent"


class RankedResult(VaultSearchBaseModel):
    """A chunk id with a score, tagged with the engine that scored it."""

    id: str = Field(..., description="Chunk id (path#index) or document path for grep hits")
    score: float = Field(..., description="Score, comparable within one engine")
    engine: EngineType = Field(..., description="Engine that produced the score")
    explanation: Optional[Dict[str, Any]] = Field(None, description="Scoring breakdown")


class ExpandedQuery(VaultSearchBaseModel):
    """Query variants and terms produced by query expansion."""

    queries: List[str] = Field(default_factory=list, description="Original query first, then variants")
    salient_terms: List[str] = Field(
        default_factory=list, description="Terms from the original query, used for scoring"
    )
    expanded_terms: List[str] = Field(
        default_factory=list, description="LLM-suggested related terms, used for recall only"
    )
    original_query: str = Field("", description="Query as given by the caller")


def _clamp(value: Any, low: float, high: float, default: float) -> float:
    if value is None or isinstance(value, bool):
        return default
    try:
        number = float(value)
    except (TypeError, ValueError):
        return default
    if number != number:  # NaN
        return default
    return min(max(number, low), high)


class SearchOptions(VaultSearchBaseModel):
    """
    Bounded retrieval configuration.

    Out-of-range values are clamped into range rather than rejected.
    """

    max_results: int = Field(30, description="Results returned, clamped to [1, 100]")
    semantic_weight: float = Field(0.6, description="Semantic share in fusion, clamped to [0, 1]")
    candidate_limit: int = Field(500, description="Candidate documents, clamped to [10, 1000]")
    rrf_k: int = Field(60, description="RRF rank constant, clamped to [1, 100]")
    enable_semantic: bool = Field(False, description="Run the semantic path")
    enable_lexical_boosts: bool = Field(True, description="Apply folder and graph boosts")
    salient_terms: List[str] = Field(default_factory=list, description="Extra scoring terms")
    semantic_mode: SemanticMode = Field(SemanticMode.SCOPED, description="Semantic scope")
    return_all: bool = Field(False, description="Return up to 100 results and candidates")
    pre_expanded_query: Optional[ExpandedQuery] = Field(
        None, description="Skip query expansion and use this expansion instead"
    )

    @field_validator("max_results", mode="before")
    @classmethod
    def _clamp_max_results(cls, value: Any) -> int:
        return int(_clamp(value, 1, 100, 30))

    @field_validator("semantic_weight", mode="before")
    @classmethod
    def _clamp_semantic_weight(cls, value: Any) -> float:
        return _clamp(value, 0.0, 1.0, 0.6)

    @field_validator("candidate_limit", mode="before")
    @classmethod
    def _clamp_candidate_limit(cls, value: Any) -> int:
        return int(_clamp(value, 10, 1000, 500))

    @field_validator("rrf_k", mode="before")
    @classmethod
    def _clamp_rrf_k(cls, value: Any) -> int:
        return int(_clamp(value, 1, 100, 60))

    @field_validator("salient_terms", mode="before")
    @classmethod
    def _clean_salient_terms(cls, value: Any) -> List[str]:
        if not value:
            return []
        return [term for term in value if isinstance(term, str) and term.strip()]

    @model_validator(mode="after")
    def _apply_return_all(self) -> "SearchOptions":
        if self.return_all:
            object.__setattr__(self, "max_results", RETURN_ALL_LIMIT)
            object.__setattr__(self, "candidate_limit", RETURN_ALL_LIMIT)
        return self


class RetrieveResult(VaultSearchBaseModel):
    """Ranked results plus the expansion that produced them."""

    results: List[RankedResult] = Field(default_factory=list)
    query_expansion: ExpandedQuery = Field(default_factory=ExpandedQuery)
