"""
Score normalization into a bounded display range.
"""

import math
from enum import Enum
from typing import List

from vaultsearch.models.search import RankedResult


class NormalizationMethod(str, Enum):
    MINMAX = "minmax"
    ZSCORE_TANH = "zscore-tanh"
    PERCENTILE = "percentile"


class ScoreNormalizer:
    """
    Maps scores into ``[clip_min, clip_max]`` so no result reads as exactly 0 or 1.

    All-equal inputs map to 0.5. Order is preserved; only scores change.
    """

    def __init__(
        self,
        method: NormalizationMethod = NormalizationMethod.MINMAX,
        clip_min: float = 0.02,
        clip_max: float = 0.98,
        tanh_scale: float = 2.5,
    ):
        self.method = NormalizationMethod(method)
        self.clip_min = clip_min
        self.clip_max = clip_max
        self.tanh_scale = tanh_scale

    def normalize(self, results: List[RankedResult]) -> List[RankedResult]:
        if not results:
            return []
        if self.method == NormalizationMethod.ZSCORE_TANH:
            scores = self._zscore_tanh([r.score for r in results])
        elif self.method == NormalizationMethod.PERCENTILE:
            scores = self._percentile([r.score for r in results])
        else:
            scores = self._minmax([r.score for r in results])
        return [self._with_score(result, score) for result, score in zip(results, scores)]

    def _minmax(self, scores: List[float]) -> List[float]:
        low, high = min(scores), max(scores)
        if high == low:
            return [0.5] * len(scores)
        span = self.clip_max - self.clip_min
        return [self.clip_min + (s - low) / (high - low) * span for s in scores]

    def _zscore_tanh(self, scores: List[float]) -> List[float]:
        mean = sum(scores) / len(scores)
        std = math.sqrt(sum((s - mean) ** 2 for s in scores) / len(scores))
        if std == 0:
            return [0.5] * len(scores)
        return [
            min(self.clip_max, max(self.clip_min, 0.5 + 0.5 * math.tanh((s - mean) / std / self.tanh_scale)))
            for s in scores
        ]

    def _percentile(self, scores: List[float]) -> List[float]:
        if len(scores) == 1 or min(scores) == max(scores):
            return [0.5] * len(scores)
        order = sorted(range(len(scores)), key=lambda i: scores[i])
        span = self.clip_max - self.clip_min
        normalized = [0.0] * len(scores)
        for position, index in enumerate(order):
            normalized[index] = self.clip_min + position / (len(scores) - 1) * span
        return normalized

    @staticmethod
    def _with_score(result: RankedResult, score: float) -> RankedResult:
        explanation = dict(result.explanation) if result.explanation else None
        if explanation is not None:
            explanation["pre_normalization_score"] = result.score
            explanation["final_score"] = score
        return result.model_copy(update={"score": score, "explanation": explanation})
