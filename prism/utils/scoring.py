"""
Scoring utilities for leaderboard computation

Provides metric extraction, normalization onto a common 0-100 scale, platform
weighting and the two aggregation policies used by the engine:

- aggregate_scores: additive sum of weighted per-platform scores
- average_scores: mean of normalized per-platform scores

Both are kept as separate named operations; callers choose one explicitly.
"""

import logging
import math
from dataclasses import dataclass, field
from numbers import Real
from types import MappingProxyType
from typing import Any, Iterable, Mapping, Optional, Sequence, Tuple

from prism.constants import ScoringConstants

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ScoringConfig:
    """
    Immutable weighting and normalization configuration.

    Built once at process start and passed to the engine. Replacing any value
    means building a new config (and a new engine); nothing mutates it in place.
    """
    weights: Mapping[str, float] = field(
        default_factory=lambda: dict(ScoringConstants.PLATFORM_WEIGHTS)
    )
    ranges: Mapping[str, Tuple[float, float]] = field(
        default_factory=lambda: {
            platform: (0.0, float(max_value))
            for platform, max_value in ScoringConstants.PLATFORM_MAX_VALUES.items()
        }
    )
    default_weight: float = ScoringConstants.DEFAULT_WEIGHT
    default_range: Tuple[float, float] = (0.0, float(ScoringConstants.DEFAULT_PLATFORM_MAX))
    metric_fields: Tuple[str, ...] = ScoringConstants.METRIC_FIELD_PRIORITY

    def __post_init__(self):
        for platform, weight in self.weights.items():
            if weight < 0:
                raise ValueError(f"Weight for platform {platform} must be >= 0, got {weight}")
        if self.default_weight < 0:
            raise ValueError(f"default_weight must be >= 0, got {self.default_weight}")
        # Freeze the tables so a caller holding the original dicts cannot change them
        object.__setattr__(self, 'weights', MappingProxyType(dict(self.weights)))
        object.__setattr__(
            self, 'ranges',
            MappingProxyType({p: (float(lo), float(hi)) for p, (lo, hi) in self.ranges.items()})
        )
        object.__setattr__(self, 'metric_fields', tuple(self.metric_fields))
        object.__setattr__(self, '_reported_gaps', set())

    def weight_for(self, platform: str) -> float:
        """Get the weight for a platform, falling back to default_weight for unlisted ones."""
        weight = self.weights.get(platform)
        if weight is None:
            self._report_gap(platform, 'weight')
            return self.default_weight
        return weight

    def range_for(self, platform: str) -> Tuple[float, float]:
        """Get the [min, max] normalization range for a platform."""
        value_range = self.ranges.get(platform)
        if value_range is None:
            self._report_gap(platform, 'range')
            return self.default_range
        return value_range

    def _report_gap(self, platform: str, kind: str):
        key = (platform, kind)
        if key in self._reported_gaps:
            return
        self._reported_gaps.add(key)
        logger.warning(f"No {kind} configured for platform '{platform}', using default")


DEFAULT_SCORING_CONFIG = ScoringConfig()


def _is_number(value: Any) -> bool:
    return isinstance(value, Real) and not isinstance(value, bool)


def extract_metric_value(
    metrics: Any,
    fields: Sequence[str] = ScoringConstants.METRIC_FIELD_PRIORITY
) -> Optional[float]:
    """
    Extract the authoritative metric value from a snapshot's metrics mapping.

    Fields are probed in priority order (score, rating, problemsSolved by
    default); the first one holding a number wins. A matched field holding a
    non-numeric value counts as absent and probing continues.

    Example:
        extract_metric_value({'rating': 2000, 'problemsSolved': 450}) = 2000.0
        extract_metric_value({'unknown': 123}) = None
    """
    if not isinstance(metrics, Mapping):
        return None

    for name in fields:
        value = metrics.get(name)
        if _is_number(value):
            return float(value)
    return None


def normalize_metric(value: float, min_value: float, max_value: float) -> float:
    """
    Normalize a metric value to the 0-100 scale.

    A degenerate range (max == min) normalizes to 0 instead of dividing by zero.

    Example:
        normalize_metric(1500, 0, 3000) = 50.0
        normalize_metric(150, 0, 100) = 100.0
    """
    if max_value == min_value:
        return 0.0
    if isinstance(value, float) and math.isnan(value):
        return 0.0

    normalized = (value - min_value) / (max_value - min_value) * 100
    if math.isnan(normalized):
        return 0.0
    # Clamp between 0-100
    return max(ScoringConstants.NORMALIZED_MIN, min(ScoringConstants.NORMALIZED_MAX, normalized))


def calculate_weighted_score(
    platform: str,
    normalized_score: float,
    config: ScoringConfig = DEFAULT_SCORING_CONFIG
) -> float:
    """Apply the platform's weight to an already-normalized score."""
    return normalized_score * config.weight_for(platform)


def aggregate_scores(
    scores: Iterable[Tuple[str, float]],
    config: ScoringConfig = DEFAULT_SCORING_CONFIG
) -> float:
    """
    Sum weighted scores across platforms.

    Every connection contributes, so breadth of activity is rewarded. An empty
    input aggregates to 0.

    Example:
        aggregate_scores([('LEETCODE', 50), ('CODEFORCES', 50)]) = 110.0
    """
    return sum(
        (calculate_weighted_score(platform, score, config) for platform, score in scores),
        0.0
    )


def average_scores(scores: Iterable[float]) -> float:
    """Mean of normalized per-platform scores; 0 for an empty input."""
    values = list(scores)
    if not values:
        return 0.0
    return sum(values) / len(values)
