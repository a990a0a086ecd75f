"""
Aggregation Strategy Pattern for Composite Score Calculations

This module implements the Strategy pattern for combining one user's
per-platform scores into a single composite score, so the leaderboard build
can select a policy without the engine knowing which formula is in use.

Two policies exist and are deliberately kept apart:
- WeightedSumStrategy: sum of weighted normalized scores (aggregate_scores)
- MeanNormalizedStrategy: unweighted mean of normalized scores (average_scores)
"""

from abc import ABC, abstractmethod
from typing import List, Sequence
import logging

from prism.data_models.leaderboard import PlatformScore
from prism.utils.scoring import ScoringConfig, aggregate_scores, average_scores

logger = logging.getLogger(__name__)


class AggregationStrategy(ABC):
    """
    Abstract base class for aggregation strategies.

    Each strategy turns the normalized per-platform scores of a single user
    into that user's composite score.
    """

    @abstractmethod
    def combine(self, scores: Sequence[PlatformScore]) -> float:
        """
        Combine per-platform scores into a composite score.

        Args:
            scores: The user's normalized per-platform scores (0-100 each)

        Returns:
            Composite score; 0.0 when scores is empty
        """
        pass

    @abstractmethod
    def get_strategy_name(self) -> str:
        """Get human-readable name of this strategy"""
        pass


class WeightedSumStrategy(AggregationStrategy):
    """
    Additive weighted aggregation.

    Each platform score is multiplied by its platform weight and the results
    are summed, rewarding users with more connected platforms.
    """

    def __init__(self, config: ScoringConfig):
        self.config = config

    def combine(self, scores: Sequence[PlatformScore]) -> float:
        return aggregate_scores(((s.platform, s.score) for s in scores), self.config)

    def get_strategy_name(self) -> str:
        return "Weighted Sum"


class MeanNormalizedStrategy(AggregationStrategy):
    """
    Mean of normalized platform scores.

    Weights are not applied; a user is judged by average standing across the
    platforms they have connected.
    """

    def combine(self, scores: Sequence[PlatformScore]) -> float:
        return average_scores(s.score for s in scores)

    def get_strategy_name(self) -> str:
        return "Mean Normalized"


class AggregationStrategyFactory:
    """Factory for creating aggregation strategies from a policy name"""

    @staticmethod
    def create_strategy(policy: str, config: ScoringConfig) -> AggregationStrategy:
        """
        Create the aggregation strategy for a policy.

        Args:
            policy: "weighted_sum" or "mean"
            config: Scoring configuration supplying platform weights

        Returns:
            Configured AggregationStrategy instance
        """
        policy = policy.lower()

        if policy == "weighted_sum":
            return WeightedSumStrategy(config)
        elif policy == "mean":
            return MeanNormalizedStrategy()
        else:
            raise ValueError(f"Unknown aggregation policy: {policy}")

    @staticmethod
    def get_available_policies() -> List[str]:
        """Get list of available policy names"""
        return ["weighted_sum", "mean"]
