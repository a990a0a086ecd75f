"""
Scoring engine for leaderboard builds

Turns a collection of metric snapshots into ranked leaderboards:

1. Keeps the latest snapshot per (user, account link)
2. Scores each snapshot on the 0-100 scale (precomputed metric_score when the
   collector supplied one, otherwise extracted and normalized)
3. Combines each user's platform scores with the configured aggregation strategy
4. Ranks the global scope and one scope per platform

The engine is pure: it performs no I/O and holds only immutable configuration,
so one instance can be shared by any number of concurrent builds.
"""

import logging
import math
from collections import defaultdict
from dataclasses import dataclass
from datetime import datetime, timezone
from numbers import Real
from typing import Any, Dict, Iterable, List, Mapping, Tuple

from prism.constants import CacheConstants
from prism.data_models.leaderboard import MetricSnapshot, PlatformScore, RankedEntry, UserScore
from prism.utils.leaderboard_exceptions import UserScoringError
from prism.utils.ranking import RankingUtility
from prism.utils.scoring import ScoringConfig, extract_metric_value, normalize_metric
from prism.utils.scoring_strategies import AggregationStrategy, AggregationStrategyFactory

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ComputedLeaderboards:
    """Ranked entries for every scope produced by one build."""
    scopes: Dict[str, List[RankedEntry]]
    skipped_user_ids: Tuple[str, ...]

    @property
    def skipped_users(self) -> int:
        return len(self.skipped_user_ids)


class ScoringEngine:
    """Extract -> normalize -> aggregate -> rank, for all users at once."""

    def __init__(self, config: ScoringConfig, aggregation_policy: str = "mean"):
        self.config = config
        self.aggregation_policy = aggregation_policy.lower()
        self.strategy: AggregationStrategy = AggregationStrategyFactory.create_strategy(
            self.aggregation_policy, config
        )

    def known_platforms(self) -> Tuple[str, ...]:
        return tuple(sorted(set(self.config.weights) | set(self.config.ranges)))

    def score_snapshot(self, snapshot: MetricSnapshot) -> float:
        """
        Score one snapshot on the 0-100 scale.

        A snapshot with nothing scorable contributes 0 rather than being an error.
        """
        if snapshot.metric_score is not None:
            if not isinstance(snapshot.metric_score, Real) or isinstance(snapshot.metric_score, bool):
                raise UserScoringError(snapshot.user_id, f"non-numeric metric_score {snapshot.metric_score!r}")
            if not math.isfinite(snapshot.metric_score):
                raise UserScoringError(snapshot.user_id, f"non-finite metric_score {snapshot.metric_score!r}")
            return float(snapshot.metric_score)

        if not isinstance(snapshot.metrics, Mapping):
            raise UserScoringError(snapshot.user_id, f"metrics for {snapshot.platform} is not a mapping")

        value = extract_metric_value(snapshot.metrics, self.config.metric_fields)
        if value is None:
            logger.debug(f"No scorable metric for user {snapshot.user_id} on {snapshot.platform}")
            return 0.0

        low, high = self.config.range_for(snapshot.platform)
        return normalize_metric(value, low, high)

    def score_user(self, user_id: str, snapshots: Iterable[MetricSnapshot]) -> Tuple[UserScore, List[PlatformScore]]:
        """Score one user from that user's own snapshots only."""
        snapshots = list(snapshots)
        platform_scores = [
            PlatformScore(platform=snapshot.platform, score=self.score_snapshot(snapshot))
            for snapshot in snapshots
        ]
        username = next((s.username for s in snapshots if s.username), None)
        composite = self.strategy.combine(platform_scores)
        return UserScore(
            user_id=user_id,
            score=composite,
            username=username,
            platform_count=len(platform_scores)
        ), platform_scores

    def compute(self, snapshots: Iterable[Any]) -> ComputedLeaderboards:
        """
        Build ranked leaderboards for the global scope and every platform scope.

        One user's malformed data never aborts the build: that user is left out
        of every scope and reported in skipped_user_ids.
        """
        grouped, skipped = self._group_latest(snapshots)

        user_scores: List[UserScore] = []
        per_platform: Dict[str, Dict[str, UserScore]] = defaultdict(dict)

        for user_id, user_snapshots in grouped.items():
            try:
                user_score, platform_scores = self.score_user(user_id, user_snapshots)
            except Exception as e:
                logger.warning(f"Skipping user {user_id} in leaderboard build: {e}")
                skipped.add(user_id)
                continue

            user_scores.append(user_score)
            for platform_score in platform_scores:
                current = per_platform[platform_score.platform].get(user_id)
                # Several links on one platform: the platform board shows the best one
                if current is None or platform_score.score > current.score:
                    per_platform[platform_score.platform][user_id] = UserScore(
                        user_id=user_id,
                        score=platform_score.score,
                        username=user_score.username,
                        platform_count=1
                    )

        scopes = {CacheConstants.GLOBAL_SCOPE: RankingUtility.rank_users(user_scores)}
        for platform in sorted(per_platform):
            scopes[platform] = RankingUtility.rank_users(per_platform[platform].values())

        logger.info(
            f"Computed leaderboards: {len(user_scores)} users, "
            f"{len(per_platform)} platforms, {len(skipped)} skipped ({self.strategy.get_strategy_name()})"
        )
        return ComputedLeaderboards(scopes=scopes, skipped_user_ids=tuple(sorted(skipped)))

    def _group_latest(self, snapshots: Iterable[Any]) -> Tuple[Dict[str, List[MetricSnapshot]], set]:
        """Keep the newest snapshot per (user, account link), grouped by user."""
        latest: Dict[Tuple[str, str], MetricSnapshot] = {}
        skipped = set()

        for raw in snapshots:
            try:
                snapshot = self._coerce_snapshot(raw)
            except UserScoringError as e:
                logger.warning(str(e))
                skipped.add(e.user_id)
                continue
            except (KeyError, TypeError, ValueError) as e:
                logger.warning(f"Ignoring snapshot without a usable user id: {e}")
                continue

            link = (snapshot.user_id, snapshot.account_id or snapshot.platform)
            current = latest.get(link)
            if current is None or self._is_newer(snapshot, current):
                latest[link] = snapshot

        grouped: Dict[str, List[MetricSnapshot]] = defaultdict(list)
        for (user_id, _), snapshot in latest.items():
            if user_id in skipped:
                continue
            grouped[user_id].append(snapshot)
        return dict(grouped), skipped

    @staticmethod
    def _is_newer(candidate: MetricSnapshot, current: MetricSnapshot) -> bool:
        return ScoringEngine._sort_key(candidate.recorded_at) > ScoringEngine._sort_key(current.recorded_at)

    @staticmethod
    def _sort_key(value: datetime) -> datetime:
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value

    @staticmethod
    def _coerce_snapshot(raw: Any) -> MetricSnapshot:
        """Accept MetricSnapshot objects or collector mappings (camelCase or snake_case keys)."""
        if isinstance(raw, MetricSnapshot):
            snapshot = raw
        elif isinstance(raw, Mapping):
            user_id = raw.get('user_id', raw.get('userId'))
            if user_id is None:
                raise KeyError('user_id')
            user_id = str(user_id)
            recorded_at = raw.get('recorded_at', raw.get('recordedAt'))
            if isinstance(recorded_at, str):
                try:
                    recorded_at = datetime.fromisoformat(recorded_at)
                except ValueError:
                    raise UserScoringError(user_id, f"invalid recorded_at {recorded_at!r}")
            platform = raw.get('platform')
            if not platform:
                raise UserScoringError(user_id, "snapshot has no platform")
            snapshot = MetricSnapshot(
                user_id=user_id,
                platform=str(platform).upper(),
                metrics=raw.get('metrics') or {},
                recorded_at=recorded_at,
                metric_score=raw.get('metric_score', raw.get('metricScore')),
                username=raw.get('username'),
                account_id=raw.get('account_id', raw.get('userAccountId'))
            )
        else:
            raise TypeError(f"unsupported snapshot type {type(raw).__name__}")

        if not isinstance(snapshot.recorded_at, datetime):
            raise UserScoringError(snapshot.user_id, f"missing or invalid recorded_at on {snapshot.platform}")
        return snapshot
