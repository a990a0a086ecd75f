"""Shared test fixtures for the leaderboard engine tests."""

from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Mapping, Optional

import pytest

from prism.data_models.leaderboard import MetricSnapshot
from prism.database.database import Database
from prism.services.leaderboard_cache import LeaderboardCacheService
from prism.services.scoring_engine import ScoringEngine
from prism.utils.scoring import ScoringConfig

BASE_TIME = datetime(2025, 1, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def scoring_config() -> ScoringConfig:
    """Default platform weights and ranges."""
    return ScoringConfig()


@pytest.fixture
def engine(scoring_config: ScoringConfig) -> ScoringEngine:
    """Engine using the mean-of-normalized policy for the global board."""
    return ScoringEngine(scoring_config, aggregation_policy="mean")


@pytest.fixture
def make_snapshot() -> Callable[..., MetricSnapshot]:
    """Factory for MetricSnapshot objects recorded relative to BASE_TIME."""

    def _make(
        user_id: str,
        platform: str,
        metrics: Optional[Mapping[str, Any]] = None,
        metric_score: Optional[float] = None,
        minutes: int = 0,
        username: Optional[str] = None,
        account_id: Optional[str] = None,
    ) -> MetricSnapshot:
        return MetricSnapshot(
            user_id=user_id,
            platform=platform,
            metrics=metrics or {},
            recorded_at=BASE_TIME + timedelta(minutes=minutes),
            metric_score=metric_score,
            username=username or user_id,
            account_id=account_id,
        )

    return _make


@pytest.fixture
def sample_snapshots(make_snapshot) -> list[MetricSnapshot]:
    """Three users across several platforms, raw metrics only."""
    return [
        make_snapshot("alice", "LEETCODE", {"rating": 2100}),
        make_snapshot("alice", "GITHUB", {"contributions": 40, "score": 1200}),
        make_snapshot("bob", "CODEFORCES", {"rating": 1650}),
        make_snapshot("bob", "LEETCODE", {"rating": 1800}),
        make_snapshot("charlie", "ATCODER", {"rating": 1200}),
    ]


@pytest.fixture
def cache_service(engine: ScoringEngine) -> LeaderboardCacheService:
    """In-memory cache without persistence or Redis."""
    return LeaderboardCacheService(engine, use_redis=False)


@pytest.fixture
async def database():
    """Fresh in-memory SQLite database per test."""
    db = Database("sqlite+aiosqlite:///:memory:")
    await db.initialize()
    try:
        yield db
    finally:
        await db.close()
