"""
Leaderboard data models for the scoring engine.

Provides immutable data transfer objects passed between the extractor, the
aggregator, the ranker and the leaderboard cache.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional, Tuple


@dataclass(frozen=True)
class MetricSnapshot:
    """One timestamped capture of a user's metrics on one platform."""
    user_id: str
    platform: str
    metrics: Mapping[str, Any]
    recorded_at: datetime
    metric_score: Optional[float] = None
    username: Optional[str] = None
    account_id: Optional[str] = None


@dataclass(frozen=True)
class PlatformScore:
    """A user's normalized score on a single platform."""
    platform: str
    score: float


@dataclass(frozen=True)
class UserScore:
    """Composite score for one user, built fresh for each leaderboard build."""
    user_id: str
    score: float
    username: Optional[str] = None
    platform_count: int = 0


@dataclass(frozen=True)
class RankedEntry:
    """Single leaderboard row."""
    user_id: str
    score: float
    rank: int
    username: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'userId': self.user_id,
            'username': self.username,
            'score': self.score,
            'rank': self.rank,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "RankedEntry":
        return cls(
            user_id=str(data['userId']),
            score=float(data['score']),
            rank=int(data['rank']),
            username=data.get('username'),
        )


@dataclass(frozen=True)
class LeaderboardSnapshot:
    """A fully built, published leaderboard for one scope."""
    scope: str
    entries: Tuple[RankedEntry, ...]
    computed_at: datetime
    version: int
    skipped_users: int = 0


@dataclass(frozen=True)
class RebuildResult:
    """Outcome of one leaderboard rebuild."""
    entries: Tuple[RankedEntry, ...]
    computed_at: datetime
    version: int
    skipped_users: int = 0
    skipped_user_ids: Tuple[str, ...] = ()
    scopes: Tuple[str, ...] = ()
    published: bool = True


@dataclass(frozen=True)
class LeaderboardPage:
    """Paginated leaderboard data."""
    entries: List[RankedEntry]
    total: int
    limit: int
    offset: int
    scope: str
    computed_at: Optional[datetime] = None
    cached: bool = True
