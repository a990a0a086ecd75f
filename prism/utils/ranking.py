"""
Shared ranking utilities for the leaderboard engine

Provides the competition ranking used by every leaderboard scope so the global
and per-platform boards tie-break the same way.
"""

import math
from typing import Any, Iterable, List, Mapping, Union

from prism.constants import CacheConstants
from prism.data_models.leaderboard import RankedEntry, UserScore


RankableUser = Union[UserScore, Mapping[str, Any]]


class RankingUtility:
    """Shared ranking logic for consistent leaderboard ordering."""

    @staticmethod
    def rank_users(users: Iterable[RankableUser]) -> List[RankedEntry]:
        """
        Rank users by score using standard competition ranking ("1224").

        Users are sorted by score descending. Each user's rank is its 1-based
        position in the sorted order, except that a user whose score equals the
        previous user's score inherits that user's rank. Four users tied for first
        are therefore followed by rank 5.

        The order among equal scores follows input order (the sort is stable), so
        repeated calls on the same input produce identical output.

        Args:
            users: UserScore objects, or mappings with 'user_id' (or 'id') and 'score'

        Returns:
            A new list of RankedEntry objects, one per input user

        Raises:
            ValueError: a user has no id or a non-finite score
        """
        normalized = [RankingUtility._as_user_score(user) for user in users]
        ordered = sorted(normalized, key=lambda u: u.score, reverse=True)

        ranked: List[RankedEntry] = []
        for index, user in enumerate(ordered):
            if ranked and user.score == ranked[-1].score:
                rank = ranked[-1].rank
            else:
                rank = index + 1
            ranked.append(RankedEntry(
                user_id=user.user_id,
                score=user.score,
                rank=rank,
                username=user.username
            ))
        return ranked

    @staticmethod
    def _as_user_score(user: RankableUser) -> UserScore:
        if not isinstance(user, UserScore):
            user_id = user.get('user_id', user.get('id'))
            if user_id is None:
                raise ValueError(f"Cannot rank user without an id: {user!r}")
            user = UserScore(
                user_id=str(user_id),
                score=float(user['score']),
                username=user.get('username')
            )
        # NaN compares false both ways and would break the descending order
        if not math.isfinite(user.score):
            raise ValueError(f"Cannot rank user {user.user_id} with non-finite score {user.score!r}")
        return user

    @staticmethod
    def validate_scope(scope: str, known_platforms: Iterable[str]) -> bool:
        """Validate a leaderboard scope against the global scope and known platforms."""
        return scope == CacheConstants.GLOBAL_SCOPE or scope in set(known_platforms)
