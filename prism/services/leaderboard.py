"""
Leaderboard service - read facade over the leaderboard cache

Serves paginated pages and per-user ranks from the last published build, warms
the cache from the database after a restart, and triggers on-demand rebuilds
against the database snapshot source.
"""

from datetime import datetime, timedelta, timezone
from typing import List, Optional

from prism.config import Config
from prism.constants import CacheConstants
from prism.data_models.leaderboard import LeaderboardPage, RankedEntry, RebuildResult
from prism.services.leaderboard_cache import LeaderboardCacheService
from prism.utils.leaderboard_exceptions import DatabaseError, InvalidScopeError
from prism.utils.logger import setup_logger
from prism.utils.ranking import RankingUtility

logger = setup_logger(__name__)


class LeaderboardService:
    """Service for leaderboard reads and rebuild triggers."""

    def __init__(self, cache_service: LeaderboardCacheService, database=None,
                 rebuild_timeout: Optional[float] = Config.REBUILD_TIMEOUT_SECONDS):
        self.cache_service = cache_service
        self.database = database
        self.rebuild_timeout = rebuild_timeout
        self._warmed = False

    def known_scopes(self) -> List[str]:
        scopes = {CacheConstants.GLOBAL_SCOPE}
        scopes.update(self.cache_service.engine.known_platforms())
        scopes.update(self.cache_service.scopes())
        return sorted(scopes)

    async def get_page(
        self,
        scope: str = CacheConstants.GLOBAL_SCOPE,
        limit: Optional[int] = None,
        offset: int = 0
    ) -> LeaderboardPage:
        """Get a page of a leaderboard scope from the last published build."""
        if limit is None:
            limit = Config.LEADERBOARD_DEFAULT_LIMIT
        if not isinstance(limit, int) or limit < 1 or limit > Config.LEADERBOARD_MAX_LIMIT:
            raise ValueError(f"limit must be between 1 and {Config.LEADERBOARD_MAX_LIMIT}")
        if not isinstance(offset, int) or offset < 0:
            raise ValueError("offset must be a non-negative integer")

        scope = self._normalize_scope(scope)
        if not RankingUtility.validate_scope(scope, self.known_scopes()):
            raise InvalidScopeError(scope)

        await self.warm_from_database()

        entries, computed_at = self.cache_service.read(scope)
        return LeaderboardPage(
            entries=entries[offset:offset + limit],
            total=len(entries),
            limit=limit,
            offset=offset,
            scope=scope,
            computed_at=computed_at,
            cached=computed_at is not None
        )

    async def get_user_rank(self, user_id: str, scope: str = CacheConstants.GLOBAL_SCOPE) -> Optional[RankedEntry]:
        """Get a specific user's entry, or None when the user is not ranked in the scope."""
        await self.warm_from_database()
        entries, _ = self.cache_service.read(self._normalize_scope(scope))
        return next((entry for entry in entries if entry.user_id == user_id), None)

    def is_stale(self, scope: str = CacheConstants.GLOBAL_SCOPE, max_age: Optional[float] = None) -> bool:
        """
        Whether the published scope is older than max_age seconds.

        Staleness is a caller policy; the cache itself keeps serving old data.
        An unpublished scope is always stale.
        """
        if max_age is None:
            max_age = Config.LEADERBOARD_CACHE_TTL
        _, computed_at = self.cache_service.read(self._normalize_scope(scope))
        if computed_at is None:
            return True
        return datetime.now(timezone.utc) - computed_at > timedelta(seconds=max_age)

    async def refresh(self, timeout: Optional[float] = None) -> RebuildResult:
        """Rebuild every leaderboard from the latest snapshots in the database."""
        if self.database is None:
            raise RuntimeError("LeaderboardService.refresh requires a database")
        logger.info("Starting leaderboard computation...")
        return await self.cache_service.rebuild(
            self.database.get_latest_snapshots,
            timeout=timeout if timeout is not None else self.rebuild_timeout
        )

    async def warm_from_database(self) -> bool:
        """
        Load the persisted leaderboard when nothing has been published yet.

        Succeeds at most once. A failed load is logged and retried on the next read
        so the read path keeps serving (empty) pages.
        """
        if self._warmed or self.database is None:
            return False
        if self.cache_service.state != CacheConstants.STATE_EMPTY:
            self._warmed = True
            return False

        try:
            loaded = await self.cache_service.load_persisted()
        except DatabaseError as e:
            logger.warning(f"Could not warm leaderboard from database, will retry: {e}")
            return False

        self._warmed = True
        return loaded

    @staticmethod
    def _normalize_scope(scope: str) -> str:
        if scope.lower() == CacheConstants.GLOBAL_SCOPE:
            return CacheConstants.GLOBAL_SCOPE
        return scope.upper()
