"""
Leaderboard cache service

Holds the last fully built leaderboard for every scope and replaces it as a
whole on each rebuild.

Lifecycle: EMPTY -> COMPUTING -> READY -> COMPUTING -> READY ...

- Readers get the currently published mapping of immutable LeaderboardSnapshot
  objects. Publishing assigns a new mapping, so a reader that already holds the
  old one finishes against it and never sees a half-built board.
- Rebuilds run one at a time behind an asyncio.Lock. Each trigger takes a
  version number when it is issued; a result older than what is already
  published is discarded, so the latest trigger wins.
- A rebuild that fails as a whole raises RebuildError and leaves the published
  boards and their timestamp untouched. Persistence runs before the in-memory
  swap, so the database and memory never disagree about the last good build.
- Publishing to Redis happens after the swap while the lock is still held, so
  overlapping rebuilds reach Redis in version order. It is best effort.
"""

import asyncio
import inspect
import json
from datetime import datetime, timedelta, timezone
from functools import partial
from typing import Any, Callable, Iterable, List, Mapping, Optional, Tuple, Union

from prism.config import Config
from prism.constants import CacheConstants
from prism.data_models.leaderboard import LeaderboardSnapshot, RankedEntry, RebuildResult
from prism.services.base import BaseService
from prism.services.scoring_engine import ScoringEngine
from prism.utils.leaderboard_exceptions import RebuildError
from prism.utils.logger import setup_logger
from prism.utils.redis_utils import RedisUtils

logger = setup_logger(__name__)

SnapshotSource = Union[Iterable[Any], Callable[[], Any]]


class LeaderboardCacheService(BaseService):
    """Atomic, versioned cache of computed leaderboards."""

    def __init__(
        self,
        engine: ScoringEngine,
        database=None,
        redis_client=None,
        use_redis: bool = True,
        cache_ttl: int = Config.LEADERBOARD_CACHE_TTL,
        on_rebuild_start=None,
        on_rebuild_complete=None
    ):
        super().__init__(database.session_factory if database is not None else None)
        self.engine = engine
        self.database = database
        self.cache_ttl = cache_ttl
        self.redis_client = redis_client
        self.redis_enabled = use_redis
        # Optional monitoring callbacks for rebuild observability
        self.on_rebuild_start = on_rebuild_start
        self.on_rebuild_complete = on_rebuild_complete

        self._published: Mapping[str, LeaderboardSnapshot] = {}
        self._state = CacheConstants.STATE_EMPTY
        self._rebuild_lock = asyncio.Lock()
        self._issued_version = 0
        self._published_version = 0

    @property
    def state(self) -> str:
        return self._state

    @property
    def version(self) -> int:
        return self._published_version

    def read(self, scope: str = CacheConstants.GLOBAL_SCOPE) -> Tuple[List[RankedEntry], Optional[datetime]]:
        """
        Return the last fully built leaderboard for a scope and its computed-at time.

        Never waits for a rebuild in progress. Returns ([], None) when nothing has
        been published for the scope yet.
        """
        snapshot = self._published.get(scope)
        if snapshot is None:
            return [], None
        return list(snapshot.entries), snapshot.computed_at

    def get_snapshot(self, scope: str = CacheConstants.GLOBAL_SCOPE) -> Optional[LeaderboardSnapshot]:
        return self._published.get(scope)

    def scopes(self) -> List[str]:
        return sorted(self._published)

    async def rebuild(self, source: SnapshotSource, timeout: Optional[float] = None) -> RebuildResult:
        """
        Recompute every leaderboard scope from a snapshot source and publish the result.

        Args:
            source: An iterable of snapshots, or a sync/async callable returning one
            timeout: Upper bound in seconds for each boundary call (an async source,
                persistence, the Redis mirror); None waits indefinitely

        Returns:
            RebuildResult for the global scope, including the skipped-user count

        Raises:
            RebuildError: the source failed or timed out, or persistence failed;
                the previously published leaderboards are still served
        """
        self._issued_version += 1
        version = self._issued_version

        async with self._rebuild_lock:
            if version < self._published_version:
                logger.info(f"Leaderboard rebuild v{version} superseded before it started")
                return self._superseded_result(version)

            self._state = CacheConstants.STATE_COMPUTING
            self._notify(self.on_rebuild_start, version)
            published = False
            started = asyncio.get_running_loop().time()
            try:
                try:
                    snapshots = await self._fetch_snapshots(source, timeout)
                    computed = self.engine.compute(snapshots)
                except RebuildError:
                    raise
                except asyncio.TimeoutError as e:
                    raise RebuildError(f"snapshot source timed out after {timeout}s") from e
                except Exception as e:
                    raise RebuildError(str(e) or type(e).__name__) from e

                computed_at = self._next_timestamp()
                boards = {
                    scope: LeaderboardSnapshot(
                        scope=scope,
                        entries=tuple(entries),
                        computed_at=computed_at,
                        version=version,
                        skipped_users=computed.skipped_users
                    )
                    for scope, entries in computed.scopes.items()
                }

                if self.database is not None:
                    try:
                        await asyncio.wait_for(
                            self.execute_with_retry(
                                partial(self.database.save_leaderboard_cache, boards.values())
                            ),
                            timeout
                        )
                    except asyncio.TimeoutError as e:
                        raise RebuildError(f"persisting leaderboard timed out after {timeout}s") from e
                    except Exception as e:
                        raise RebuildError(f"could not persist leaderboard: {e}") from e

                # Publish by swapping the reference; readers holding the old mapping are unaffected
                self._published = boards
                self._published_version = version
                self._state = CacheConstants.STATE_READY
                published = True
            except RebuildError as e:
                logger.error(f"Leaderboard rebuild v{version} failed, keeping previous results: {e}", exc_info=True)
                raise
            finally:
                if not published:
                    self._state = CacheConstants.STATE_READY if self._published else CacheConstants.STATE_EMPTY
                duration = asyncio.get_running_loop().time() - started
                self._notify(self.on_rebuild_complete, version, duration, published)

            global_board = boards[CacheConstants.GLOBAL_SCOPE]
            logger.info(
                f"Leaderboard v{version} published: {len(global_board.entries)} users, "
                f"{len(boards) - 1} platform scopes, {computed.skipped_users} skipped"
            )

            # Still under the lock, so mirrors of overlapping rebuilds land in version order
            await self._mirror_to_redis(boards, timeout)

        return RebuildResult(
            entries=global_board.entries,
            computed_at=computed_at,
            version=version,
            skipped_users=computed.skipped_users,
            skipped_user_ids=computed.skipped_user_ids,
            scopes=tuple(sorted(boards))
        )

    async def load_persisted(self) -> bool:
        """
        Publish the leaderboards stored in the database, if nothing newer is in memory.

        Returns:
            True when persisted leaderboards were loaded
        """
        if self.database is None:
            return False

        stored = await self.database.load_leaderboard_cache()
        if not stored:
            logger.info("No persisted leaderboard found")
            return False

        async with self._rebuild_lock:
            stored_version = max(board.version for board in stored.values())
            if self._published and stored_version <= self._published_version:
                return False

            self._published = dict(stored)
            self._published_version = stored_version
            self._issued_version = max(self._issued_version, stored_version)
            self._state = CacheConstants.STATE_READY

        logger.info(f"Loaded persisted leaderboard v{stored_version} ({len(stored)} scopes)")
        return True

    async def _fetch_snapshots(self, source: SnapshotSource, timeout: Optional[float]) -> List[Any]:
        if source is None:
            raise RebuildError("no snapshot source supplied")

        result = source() if callable(source) else source
        if inspect.isawaitable(result):
            result = await asyncio.wait_for(result, timeout)

        if result is None or isinstance(result, (str, bytes, Mapping)) or not isinstance(result, Iterable):
            raise RebuildError(f"snapshot source returned {type(result).__name__}, expected a collection")
        return list(result)

    def _next_timestamp(self) -> datetime:
        """Current UTC time, strictly later than the published computed-at."""
        now = datetime.now(timezone.utc)
        current = self._published.get(CacheConstants.GLOBAL_SCOPE)
        if current is not None and now <= current.computed_at:
            now = current.computed_at + timedelta(microseconds=1)
        return now

    def _superseded_result(self, version: int) -> RebuildResult:
        current = self._published.get(CacheConstants.GLOBAL_SCOPE)
        return RebuildResult(
            entries=current.entries if current else (),
            computed_at=current.computed_at if current else datetime.now(timezone.utc),
            version=version,
            scopes=tuple(sorted(self._published)),
            published=False
        )

    def _notify(self, callback, *args):
        if callback is None:
            return
        try:
            callback(*args)
        except Exception as e:
            logger.warning(f"Monitoring callback {getattr(callback, '__name__', callback)} failed: {e}")

    async def _get_redis_client(self):
        """Get Redis client for the leaderboard mirror. Returns None if Redis is unavailable."""
        if not self.redis_enabled:
            return None

        if self.redis_client is None:
            self.redis_client = await RedisUtils.create_redis_client()
            if self.redis_client is None:
                logger.warning("Redis unavailable. Leaderboards will be served from memory and database only.")
                self.redis_enabled = False
        return self.redis_client

    async def _mirror_to_redis(self, boards: Mapping[str, LeaderboardSnapshot], timeout: Optional[float] = None):
        try:
            written = await asyncio.wait_for(self._write_boards(boards), timeout)
            if written:
                logger.debug(f"Mirrored {len(boards)} leaderboard scope(s) to Redis")
        except asyncio.TimeoutError:
            logger.warning(f"Mirroring leaderboard to Redis timed out after {timeout}s")
        except Exception as e:
            logger.warning(f"Failed to mirror leaderboard to Redis: {e}")

    async def _write_boards(self, boards: Mapping[str, LeaderboardSnapshot]) -> bool:
        redis_client = await self._get_redis_client()
        if redis_client is None:
            return False

        for scope, board in boards.items():
            payload = json.dumps({
                'version': board.version,
                'computedAt': board.computed_at.isoformat(),
                'entries': [entry.to_dict() for entry in board.entries],
            })
            await redis_client.setex(RedisUtils.leaderboard_key(scope), self.cache_ttl, payload)
        return True

    async def close(self):
        """Clean up Redis connection."""
        if self.redis_client is not None:
            await self.redis_client.aclose()
            self.redis_client = None
