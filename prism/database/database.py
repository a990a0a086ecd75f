import json
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Mapping, Optional
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.pool import StaticPool
from sqlalchemy import select, delete, func
from sqlalchemy.exc import SQLAlchemyError
from contextlib import asynccontextmanager

from prism.config import Config
from prism.data_models.leaderboard import LeaderboardSnapshot, MetricSnapshot, RankedEntry
from prism.database.models import (
    Base, User, UserAccount, PlatformSnapshot, LeaderboardCache
)
from prism.utils.leaderboard_exceptions import DatabaseError
from prism.utils.logger import setup_logger
from prism.utils.scoring import DEFAULT_SCORING_CONFIG, ScoringConfig, extract_metric_value, normalize_metric


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """SQLite drops tzinfo on the way back; stored values are always UTC."""
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class Database:
    def __init__(self, database_url: Optional[str] = None, scoring_config: ScoringConfig = DEFAULT_SCORING_CONFIG):
        self.logger = setup_logger(__name__)
        self.database_url = database_url or Config.DATABASE_URL
        self.scoring_config = scoring_config
        self.engine = None
        self.async_session = None

    @property
    def session_factory(self):
        return self.async_session

    async def initialize(self):
        """Initialize the database connection and create tables"""
        self.logger.info("Initializing database...")

        # Convert sqlite URL to async if needed
        database_url = self.database_url
        if database_url.startswith('sqlite:///'):
            database_url = database_url.replace('sqlite:///', 'sqlite+aiosqlite:///')

        engine_kwargs = {'echo': Config.DEBUG}
        if ':memory:' in database_url:
            # One shared connection, otherwise every session sees an empty database
            engine_kwargs.update(poolclass=StaticPool, connect_args={'check_same_thread': False})

        self.engine = create_async_engine(database_url, **engine_kwargs)

        self.async_session = async_sessionmaker(
            self.engine,
            class_=AsyncSession,
            expire_on_commit=False
        )

        # Create all tables
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

        self.logger.info("Database initialized successfully")

    @asynccontextmanager
    async def get_session(self):
        """Get a database session"""
        async with self.async_session() as session:
            try:
                yield session
            except Exception:
                await session.rollback()
                raise
            finally:
                await session.close()

    @asynccontextmanager
    async def transaction(self):
        """
        Create a transaction boundary for atomic operations.

        All operations within the context are committed together on success,
        or rolled back together on failure. Exceptions must be allowed to
        propagate out of the context for rollback to occur.
        """
        async with self.async_session() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise
            finally:
                await session.close()

    async def close(self):
        """Close the database connection"""
        if self.engine:
            await self.engine.dispose()
            self.logger.info("Database connection closed")

    # User operations
    async def create_user(self, username: str, email: Optional[str] = None) -> User:
        """Create a new user"""
        async with self.transaction() as session:
            user = User(username=username, email=email)
            session.add(user)
            await session.flush()
            await session.refresh(user)
            return user

    async def get_user_by_username(self, username: str) -> Optional[User]:
        """Get a user by username (case insensitive)"""
        async with self.get_session() as session:
            result = await session.execute(
                select(User).where(func.lower(User.username) == func.lower(username))
            )
            return result.scalar_one_or_none()

    async def link_account(self, user_id: str, platform: str, platform_username: Optional[str] = None) -> UserAccount:
        """Link a platform account to a user"""
        async with self.transaction() as session:
            account = UserAccount(
                user_id=user_id,
                platform=platform.upper(),
                platform_username=platform_username
            )
            session.add(account)
            await session.flush()
            await session.refresh(account)
            return account

    # Snapshot operations
    async def add_snapshot(
        self,
        account_id: str,
        metrics: Mapping[str, Any],
        metric_score: Optional[float] = None,
        recorded_at: Optional[datetime] = None
    ) -> PlatformSnapshot:
        """
        Append a metric snapshot for an account.

        When no metric_score is supplied it is computed from the metrics using the
        platform's normalization range; it stays NULL if nothing is scorable.
        """
        async with self.transaction() as session:
            account = await session.get(UserAccount, account_id)
            if account is None:
                raise ValueError(f"Account {account_id} not found")

            if metric_score is None:
                value = extract_metric_value(metrics, self.scoring_config.metric_fields)
                if value is not None:
                    low, high = self.scoring_config.range_for(account.platform)
                    metric_score = normalize_metric(value, low, high)

            snapshot = PlatformSnapshot(
                user_account_id=account_id,
                metrics=dict(metrics),
                metric_score=metric_score,
                recorded_at=recorded_at or datetime.now(timezone.utc)
            )
            session.add(snapshot)
            await session.flush()
            await session.refresh(snapshot)

            self.logger.info(f"Snapshot created: {account.platform} for user {account.user_id}")
            return snapshot

    async def get_latest_snapshots(self) -> List[MetricSnapshot]:
        """Get the most recent snapshot of every linked account."""
        latest = (
            select(
                PlatformSnapshot.id.label('snapshot_id'),
                func.row_number().over(
                    partition_by=PlatformSnapshot.user_account_id,
                    order_by=(PlatformSnapshot.recorded_at.desc(), PlatformSnapshot.id.desc())
                ).label('position')
            )
            .subquery('latest_snapshots')
        )

        query = (
            select(PlatformSnapshot, UserAccount, User)
            .join(latest, PlatformSnapshot.id == latest.c.snapshot_id)
            .join(UserAccount, PlatformSnapshot.user_account_id == UserAccount.id)
            .join(User, UserAccount.user_id == User.id)
            .where(latest.c.position == 1, User.is_active == True)
            .order_by(User.id, UserAccount.platform)
        )

        try:
            async with self.get_session() as session:
                result = await session.execute(query)
                rows = result.all()
        except SQLAlchemyError as e:
            self.logger.error(f"Database error while loading latest snapshots: {e}")
            raise DatabaseError("snapshot load", str(e))

        return [
            MetricSnapshot(
                user_id=user.id,
                platform=account.platform,
                metrics=dict(snapshot.metrics or {}),
                recorded_at=_as_utc(snapshot.recorded_at),
                metric_score=snapshot.metric_score,
                username=user.username,
                account_id=account.id
            )
            for snapshot, account, user in rows
        ]

    # Leaderboard cache operations
    async def save_leaderboard_cache(self, snapshots: Iterable[LeaderboardSnapshot]):
        """Replace the persisted leaderboards with the given scopes in one transaction."""
        snapshots = list(snapshots)
        try:
            async with self.transaction() as session:
                await session.execute(delete(LeaderboardCache))
                for snapshot in snapshots:
                    session.add(LeaderboardCache(
                        scope=snapshot.scope,
                        entries=json.dumps([entry.to_dict() for entry in snapshot.entries]),
                        total_users=len(snapshot.entries),
                        skipped_users=snapshot.skipped_users,
                        version=snapshot.version,
                        computed_at=snapshot.computed_at
                    ))
        except SQLAlchemyError as e:
            self.logger.error(f"Database error while persisting leaderboards: {e}")
            raise DatabaseError("leaderboard persistence", str(e))
        self.logger.debug(f"Persisted {len(snapshots)} leaderboard scope(s)")

    async def load_leaderboard_cache(self) -> Dict[str, LeaderboardSnapshot]:
        """Load every persisted leaderboard scope."""
        try:
            async with self.get_session() as session:
                result = await session.execute(select(LeaderboardCache))
                rows = result.scalars().all()
        except SQLAlchemyError as e:
            self.logger.error(f"Database error while loading persisted leaderboards: {e}")
            raise DatabaseError("leaderboard load", str(e))

        loaded = {}
        for row in rows:
            try:
                entries = tuple(RankedEntry.from_dict(item) for item in json.loads(row.entries))
            except (json.JSONDecodeError, KeyError, TypeError, ValueError):
                self.logger.warning(f"Invalid cached leaderboard for scope '{row.scope}', skipping")
                continue
            loaded[row.scope] = LeaderboardSnapshot(
                scope=row.scope,
                entries=entries,
                computed_at=_as_utc(row.computed_at),
                version=row.version,
                skipped_users=row.skipped_users or 0
            )
        return loaded
