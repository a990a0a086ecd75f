import argparse
import asyncio
import sys
from typing import List, Optional

from prism.config import Config
from prism.database.database import Database
from prism.services.configuration import ConfigurationService
from prism.services.leaderboard import LeaderboardService
from prism.services.leaderboard_cache import LeaderboardCacheService
from prism.services.leaderboard_worker import LeaderboardWorker
from prism.services.scoring_engine import ScoringEngine
from prism.utils.leaderboard_exceptions import RebuildError
from prism.utils.logger import setup_logger


class PrismEngine:
    """Wires the database, configuration, scoring engine, cache and worker together."""

    def __init__(self, database_url: Optional[str] = None):
        self.database_url = database_url
        self.db: Optional[Database] = None
        self.config_service: Optional[ConfigurationService] = None
        self.scoring_engine: Optional[ScoringEngine] = None
        self.cache_service: Optional[LeaderboardCacheService] = None
        self.leaderboard_service: Optional[LeaderboardService] = None
        self.worker: Optional[LeaderboardWorker] = None
        self.logger = setup_logger(__name__)

    async def setup(self):
        """Initialize every component; configuration is read once here."""
        self.logger.info("Setting up Prism leaderboard engine...")
        Config.validate()

        self.db = Database(self.database_url)
        await self.db.initialize()

        self.config_service = ConfigurationService(self.db.session_factory)
        await self.config_service.load_all()
        scoring_config = self.config_service.build_scoring_config()
        policy = self.config_service.get_aggregation_policy(Config.AGGREGATION_POLICY)

        # Snapshot scores computed on insert must use the same ranges as the engine
        self.db.scoring_config = scoring_config

        self.scoring_engine = ScoringEngine(scoring_config, aggregation_policy=policy)
        self.cache_service = LeaderboardCacheService(self.scoring_engine, database=self.db)
        await self.cache_service.load_persisted()

        self.leaderboard_service = LeaderboardService(self.cache_service, database=self.db)
        self.worker = LeaderboardWorker(self.leaderboard_service)

        self.logger.info(f"Prism engine setup complete (aggregation policy: {policy})")

    async def close(self):
        if self.worker:
            await self.worker.stop()
        if self.cache_service:
            await self.cache_service.close()
        if self.db:
            await self.db.close()


async def run_compute(database_url: Optional[str] = None) -> int:
    engine = PrismEngine(database_url)
    try:
        await engine.setup()
        try:
            result = await engine.leaderboard_service.refresh()
        except RebuildError as e:
            print(f"Leaderboard computation failed: {e}", file=sys.stderr)
            return 1

        print(f"Leaderboard v{result.version} computed at {result.computed_at.isoformat()}")
        print(f"Users ranked: {len(result.entries)}, skipped: {result.skipped_users}")
        print(f"Scopes: {', '.join(result.scopes)}")
        for entry in result.entries[:10]:
            print(f"  #{entry.rank:<4} {entry.username or entry.user_id:<24} {entry.score:8.2f}")
        return 0
    finally:
        await engine.close()


async def run_worker(database_url: Optional[str] = None) -> int:
    engine = PrismEngine(database_url)
    try:
        await engine.setup()
        engine.worker.enabled = True
        engine.worker.start()
        # Runs until cancelled (Ctrl+C)
        await asyncio.Event().wait()
    finally:
        await engine.close()
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog='prism', description='Prism leaderboard engine')
    parser.add_argument('--database-url', default=None, help='Override DATABASE_URL')
    subparsers = parser.add_subparsers(dest='command', required=True)
    subparsers.add_parser('compute', help='Rebuild all leaderboards once and print a summary')
    subparsers.add_parser('worker', help='Rebuild leaderboards periodically until interrupted')
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    try:
        if args.command == 'compute':
            return asyncio.run(run_compute(args.database_url))
        return asyncio.run(run_worker(args.database_url))
    except KeyboardInterrupt:
        return 0


if __name__ == "__main__":
    sys.exit(main())
