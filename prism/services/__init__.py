"""
Services package for the Prism leaderboard engine.
"""

from .base import BaseService
from .configuration import ConfigurationService
from .scoring_engine import ScoringEngine
from .leaderboard_cache import LeaderboardCacheService
from .leaderboard import LeaderboardService
from .leaderboard_worker import LeaderboardWorker

__all__ = [
    'BaseService',
    'ConfigurationService',
    'ScoringEngine',
    'LeaderboardCacheService',
    'LeaderboardService',
    'LeaderboardWorker',
]
