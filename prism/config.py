import os
from dotenv import load_dotenv

load_dotenv()

class Config:
    """Engine configuration settings"""

    # Database settings
    DATABASE_URL = os.getenv('DATABASE_URL', 'sqlite:///prism.db')

    # Runtime settings
    DEBUG = os.getenv('DEBUG', 'False').lower() == 'true'

    # Logging
    LOG_LEVEL = os.getenv('LOG_LEVEL')
    LOG_DIR = os.getenv('LOG_DIR', 'logs')
    LOG_TO_FILE = os.getenv('LOG_TO_FILE', 'True').lower() != 'false'

    # Redis mirror (optional)
    REDIS_URL = os.getenv('REDIS_URL')

    # Leaderboard cache settings
    LEADERBOARD_CACHE_TTL = int(os.getenv('LEADERBOARD_CACHE_TTL', '300'))
    LEADERBOARD_DEFAULT_LIMIT = int(os.getenv('LEADERBOARD_DEFAULT_LIMIT', '50'))
    LEADERBOARD_MAX_LIMIT = 100

    # Rebuild worker settings
    WORKER_INTERVAL_SECONDS = int(os.getenv('WORKER_INTERVAL_SECONDS', '300'))
    WORKER_ENABLED = os.getenv('WORKER_ENABLED', 'True').lower() != 'false'
    REBUILD_TIMEOUT_SECONDS = float(os.getenv('REBUILD_TIMEOUT_SECONDS', '30'))

    # Global leaderboard aggregation: "mean" or "weighted_sum"
    AGGREGATION_POLICY = os.getenv('AGGREGATION_POLICY', 'mean')

    @classmethod
    def validate(cls):
        """Validate that configuration values are usable"""
        if cls.AGGREGATION_POLICY.lower() not in ('mean', 'weighted_sum'):
            raise ValueError("AGGREGATION_POLICY must be 'mean' or 'weighted_sum'")
        if cls.LEADERBOARD_DEFAULT_LIMIT < 1 or cls.LEADERBOARD_DEFAULT_LIMIT > cls.LEADERBOARD_MAX_LIMIT:
            raise ValueError(f"LEADERBOARD_DEFAULT_LIMIT must be between 1 and {cls.LEADERBOARD_MAX_LIMIT}")
        if cls.WORKER_INTERVAL_SECONDS < 1:
            raise ValueError("WORKER_INTERVAL_SECONDS must be a positive integer")
        if cls.REBUILD_TIMEOUT_SECONDS <= 0:
            raise ValueError("REBUILD_TIMEOUT_SECONDS must be positive")
