"""
Redis utility module for the leaderboard mirror.

Provides secure Redis connection management with production validation and the
key helpers used when publishing leaderboards to Redis.
"""

import logging
from typing import Optional

import redis.asyncio as redis

from prism.config import Config
from prism.constants import CacheConstants

logger = logging.getLogger(__name__)


class RedisUtils:
    """Centralized Redis configuration and connection utilities."""

    @staticmethod
    def leaderboard_key(scope: str) -> str:
        """Redis key holding the mirrored leaderboard for a scope."""
        return f"{CacheConstants.REDIS_KEY_PREFIX}:{scope}"

    @staticmethod
    def get_secure_redis_url() -> Optional[str]:
        """Get Redis URL with security validation for production deployments."""
        redis_url = Config.REDIS_URL
        if not redis_url:
            logger.info("REDIS_URL not set; leaderboard Redis mirror disabled")
            return None

        if RedisUtils._validate_redis_security(redis_url):
            return redis_url

        logger.error("REDIS_URL contains insecure configuration")
        return None

    @staticmethod
    def _validate_redis_security(redis_url: str) -> bool:
        """Validate that Redis URL meets security requirements."""
        if not redis_url:
            return False

        if not Config.DEBUG:
            # Production mode - local instances are allowed, remote ones need TLS and auth
            if redis_url.startswith(('redis://localhost', 'redis://127.0.0.1')):
                return True
            if not redis_url.startswith('rediss://'):
                logger.error("Remote production Redis must use rediss:// (TLS) protocol")
                return False
            if '@' not in redis_url:
                logger.error("Production Redis must include authentication credentials")
                return False
        elif not redis_url.startswith(('redis://localhost', 'redis://127.0.0.1', 'rediss://')):
            logger.warning(f"Potentially insecure Redis URL in development: {redis_url}")

        return True

    @staticmethod
    async def create_redis_client() -> Optional[redis.Redis]:
        """Create a Redis client with secure configuration."""
        redis_url = RedisUtils.get_secure_redis_url()
        if not redis_url:
            return None

        try:
            client = redis.from_url(redis_url)
            # Test connection
            await client.ping()
            logger.info("Successfully connected to Redis")
            return client
        except Exception as e:
            logger.error(f"Failed to connect to Redis: {e}")
            return None
