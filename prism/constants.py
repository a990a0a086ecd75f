"""
Engine-wide constants for the Prism leaderboard engine.

This module contains the static scoring tables and magic numbers used throughout
the codebase. The tables are read once into a ScoringConfig at startup; nothing
mutates them at runtime.
"""

class Platform:
    """Platform identities that can appear in metric snapshots."""

    LEETCODE = "LEETCODE"
    CODEFORCES = "CODEFORCES"
    CODECHEF = "CODECHEF"
    ATCODER = "ATCODER"
    GITHUB = "GITHUB"

    ALL = (LEETCODE, CODEFORCES, CODECHEF, ATCODER, GITHUB)


class ScoringConstants:
    """Constants related to normalization, weighting and extraction."""

    # Relative platform difficulty/credibility multipliers
    PLATFORM_WEIGHTS = {
        Platform.LEETCODE: 1.0,
        Platform.CODEFORCES: 1.2,   # Competitive programming counts slightly more
        Platform.CODECHEF: 1.0,
        Platform.ATCODER: 1.1,
        Platform.GITHUB: 0.8,       # Contributions are easier to accumulate
    }

    # Weight used for platforms missing from PLATFORM_WEIGHTS
    DEFAULT_WEIGHT = 1.0

    # Upper bound of each platform's normalization range (lower bound is 0)
    PLATFORM_MAX_VALUES = {
        Platform.LEETCODE: 3000,    # Max rating ~3000
        Platform.CODEFORCES: 4000,  # Max rating ~4000
        Platform.CODECHEF: 3000,
        Platform.ATCODER: 4000,
        Platform.GITHUB: 10000,     # Max contributions per year ~10000
    }

    # Range used for platforms missing from PLATFORM_MAX_VALUES
    DEFAULT_PLATFORM_MAX = 1000

    # Fields probed, in order, when extracting a metric value from a snapshot
    METRIC_FIELD_PRIORITY = ("score", "rating", "problemsSolved")

    # Normalized scale
    NORMALIZED_MIN = 0.0
    NORMALIZED_MAX = 100.0


class CacheConstants:
    """Constants for leaderboard cache behavior."""

    GLOBAL_SCOPE = "global"

    # Redis key prefix for mirrored leaderboards
    REDIS_KEY_PREFIX = "leaderboard"

    # Lifecycle states of a leaderboard cache
    STATE_EMPTY = "EMPTY"
    STATE_COMPUTING = "COMPUTING"
    STATE_READY = "READY"

