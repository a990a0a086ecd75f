"""
Prism leaderboard engine.

Scores per-platform activity snapshots on a common scale, ranks users and keeps
the computed leaderboards cached for readers.
"""

__version__ = "0.1.0"
