"""
Custom exceptions for the leaderboard engine with user-friendly error messages.
"""

class LeaderboardException(Exception):
    """Base exception for leaderboard-related errors."""
    def __init__(self, message: str, user_message: str = None):
        super().__init__(message)
        self.user_message = user_message or message

class InvalidScopeError(LeaderboardException):
    """Raised when a leaderboard scope is not known."""
    def __init__(self, scope: str):
        super().__init__(
            f"Leaderboard scope '{scope}' not found",
            f"Leaderboard '{scope}' does not exist."
        )

class UserScoringError(LeaderboardException):
    """Raised when one user's snapshots cannot be scored."""
    def __init__(self, user_id: str, reason: str):
        super().__init__(
            f"Could not score user {user_id}: {reason}",
            "Some of your platform data could not be scored."
        )
        self.user_id = user_id

class RebuildError(LeaderboardException):
    """Raised when a leaderboard rebuild fails as a whole."""
    def __init__(self, reason: str):
        super().__init__(
            f"Leaderboard rebuild failed: {reason}",
            "Leaderboard could not be refreshed. Showing the last computed standings."
        )

class DatabaseError(LeaderboardException):
    """Raised when database operations fail."""
    def __init__(self, operation: str, details: str = None):
        super().__init__(
            f"Database error during {operation}: {details}",
            "Database error occurred. Please try again later."
        )
