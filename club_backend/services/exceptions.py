"""
Domain exceptions raised by the roster services.

Lookup and rule violations subclass ValueError so callers that already map
ValueError to a client error keep working. TransactionAbortedError is a
RuntimeError: the request was fine, the store rolled it back, retry it.
"""


class NotFoundError(ValueError):
    """Raised when a referenced document does not exist."""


class UserNotFoundError(NotFoundError):
    """Raised when a user cannot be found."""


class PlayerNotFoundError(NotFoundError):
    """Raised when a player cannot be found."""


class TeamNotFoundError(NotFoundError):
    """Raised when a team cannot be found."""


class MatchNotFoundError(NotFoundError):
    """Raised when a match cannot be found."""


class RoleIneligibleError(ValueError):
    """Raised when a user whose role cannot play is promoted to player status."""


class PlayerStatusUpdateError(ValueError):
    """Raised when is_player is changed outside set_player_status."""


class TeamInUseError(ValueError):
    """Raised when deleting a team that matches still reference."""


class TransactionAbortedError(RuntimeError):
    """Raised when a transactional cascade failed and every write was rolled back."""

    retryable = True

    def __init__(self, label: str, message: str):
        super().__init__(f"Cascade '{label}' aborted and rolled back: {message}")
        self.label = label
