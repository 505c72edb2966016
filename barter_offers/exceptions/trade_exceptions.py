from typing import Optional


class TradeError(Exception):
    """Base class for trade lifecycle errors."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class InvalidTransitionError(TradeError):
    """Raised when an action is not legal for the trade's current status.

    Always raised by the local guards, before any request reaches the
    marketplace service.
    """


class ActionNotPermittedError(InvalidTransitionError):
    """Raised when the acting user is not the party allowed to take the action."""


class MeetupConfirmationRequiredError(InvalidTransitionError):
    """Raised when a meetup trade is completed before both parties confirmed the meetup."""

    next_step = "confirm_meetup"


class NotAuthorizedError(TradeError):
    """Raised when the marketplace service rejects the user's credentials (401/403)."""


class StaleStateError(TradeError):
    """Raised when the local view of a trade disagrees with the server.

    The caller has to refresh before retrying; the action is never retried
    automatically.
    """


class TerminalStateError(InvalidTransitionError, StaleStateError):
    """Raised when any action is attempted on a declined, cancelled, expired or completed trade."""


class TransientFetchError(TradeError):
    """Raised when the marketplace service cannot be reached or answers with a server error."""

    def __init__(self, message: str, retry_after_seconds: Optional[int] = None) -> None:
        super().__init__(message)
        self.retry_after_seconds = retry_after_seconds


class ResolutionError(TradeError):
    """Raised when a product title/image lookup fails."""

    def __init__(self, product_id: int, message: str) -> None:
        super().__init__(message)
        self.product_id = product_id
