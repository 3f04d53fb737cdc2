"""Typed domain exceptions for contest rule violations.

Domain code raises subclasses of ContestError. The message router converts
them into session_error frames for the offending connection only, and the
HTTP handlers convert them into status codes. Anything that is not a
ContestError is treated as an internal failure.
"""

from mathhack.logic.enums import SessionErrorCode


class ContestError(Exception):
    """Base exception for rejected requests.

    Attributes:
        code: Wire error code sent back to the caller.
        message: Human-readable explanation.

    """

    default_code = SessionErrorCode.INVALID_REQUEST

    def __init__(self, message: str, *, code: SessionErrorCode | None = None) -> None:
        self.code = code or self.default_code
        self.message = message
        super().__init__(message)


class RequestValidationError(ContestError):
    """Required fields are missing or out of range."""


class NotFoundError(ContestError):
    """Unknown session or player."""

    default_code = SessionErrorCode.SESSION_NOT_FOUND


class ConflictError(ContestError):
    """Request is well-formed but not allowed in the current state."""

    default_code = SessionErrorCode.GAME_NOT_ACTIVE


class InsufficientFundsError(ContestError):
    """Player cannot afford a power-up, hack or skip."""

    default_code = SessionErrorCode.INSUFFICIENT_CREDITS

    def __init__(self, *, cost: int, credits: int) -> None:
        self.cost = cost
        self.credits = credits
        super().__init__(f"costs {cost} credits, player has {credits}")


class MalformedMessageError(ContestError):
    """Inbound frame could not be decoded or parsed."""

    default_code = SessionErrorCode.INVALID_MESSAGE


class CodeAllocationError(ContestError):
    """No unused join code could be generated within the retry budget."""

    default_code = SessionErrorCode.CODE_SPACE_EXHAUSTED


class ServerCapacityError(ContestError):
    """The server already hosts the maximum number of live sessions."""

    default_code = SessionErrorCode.SERVER_AT_CAPACITY
