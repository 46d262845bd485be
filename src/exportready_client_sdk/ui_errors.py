from __future__ import annotations

from dataclasses import dataclass

from .exceptions import ApiError, InvalidActionTokenError, RateLimitError, ServerError, TransportError

OFFLINE_MESSAGE = "Could not reach the server. Your scans are kept; try again."

_FIXED_MESSAGES: tuple[tuple[type[ApiError], str], ...] = (
    (TransportError, OFFLINE_MESSAGE),
    (InvalidActionTokenError, "This action link is invalid or has expired. Request a new one."),
    (RateLimitError, "Too many requests. Wait a moment, then dispatch again."),
)


@dataclass(frozen=True)
class UserFacingError:
    message: str
    details: str | None = None
    trace_id: str | None = None

    @property
    def technical_details(self) -> str | None:
        return self.details or None


def to_user_facing_error(exc: ApiError) -> UserFacingError:
    """Toast text for a failed call; server wording wins when it has any."""
    if isinstance(exc, TransportError):
        return UserFacingError(OFFLINE_MESSAGE, f"{exc.code}: {exc.message}", exc.trace_id)

    details = f"{exc.code} (HTTP {exc.status_code})"
    if exc.details:
        details = f"{details}: {exc.details}"
    message = exc.message.strip()
    if not message or message == "Request failed":
        message = next(
            (text for error_type, text in _FIXED_MESSAGES if isinstance(exc, error_type)),
            "Server error. Your scans are kept; try again." if isinstance(exc, ServerError) else "Request failed",
        )
    return UserFacingError(message, details, exc.trace_id)
