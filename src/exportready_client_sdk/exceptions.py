from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import TypeVar

E = TypeVar("E", bound="ApiError")


@dataclass
class ApiError(Exception):
    """Any failed call to the passport API.

    ``status_code`` is 0 when no HTTP response arrived at all.
    """

    code: str
    message: str
    details: object | None
    trace_id: str | None
    status_code: int
    raw_payload: object | None = None

    def __str__(self) -> str:
        label = f"HTTP {self.status_code}" if self.status_code else "no response"
        suffix = f" (trace {self.trace_id})" if self.trace_id else ""
        return f"{self.code} [{label}]: {self.message}{suffix}"

    @classmethod
    def refine(cls: type[E], error: ApiError) -> E:
        return cls(**asdict(error))


class UnauthorizedError(ApiError):
    pass


class ForbiddenError(ApiError):
    pass


class NotFoundError(ApiError):
    pass


class ValidationError(ApiError):
    pass


class AuthError(UnauthorizedError):
    pass


class PermissionError(ForbiddenError):
    pass


class ConflictError(ApiError):
    pass


class RateLimitError(ApiError):
    pass


class ServerError(ApiError):
    pass


class TransportError(ApiError):
    """Connection, DNS, TLS or timeout failure; nothing came back."""


class InvalidActionTokenError(AuthError):
    """Magic-link token expired, malformed, or issued for another passport."""


class TransitionStateError(ValidationError):
    pass


class TransitionRoleError(ForbiddenError):
    pass


class PartnerCodeRejectedError(ForbiddenError):
    """Partner code unknown, inactive, expired, or used up."""
