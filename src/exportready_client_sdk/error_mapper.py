from __future__ import annotations

from typing import Mapping

from .exceptions import (
    ApiError,
    AuthError,
    ConflictError,
    ForbiddenError,
    InvalidActionTokenError,
    NotFoundError,
    PartnerCodeRejectedError,
    PermissionError,
    RateLimitError,
    ServerError,
    TransitionRoleError,
    TransitionStateError,
    ValidationError,
)

_STATUS_ERRORS: dict[int, type[ApiError]] = {
    400: ValidationError,
    401: AuthError,
    403: PermissionError,
    404: NotFoundError,
    409: ConflictError,
    422: ValidationError,
    429: RateLimitError,
}

# Transition handlers answer with plain-text reasons; these phrases pick the subtype.
_TRANSITION_PHRASES: tuple[tuple[str, type[ApiError]], ...] = (
    ("partner code", PartnerCodeRejectedError),
    ("invalid transition", TransitionStateError),
    ("not permitted", TransitionRoleError),
)


def _error_class(status_code: int) -> type[ApiError]:
    if status_code >= 500:
        return ServerError
    return _STATUS_ERRORS.get(status_code, ApiError)


def _payload_message(payload: Mapping[str, object]) -> str:
    for key in ("message", "error", "detail"):
        value = payload.get(key)
        if isinstance(value, str) and value.strip():
            return value
    return "Request failed"


def map_error(status_code: int, payload: Mapping[str, object] | None, trace_id: str | None) -> ApiError:
    body = dict(payload or {})
    server_trace = body.get("trace_id")
    return _error_class(status_code)(
        code=str(body.get("code") or "HTTP_ERROR"),
        message=_payload_message(body),
        details=body.get("details"),
        trace_id=str(server_trace) if server_trace is not None else trace_id,
        status_code=status_code,
        raw_payload=body,
    )


def refine_transition_error(error: ApiError, *, action_token: bool = False) -> ApiError:
    """Narrow a failed transition call to the reason the server gave.

    A 401 becomes ``InvalidActionTokenError`` only for magic-link calls
    (``action_token=True``). Anything that is not a client error comes back
    unchanged.
    """
    if action_token and isinstance(error, AuthError):
        return InvalidActionTokenError.refine(error)
    if not isinstance(error, (ForbiddenError, ValidationError)):
        return error
    reason = error.message.lower()
    for phrase, error_type in _TRANSITION_PHRASES:
        if phrase in reason:
            return error_type.refine(error)
    return error
