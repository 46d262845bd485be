from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping, TypeVar

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from .identifiers import is_unit_id, normalize_unit_id
from .models import ActorRole, BulkTransitionRequest, Status, TransitionRequest

MAX_BULK_PASSPORTS = 1000

M = TypeVar("M", bound=BaseModel)


@dataclass(frozen=True)
class ValidationIssue:
    row_index: int | None
    field: str
    reason: str


class ClientValidationError(ValueError):
    def __init__(self, issues: list[ValidationIssue]) -> None:
        self.issues = issues
        super().__init__(self._format_message())

    def _format_message(self) -> str:
        if not self.issues:
            return "Validation failed"
        issue = self.issues[0]
        location = f"row {issue.row_index}" if issue.row_index is not None else "payload"
        return f"{location} {issue.field}: {issue.reason}"


def validate_bulk_transition_payload(
    payload: BulkTransitionRequest | Mapping[str, Any],
    *,
    required_fields: tuple[str, ...] = (),
) -> BulkTransitionRequest:
    data = _coerce_model(payload, BulkTransitionRequest)
    issues: list[ValidationIssue] = []
    if not data.passport_ids:
        issues.append(ValidationIssue(row_index=None, field="passport_ids", reason="passport_ids must not be empty"))
    if len(data.passport_ids) > MAX_BULK_PASSPORTS:
        issues.append(
            ValidationIssue(
                row_index=None,
                field="passport_ids",
                reason=f"at most {MAX_BULK_PASSPORTS} passports per request",
            )
        )
    normalized: list[str] = []
    seen: set[str] = set()
    for idx, value in enumerate(data.passport_ids):
        unit_id = normalize_unit_id(value)
        if not unit_id or not is_unit_id(unit_id):
            issues.append(ValidationIssue(row_index=idx, field="passport_ids", reason="not a valid passport id"))
            continue
        if unit_id in seen:
            issues.append(ValidationIssue(row_index=idx, field="passport_ids", reason="duplicate passport id"))
            continue
        seen.add(unit_id)
        normalized.append(unit_id)
    for name in required_fields:
        if not (data.metadata.get(name) or "").strip():
            issues.append(ValidationIssue(row_index=None, field=f"metadata.{name}", reason=f"{name} is required"))
    if issues:
        raise ClientValidationError(issues)
    return data.model_copy(update={"passport_ids": normalized})


def validate_transition_payload(
    payload: TransitionRequest | Mapping[str, Any],
    *,
    actor_role: str | None,
    allowed_transitions: list[Status] | None = None,
) -> TransitionRequest:
    """Check a magic-link transition before it leaves the client.

    Unverified actors are stopped here when no partner code was entered, so
    the server is never asked to reject an obviously incomplete request.
    """
    data = _coerce_model(payload, TransitionRequest)
    issues: list[ValidationIssue] = []
    if allowed_transitions is not None and data.to_status not in allowed_transitions:
        issues.append(
            ValidationIssue(
                row_index=None,
                field="to_status",
                reason=f"{data.to_status.value} is not an allowed transition",
            )
        )
    partner_code = (data.partner_code or "").strip()
    if (actor_role or "").upper() == ActorRole.UNVERIFIED.value and not partner_code:
        issues.append(
            ValidationIssue(row_index=None, field="partner_code", reason="partner code is required for unverified actors")
        )
    if issues:
        raise ClientValidationError(issues)
    metadata = {key: value for key, value in data.metadata.items() if value is not None and str(value).strip()}
    return data.model_copy(update={"partner_code": partner_code.upper() or None, "metadata": metadata})


def _coerce_model(payload: M | Mapping[str, Any], model_type: type[M]) -> M:
    if isinstance(payload, model_type):
        return payload
    try:
        return model_type.model_validate(payload)
    except PydanticValidationError as exc:
        issue = exc.errors()[0] if exc.errors() else {"loc": ("payload",), "msg": "Invalid payload"}
        field = ".".join(str(part) for part in issue.get("loc", ("payload",)))
        raise ClientValidationError(
            [ValidationIssue(row_index=None, field=field, reason=issue.get("msg", "Invalid payload"))]
        ) from exc
