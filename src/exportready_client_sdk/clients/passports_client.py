from __future__ import annotations

from dataclasses import dataclass
from typing import Mapping, Sequence

from ..idempotency import idempotency_headers
from ..models import BulkTransitionRequest, BulkTransitionResponse, Status
from ..transition_validation import validate_bulk_transition_payload
from .base import BaseClient


@dataclass
class PassportsClient(BaseClient):
    """Dashboard endpoints; ``access_token`` is the operator's session token."""

    def bulk_transition(
        self,
        passport_ids: Sequence[str],
        to_status: Status | str,
        metadata: Mapping[str, str] | None = None,
        idempotency_key: str | None = None,
    ) -> BulkTransitionResponse:
        request_payload = validate_bulk_transition_payload(
            {
                "passport_ids": list(passport_ids),
                "to_status": to_status,
                "metadata": dict(metadata or {}),
            }
        )
        data = self._send(
            "POST",
            "/passports/bulk/transition",
            json_body=request_payload.model_dump(mode="json"),
            headers=idempotency_headers(idempotency_key),
            module="passports",
            operation="bulk_transition",
        )
        return BulkTransitionResponse.model_validate(self._expect_object(data, "bulk transition"))

    def allowed_transitions(self, passport_id: str) -> list[Status]:
        payload = self._send(
            "GET",
            f"/passports/{passport_id}/transitions",
            module="passports",
            operation="allowed_transitions",
        )
        if isinstance(payload, dict):
            payload = payload.get("allowed_transitions") or []
        if not isinstance(payload, list):
            raise ValueError("Expected allowed transitions to be a JSON list")
        return [Status(value) for value in payload]
