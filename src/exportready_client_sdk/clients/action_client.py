from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping

from ..models import ActionInfo, TransitionRequest, TransitionResponse
from ..transition_validation import validate_transition_payload
from .base import BaseClient


@dataclass
class ActionClient(BaseClient):
    """Magic-link action flow; ``access_token`` is the signed action token."""

    def action_info(self, passport_id: str) -> ActionInfo:
        payload = self._send(
            "GET",
            f"/passport/{passport_id}/action-info",
            bearer=False,
            action_token=True,
            params={"token": self.access_token},
            module="action",
            operation="action_info",
        )
        return ActionInfo.model_validate(self._expect_object(payload, "action info"))

    def transition(
        self,
        passport_id: str,
        payload: TransitionRequest | Mapping[str, Any],
        *,
        info: ActionInfo | None = None,
    ) -> TransitionResponse:
        request_payload = validate_transition_payload(
            payload,
            actor_role=info.actor.role if info else None,
            allowed_transitions=list(info.allowed_transitions) if info else None,
        )
        data = self._send(
            "POST",
            f"/passport/{passport_id}/transition",
            action_token=True,
            json_body=request_payload.model_dump(mode="json", exclude_none=True),
            module="action",
            operation="transition",
        )
        return TransitionResponse.model_validate(self._expect_object(data, "transition"))
