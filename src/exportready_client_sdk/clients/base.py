from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from ..error_mapper import refine_transition_error
from ..exceptions import ApiError
from ..http_client import HttpClient


@dataclass
class BaseClient:
    http: HttpClient
    access_token: str | None = None

    def _send(
        self,
        method: str,
        path: str,
        *,
        bearer: bool = True,
        action_token: bool = False,
        headers: dict[str, str] | None = None,
        **kwargs: Any,
    ) -> Any:
        merged = dict(headers or {})
        if bearer and self.access_token:
            merged["Authorization"] = f"Bearer {self.access_token}"
        try:
            return self.http.request(method, path, headers=merged, **kwargs)
        except ApiError as exc:
            refined = refine_transition_error(exc, action_token=action_token)
            if refined is exc:
                raise
            raise refined from exc

    def _expect_object(self, payload: Any, what: str) -> dict[str, Any]:
        if not isinstance(payload, dict):
            raise ValueError(f"Expected {what} response to be a JSON object")
        return payload
