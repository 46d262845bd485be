from __future__ import annotations

import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Callable, Mapping, Sequence

import pytest

BASE_DIR = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(BASE_DIR / "src"))

from exportready_client_sdk.lifecycle import TransitionAuthority  # noqa: E402
from exportready_client_sdk.models import ActorRole, BulkTransitionResponse, Status  # noqa: E402
from exportready_client_sdk.storage import InMemoryQueueStorage  # noqa: E402

UNIT_A = "a1b2c3d4-e5f6-47a8-89b0-123456789abc"
UNIT_B = "0f8fad5b-d9cb-469f-a165-70867728950e"
UNIT_C = "7c9e6679-7425-40de-944b-e07fc1f90ae7"


class FakeBulkClient:
    """Stands in for PassportsClient; records every bulk call."""

    def __init__(
        self,
        response: BulkTransitionResponse | dict | None = None,
        error: Exception | None = None,
    ) -> None:
        self.response = response
        self.error = error
        self.calls: list[dict] = []

    def bulk_transition(
        self,
        passport_ids: Sequence[str],
        to_status: Status | str,
        metadata: Mapping[str, str] | None = None,
    ) -> BulkTransitionResponse:
        self.calls.append(
            {"passport_ids": list(passport_ids), "to_status": Status(to_status), "metadata": dict(metadata or {})}
        )
        if self.error is not None:
            raise self.error
        if isinstance(self.response, BulkTransitionResponse):
            return self.response
        return BulkTransitionResponse.model_validate(self.response or {"success_count": len(passport_ids)})


class AuthorityBulkClient:
    """Serves bulk calls from an in-process TransitionAuthority."""

    def __init__(self, authority: TransitionAuthority, role: ActorRole = ActorRole.LOGISTICS) -> None:
        self.authority = authority
        self.role = role
        self.calls = 0

    def bulk_transition(
        self,
        passport_ids: Sequence[str],
        to_status: Status | str,
        metadata: Mapping[str, str] | None = None,
    ) -> BulkTransitionResponse:
        self.calls += 1
        return self.authority.bulk_transition(
            passport_ids,
            to_status,
            actor="dock-7@example.com",
            role=self.role,
            metadata=metadata,
        )


@pytest.fixture
def storage() -> InMemoryQueueStorage:
    return InMemoryQueueStorage()


@pytest.fixture
def clock() -> Callable[[], datetime]:
    current = {"value": datetime(2026, 3, 1, 9, 0, tzinfo=timezone.utc)}

    def _tick() -> datetime:
        current["value"] = current["value"] + timedelta(seconds=1)
        return current["value"]

    return _tick
