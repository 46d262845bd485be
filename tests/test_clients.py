from __future__ import annotations

import json

import pytest
import responses
from responses import matchers

from exportready_client_sdk.clients import ActionClient, PassportsClient
from exportready_client_sdk.config import ClientConfig
from exportready_client_sdk.exceptions import (
    InvalidActionTokenError,
    PartnerCodeRejectedError,
    TransitionRoleError,
    TransitionStateError,
)
from exportready_client_sdk.http_client import HttpClient, TraceContext
from exportready_client_sdk.models import ActionInfo, Status, TransitionRequest
from exportready_client_sdk.transition_validation import ClientValidationError

from conftest import UNIT_A, UNIT_B

BASE = "https://api.example.com"


def _http() -> HttpClient:
    cfg = ClientConfig(env_name="test", api_base_url=BASE, retries=1, retry_backoff_seconds=0)
    return HttpClient(cfg, trace=TraceContext())


def _info(role: str = "LOGISTICS", allowed: list[str] | None = None) -> ActionInfo:
    return ActionInfo.model_validate(
        {
            "passport": {"uuid": UNIT_A, "serial_number": "BAT-001", "status": "CREATED"},
            "actor": {"email": "dock@example.com", "role": role},
            "allowed_transitions": allowed if allowed is not None else ["SHIPPED"],
        }
    )


@responses.activate
def test_bulk_transition_posts_normalized_ids_with_idempotency_key() -> None:
    def callback(request):
        payload = json.loads(request.body)
        assert payload == {
            "passport_ids": [UNIT_A, UNIT_B],
            "to_status": "SHIPPED",
            "metadata": {"carrier": "DHL"},
        }
        assert request.headers["Idempotency-Key"] == "idem-1"
        assert request.headers["Authorization"] == "Bearer user-token"
        body = {
            "success_count": 1,
            "failed_count": 1,
            "results": [
                {"passport_id": UNIT_A, "success": True},
                {"passport_id": UNIT_B, "success": False, "error": "already shipped"},
            ],
        }
        return (200, {}, json.dumps(body))

    responses.add_callback(responses.POST, f"{BASE}/passports/bulk/transition", callback=callback)
    client = PassportsClient(http=_http(), access_token="user-token")

    response = client.bulk_transition([UNIT_A.upper(), UNIT_B], "SHIPPED", {"carrier": "DHL"}, idempotency_key="idem-1")

    assert response.failed_count == 1
    assert response.results[1].error == "already shipped"


@pytest.mark.parametrize(
    "ids",
    [
        [],
        ["not-a-uuid"],
        [UNIT_A, UNIT_A.upper()],
        [UNIT_A] * 1001,
    ],
)
@responses.activate
def test_bulk_transition_rejects_bad_batches_locally(ids: list[str]) -> None:
    client = PassportsClient(http=_http())

    with pytest.raises(ClientValidationError):
        client.bulk_transition(ids, Status.SHIPPED)

    assert len(responses.calls) == 0


@responses.activate
def test_bulk_transition_rejects_non_object_body() -> None:
    responses.add(responses.POST, f"{BASE}/passports/bulk/transition", json=[1, 2])
    client = PassportsClient(http=_http())

    with pytest.raises(ValueError):
        client.bulk_transition([UNIT_A], Status.SHIPPED)


@responses.activate
def test_allowed_transitions_accepts_list_and_object() -> None:
    responses.add(responses.GET, f"{BASE}/passports/{UNIT_A}/transitions", json=["SHIPPED"])
    responses.add(responses.GET, f"{BASE}/passports/{UNIT_B}/transitions", json={"allowed_transitions": ["RECYCLED"]})
    client = PassportsClient(http=_http())

    assert client.allowed_transitions(UNIT_A) == [Status.SHIPPED]
    assert client.allowed_transitions(UNIT_B) == [Status.RECYCLED]


@responses.activate
def test_action_info_sends_token_as_query() -> None:
    responses.add(
        responses.GET,
        f"{BASE}/passport/{UNIT_A}/action-info",
        json=_info(allowed=["SHIPPED", "RECALLED"]).model_dump(mode="json"),
        match=[matchers.query_param_matcher({"token": "magic"})],
    )
    client = ActionClient(http=_http(), access_token="magic")

    info = client.action_info(UNIT_A)

    assert info.passport.serial_number == "BAT-001"
    assert info.allowed_transitions == [Status.SHIPPED, Status.RECALLED]
    assert "Authorization" not in responses.calls[0].request.headers


@responses.activate
def test_action_info_expired_token() -> None:
    responses.add(responses.GET, f"{BASE}/passport/{UNIT_A}/action-info", status=401, json={"error": "Invalid or expired token"})
    client = ActionClient(http=_http(), access_token="stale")

    with pytest.raises(InvalidActionTokenError) as exc_info:
        client.action_info(UNIT_A)

    assert exc_info.value.message == "Invalid or expired token"


@responses.activate
def test_transition_posts_with_bearer_and_uppercased_code() -> None:
    def callback(request):
        payload = json.loads(request.body)
        assert payload == {"to_status": "IN_SERVICE", "metadata": {"vehicle_vin": "VIN1"}, "partner_code": "GARAGE42"}
        assert request.headers["Authorization"] == "Bearer magic"
        return (
            200,
            {},
            json.dumps(
                {
                    "success": True,
                    "previous_status": "SHIPPED",
                    "new_status": "IN_SERVICE",
                    "role": "TECHNICIAN",
                    "points_awarded": 50,
                }
            ),
        )

    responses.add_callback(responses.POST, f"{BASE}/passport/{UNIT_A}/transition", callback=callback)
    client = ActionClient(http=_http(), access_token="magic")

    response = client.transition(
        UNIT_A,
        {"to_status": "IN_SERVICE", "metadata": {"vehicle_vin": "VIN1", "notes": " "}, "partner_code": " garage42 "},
        info=_info(role="UNVERIFIED", allowed=["IN_SERVICE"]),
    )

    assert response.new_status is Status.IN_SERVICE
    assert response.points_awarded == 50


@responses.activate
def test_unverified_actor_without_code_is_blocked_locally() -> None:
    client = ActionClient(http=_http(), access_token="magic")

    with pytest.raises(ClientValidationError) as exc_info:
        client.transition(UNIT_A, TransitionRequest(to_status=Status.SHIPPED), info=_info(role="UNVERIFIED"))

    assert exc_info.value.issues[0].field == "partner_code"
    assert len(responses.calls) == 0


@responses.activate
def test_transition_outside_allowed_list_is_blocked_locally() -> None:
    client = ActionClient(http=_http(), access_token="magic")

    with pytest.raises(ClientValidationError):
        client.transition(UNIT_A, TransitionRequest(to_status=Status.RECYCLED), info=_info())

    assert len(responses.calls) == 0


@pytest.mark.parametrize(
    ("status", "message", "expected"),
    [
        (403, "Invalid or expired partner code", PartnerCodeRejectedError),
        (400, "Invalid transition from CREATED to RECYCLED. Allowed: SHIPPED", TransitionStateError),
        (403, "Role CUSTOMER is not permitted to transition from CREATED to SHIPPED", TransitionRoleError),
        (401, "Invalid or expired token", InvalidActionTokenError),
    ],
)
@responses.activate
def test_transition_errors_are_refined(status: int, message: str, expected: type) -> None:
    responses.add(responses.POST, f"{BASE}/passport/{UNIT_A}/transition", status=status, json={"error": message})
    client = ActionClient(http=_http(), access_token="magic")

    with pytest.raises(expected) as exc_info:
        client.transition(UNIT_A, {"to_status": "SHIPPED"})

    assert exc_info.value.status_code == status
    assert len(responses.calls) == 1
