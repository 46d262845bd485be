from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Mapping, Protocol, Sequence

from pydantic import ValidationError as PydanticValidationError

from .exceptions import ApiError, TransportError
from .feedback import FeedbackEmitter
from .identifiers import normalize_unit_id
from .lifecycle import required_dispatch_fields
from .models import BulkTransitionResponse, DispatchBatch, ScannedItem, Status
from .pending_queue import GENERIC_FAILURE_MESSAGE, EnqueueResult, PendingQueue, RejectionReason
from .storage import QueueStorage
from .telemetry import TelemetryLogger, build_event
from .transition_validation import ClientValidationError
from .ui_errors import to_user_facing_error

logger = logging.getLogger(__name__)

EMPTY_QUEUE_MESSAGE = "No pending items to dispatch"
SUBMISSION_IN_FLIGHT_MESSAGE = "A dispatch is already in progress"
UNREADABLE_RESPONSE_MESSAGE = "The server sent an unreadable response. Your scans are kept; check them before dispatching again."

_FIELD_PROMPTS = {
    "carrier": "Please enter a Carrier name",
    "tracking_number": "Please enter a Tracking number",
}


class BulkTransitionClient(Protocol):
    def bulk_transition(
        self,
        passport_ids: Sequence[str],
        to_status: Status | str,
        metadata: Mapping[str, str] | None = None,
    ) -> BulkTransitionResponse: ...


class DispatchStatus(str, Enum):
    SUCCESS = "success"
    PARTIAL_FAILURE = "partial_failure"
    NETWORK_FAILURE = "network_failure"
    VALIDATION_ERROR = "validation_error"
    IN_FLIGHT = "in_flight"


@dataclass(frozen=True)
class DispatchOutcome:
    status: DispatchStatus
    submitted: tuple[str, ...] = ()
    succeeded: tuple[str, ...] = ()
    failures: dict[str, str] = field(default_factory=dict)
    message: str | None = None
    error: ApiError | None = None


def fold_bulk_response(submitted: Sequence[str], response: BulkTransitionResponse) -> dict[str, str]:
    """Map each submitted id that was not confirmed done to its error text.

    Explicit per-item results win. When the server reports failures but does
    not account for an id, that id is treated as failed with the generic
    message rather than assumed shipped.
    """
    succeeded: set[str] = set()
    failed: dict[str, str] = {}
    for result in response.results or []:
        unit_id = normalize_unit_id(result.passport_id)
        if result.success:
            succeeded.add(unit_id)
        else:
            failed[unit_id] = (result.error or "").strip() or GENERIC_FAILURE_MESSAGE

    failures: dict[str, str] = {}
    for unit_id in submitted:
        if unit_id in failed:
            failures[unit_id] = failed[unit_id]
        elif unit_id in succeeded:
            continue
        elif response.failed_count > 0:
            failures[unit_id] = GENERIC_FAILURE_MESSAGE
    return failures


@dataclass
class DispatchReconciler:
    client: BulkTransitionClient

    def submit(
        self,
        queue: PendingQueue,
        target_status: Status | str,
        metadata: Mapping[str, str] | None = None,
    ) -> DispatchOutcome:
        status = Status(target_status)
        batch_metadata = {key: str(value).strip() for key, value in (metadata or {}).items() if value is not None}
        unit_ids = tuple(queue.unit_ids)

        if not unit_ids:
            return DispatchOutcome(status=DispatchStatus.VALIDATION_ERROR, message=EMPTY_QUEUE_MESSAGE)
        for key in required_dispatch_fields(status):
            if not batch_metadata.get(key):
                return DispatchOutcome(
                    status=DispatchStatus.VALIDATION_ERROR,
                    submitted=unit_ids,
                    message=_FIELD_PROMPTS.get(key, f"Please enter {key}"),
                )

        batch = DispatchBatch(unit_ids=list(unit_ids), target_status=status, metadata=batch_metadata)
        try:
            response = self.client.bulk_transition(batch.unit_ids, batch.target_status, batch.metadata)
        except ClientValidationError as exc:
            return DispatchOutcome(status=DispatchStatus.VALIDATION_ERROR, submitted=unit_ids, message=str(exc))
        except ApiError as exc:
            logger.warning(
                "dispatch_request_failed",
                extra={
                    "unit_count": len(unit_ids),
                    "error_code": exc.code,
                    "status_code": exc.status_code,
                    "transport": isinstance(exc, TransportError),
                },
            )
            return DispatchOutcome(
                status=DispatchStatus.NETWORK_FAILURE,
                submitted=unit_ids,
                message=to_user_facing_error(exc).message,
                error=exc,
            )
        except (ValueError, PydanticValidationError) as exc:
            # The server may have applied the batch, so nothing is dropped locally.
            logger.warning(
                "dispatch_response_unreadable",
                extra={"unit_count": len(unit_ids), "error_type": type(exc).__name__},
            )
            return DispatchOutcome(
                status=DispatchStatus.NETWORK_FAILURE,
                submitted=unit_ids,
                message=UNREADABLE_RESPONSE_MESSAGE,
            )

        failures = fold_bulk_response(unit_ids, response)
        queue.reconcile(unit_ids, failures)
        succeeded = tuple(unit_id for unit_id in unit_ids if unit_id not in failures)
        if failures:
            logger.warning(
                "dispatch_partial_failure",
                extra={"succeeded": len(succeeded), "failed": len(failures), "to_status": status.value},
            )
            return DispatchOutcome(
                status=DispatchStatus.PARTIAL_FAILURE,
                submitted=unit_ids,
                succeeded=succeeded,
                failures=failures,
            )
        logger.info("dispatch_succeeded", extra={"succeeded": len(succeeded), "to_status": status.value})
        return DispatchOutcome(status=DispatchStatus.SUCCESS, submitted=unit_ids, succeeded=succeeded)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class DispatchStation:
    """Scan station state: the pending queue plus the dispatch form.

    Every mutation is persisted before ``feedback`` or ``telemetry`` hear about
    it, and neither observer can break the queue by raising.
    """

    def __init__(
        self,
        storage: QueueStorage,
        client: BulkTransitionClient,
        feedback: FeedbackEmitter | None = None,
        telemetry: TelemetryLogger | None = None,
        *,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.queue = PendingQueue(storage, clock=clock)
        self.reconciler = DispatchReconciler(client)
        self.feedback = feedback or FeedbackEmitter()
        self.telemetry = telemetry
        self.clock = clock
        self.carrier = ""
        self.tracking_number = ""
        self.is_submitting = False
        self.focus_requests = 0

    @property
    def items(self) -> list[ScannedItem]:
        return self.queue.items

    def restore(self) -> int:
        count = self.queue.restore_from_storage()
        if count:
            logger.info("queue_restored", extra={"count": count})
            self._observe(self.feedback.info, f"Recovered {count} pending items from previous session")
            self._track("storage", "queue_restore", "restore", success=True, context={"count": count})
        return count

    def scan(self, raw: str) -> EnqueueResult | None:
        self.feedback.audio.unlock()
        value = (raw or "").strip()
        if not value:
            return None
        result = self.queue.enqueue(value)
        if result.accepted:
            logger.info("scan_accepted", extra={"unit_id": result.unit_id, "pending": len(self.queue)})
            self._observe(self.feedback.accepted, result.unit_id)
            self._track("scan", "scan_accepted", "enqueue", success=True)
        elif result.rejection is RejectionReason.DUPLICATE:
            logger.info("scan_duplicate", extra={"unit_id": result.unit_id})
            self._observe(self.feedback.duplicate, result.unit_id)
            self._track("scan", "scan_duplicate", "enqueue", success=False, error_code="DUPLICATE")
        else:
            logger.info("scan_rejected", extra={"length": len(value)})
            self._observe(self.feedback.rejected, value)
            self._track("scan", "scan_rejected", "enqueue", success=False, error_code="INVALID_FORMAT")
        return result

    def remove(self, unit_id: str) -> bool:
        removed = self.queue.remove(unit_id)
        if removed:
            logger.info("scan_removed", extra={"unit_id": normalize_unit_id(unit_id)})
        return removed

    def clear(self) -> None:
        self.queue.clear()

    def dispatch_metadata(self, extra: Mapping[str, str] | None = None) -> dict[str, str]:
        metadata = {
            "carrier": self.carrier.strip(),
            "tracking_number": self.tracking_number.strip(),
            "dispatched_at": self.clock().astimezone(timezone.utc).isoformat(),
        }
        metadata.update(extra or {})
        return metadata

    def submit(
        self,
        target_status: Status | str = Status.SHIPPED,
        metadata: Mapping[str, str] | None = None,
    ) -> DispatchOutcome:
        self.feedback.audio.unlock()
        if self.is_submitting:
            return DispatchOutcome(status=DispatchStatus.IN_FLIGHT, message=SUBMISSION_IN_FLIGHT_MESSAGE)

        self.is_submitting = True
        started = time.monotonic()
        try:
            outcome = self.reconciler.submit(self.queue, target_status, self.dispatch_metadata(metadata))
        finally:
            self.is_submitting = False
        duration_ms = int((time.monotonic() - started) * 1000)

        if outcome.status is DispatchStatus.VALIDATION_ERROR:
            self._observe(self.feedback.validation_failed, outcome.message or EMPTY_QUEUE_MESSAGE)
            return outcome

        if outcome.status is DispatchStatus.SUCCESS:
            self.carrier = ""
            self.tracking_number = ""
            self._observe(self.feedback.dispatched, len(outcome.succeeded))
        elif outcome.status is DispatchStatus.PARTIAL_FAILURE:
            self._observe(self.feedback.partially_dispatched, len(outcome.succeeded), len(outcome.failures))
        else:
            details = _error_details(outcome.error)
            self._observe(self.feedback.dispatch_failed, outcome.message or GENERIC_FAILURE_MESSAGE, details)

        self.focus_requests += 1
        self._track(
            "dispatch",
            f"dispatch_{outcome.status.value}",
            "bulk_transition",
            success=outcome.status is DispatchStatus.SUCCESS,
            duration_ms=duration_ms,
            error_code=outcome.error.code if outcome.error else None,
            context={
                "submitted": len(outcome.submitted),
                "succeeded": len(outcome.succeeded),
                "failed": len(outcome.failures),
                "to_status": Status(target_status).value,
            },
        )
        return outcome

    def _observe(self, callback: Callable[..., Any], *args: Any) -> None:
        try:
            callback(*args)
        except Exception:
            logger.warning("feedback_observer_failed", exc_info=True)

    def _track(
        self,
        category: str,
        name: str,
        action: str,
        *,
        success: bool | None = None,
        duration_ms: int | None = None,
        error_code: str | None = None,
        context: dict[str, Any] | None = None,
    ) -> None:
        if self.telemetry is None:
            return
        try:
            event = build_event(
                category=category,
                name=name,
                action=action,
                success=success,
                duration_ms=duration_ms,
                error_code=error_code,
                context=context,
            )
            self.telemetry.emit(event)
        except Exception:
            logger.warning("telemetry_observer_failed", extra={"event": name}, exc_info=True)


def _error_details(error: ApiError | None) -> dict[str, Any] | None:
    if error is None:
        return None
    return {"code": error.code, "status_code": error.status_code, "trace_id": error.trace_id}
