from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, Iterable, Mapping

from .identifiers import normalize_unit_id
from .models import (
    ActionInfo,
    ActorRole,
    BulkTransitionResponse,
    BulkTransitionResult,
    PartnerCode,
    Passport,
    Status,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MetadataField:
    key: str
    label: str
    required: bool = False


NOTES_FIELD = MetadataField("notes", "Additional notes")

STATUS_METADATA_FIELDS: dict[Status, tuple[MetadataField, ...]] = {
    Status.CREATED: (),
    Status.SHIPPED: (
        MetadataField("carrier", "Carrier name"),
        MetadataField("tracking_number", "Tracking number / AWB"),
    ),
    Status.IN_SERVICE: (MetadataField("vehicle_vin", "Vehicle VIN or device ID"),),
    Status.RETURN_REQUESTED: (MetadataField("return_reason", "Return reason"),),
    Status.RETURNED: (MetadataField("return_reason", "Return reason"),),
    Status.RECYCLED: (MetadataField("recycling_cert", "Recycling certificate number"),),
    Status.RECALLED: (MetadataField("recall_reference", "Recall reference"),),
}

REQUIRED_DISPATCH_FIELDS: dict[Status, tuple[str, ...]] = {
    Status.SHIPPED: ("carrier",),
}

TRANSITION_POINTS: dict[Status, int] = {
    Status.IN_SERVICE: 50,
    Status.RETURN_REQUESTED: 20,
    Status.RECYCLED: 100,
}


def metadata_fields_for(status: Status | str) -> tuple[MetadataField, ...]:
    target = Status(status)
    return STATUS_METADATA_FIELDS.get(target, ()) + (NOTES_FIELD,)


def required_dispatch_fields(status: Status | str) -> tuple[str, ...]:
    return REQUIRED_DISPATCH_FIELDS.get(Status(status), ())


@dataclass(frozen=True)
class TransitionActionAvailability:
    options: tuple[Status, ...]
    metadata_fields: tuple[MetadataField, ...]
    requires_partner_code: bool
    can_submit: bool
    blocked_reason: str | None = None


def transition_action_availability(
    info: ActionInfo,
    *,
    selected: Status | str | None = None,
    partner_code: str | None = None,
) -> TransitionActionAvailability:
    """Describe what the action page may offer for this passport/actor pair.

    Options come straight from the server's ``allowed_transitions``; nothing
    here decides legality on its own.
    """
    options = tuple(info.allowed_transitions)
    requires_code = info.actor.role.upper() == ActorRole.UNVERIFIED.value
    target = Status(selected) if selected else None
    fields = metadata_fields_for(target) if target else ()

    blocked: str | None = None
    if not options:
        blocked = "No transitions are available for this passport"
    elif target is None:
        blocked = "Select a new status"
    elif target not in options:
        blocked = f"{target.value} is not an allowed transition"
    elif requires_code and not (partner_code or "").strip():
        blocked = "Partner code is required"
    return TransitionActionAvailability(
        options=options,
        metadata_fields=fields,
        requires_partner_code=requires_code,
        can_submit=blocked is None,
        blocked_reason=blocked,
    )


# Reference model of the server-side state machine. Clients render from the
# action-info response; this table backs TransitionAuthority only.
ALLOWED_TRANSITIONS: dict[Status, frozenset[Status]] = {
    Status.CREATED: frozenset({Status.SHIPPED}),
    Status.SHIPPED: frozenset({Status.IN_SERVICE, Status.RETURNED, Status.RECALLED}),
    Status.IN_SERVICE: frozenset({Status.RETURN_REQUESTED, Status.RETURNED, Status.RECALLED}),
    Status.RETURN_REQUESTED: frozenset({Status.RETURNED, Status.RECALLED}),
    Status.RETURNED: frozenset({Status.RECYCLED, Status.IN_SERVICE}),
    Status.RECALLED: frozenset({Status.RECYCLED}),
    Status.RECYCLED: frozenset(),
}

ROLE_TARGETS: dict[ActorRole, frozenset[Status]] = {
    ActorRole.LOGISTICS: frozenset({Status.SHIPPED, Status.RETURNED}),
    ActorRole.TECHNICIAN: frozenset({Status.IN_SERVICE, Status.RETURN_REQUESTED, Status.RETURNED}),
    ActorRole.RECYCLER: frozenset({Status.RETURNED, Status.RECYCLED}),
    ActorRole.CUSTOMER: frozenset({Status.RETURN_REQUESTED}),
    ActorRole.UNVERIFIED: frozenset(),
}

# Stable display order for allowed transition lists.
_STATUS_ORDER = {status: index for index, status in enumerate(Status)}


def _ordered(statuses: Iterable[Status]) -> list[Status]:
    return sorted(statuses, key=_STATUS_ORDER.__getitem__)


def is_valid_transition(current: Status | str, target: Status | str) -> bool:
    return Status(target) in ALLOWED_TRANSITIONS.get(Status(current), frozenset())


def allowed_transitions(current: Status | str, role: ActorRole | str | None = None) -> list[Status]:
    legal = ALLOWED_TRANSITIONS.get(Status(current), frozenset())
    if role is None:
        return _ordered(legal)
    actor_role = ActorRole(role)
    if actor_role is ActorRole.MANUFACTURER:
        return _ordered(legal)
    return _ordered(legal & ROLE_TARGETS.get(actor_role, frozenset()))


@dataclass(frozen=True)
class TransitionResult:
    passport_id: str
    success: bool
    previous_status: Status | None = None
    new_status: Status | None = None
    error: str | None = None
    points_awarded: int = 0
    event_id: str | None = None


@dataclass
class PassportEvent:
    id: str
    passport_id: str
    actor: str
    previous_status: Status
    new_status: Status
    metadata: dict[str, str]
    created_at: datetime


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class TransitionAuthority:
    """In-process model of the passport status transition service.

    Mirrors the server contract: legality from ``ALLOWED_TRANSITIONS``,
    role gating for non-manufacturers, and partner-code verification for
    unverified actors. Bulk calls never stop at the first failure; each id
    gets its own result.
    """

    passports: dict[str, Passport] = field(default_factory=dict)
    partner_codes: dict[str, PartnerCode] = field(default_factory=dict)
    clock: Callable[[], datetime] = _utcnow
    events: list[PassportEvent] = field(default_factory=list)

    def register(self, passport_id: str, status: Status | str = Status.CREATED, serial_number: str | None = None) -> Passport:
        unit_id = normalize_unit_id(passport_id) or passport_id
        passport = Passport(uuid=unit_id, serial_number=serial_number, status=Status(status))
        self.passports[unit_id] = passport
        return passport

    def add_partner_code(self, code: PartnerCode) -> None:
        self.partner_codes[code.code.upper()] = code

    def resolve_partner_code(self, code: str | None) -> PartnerCode | None:
        if not code or not code.strip():
            return None
        candidate = self.partner_codes.get(code.strip().upper())
        if candidate is None or not candidate.is_active:
            return None
        if candidate.expires_at is not None and candidate.expires_at <= self.clock():
            return None
        if candidate.max_uses is not None and candidate.current_uses >= candidate.max_uses:
            return None
        return candidate

    def effective_role(self, role: ActorRole | str, partner_code: str | None = None) -> ActorRole | None:
        actor_role = ActorRole(role)
        if actor_role is not ActorRole.UNVERIFIED:
            return actor_role
        code = self.resolve_partner_code(partner_code)
        return code.role if code else None

    def allowed_for(self, passport_id: str, role: ActorRole | str, partner_code: str | None = None) -> list[Status]:
        passport = self._passport(passport_id)
        if passport is None:
            return []
        effective = self.effective_role(role, partner_code)
        if effective is None:
            return []
        return allowed_transitions(passport.status, effective)

    def action_info(self, passport_id: str, *, email: str, role: ActorRole | str) -> ActionInfo:
        passport = self._passport(passport_id)
        if passport is None:
            raise KeyError(passport_id)
        actor_role = ActorRole(role)
        if actor_role is ActorRole.UNVERIFIED:
            # Until a code is presented the actor may see every legal move.
            options = allowed_transitions(passport.status)
        else:
            options = allowed_transitions(passport.status, actor_role)
        return ActionInfo.model_validate(
            {
                "passport": passport.model_dump(),
                "actor": {"email": email, "role": actor_role.value},
                "allowed_transitions": options,
            }
        )

    def transition(
        self,
        passport_id: str,
        to_status: Status | str,
        *,
        actor: str,
        role: ActorRole | str = ActorRole.MANUFACTURER,
        metadata: Mapping[str, str] | None = None,
        partner_code: str | None = None,
    ) -> TransitionResult:
        unit_id = normalize_unit_id(passport_id) or passport_id
        passport = self._passport(unit_id)
        if passport is None:
            return TransitionResult(passport_id=unit_id, success=False, error="Passport not found")
        target = Status(to_status)
        previous = passport.status

        if not is_valid_transition(previous, target):
            allowed = ", ".join(status.value for status in allowed_transitions(previous)) or "none"
            return TransitionResult(
                passport_id=unit_id,
                success=False,
                previous_status=previous,
                error=f"Invalid transition from {previous.value} to {target.value}. Allowed: {allowed}",
            )

        actor_role = ActorRole(role)
        code: PartnerCode | None = None
        if actor_role is ActorRole.UNVERIFIED:
            code = self.resolve_partner_code(partner_code)
            if code is None:
                return TransitionResult(
                    passport_id=unit_id,
                    success=False,
                    previous_status=previous,
                    error="Invalid or expired partner code",
                )
            actor_role = code.role

        if actor_role is not ActorRole.MANUFACTURER and target not in ROLE_TARGETS.get(actor_role, frozenset()):
            return TransitionResult(
                passport_id=unit_id,
                success=False,
                previous_status=previous,
                error=f"Role {actor_role.value} is not permitted to transition from {previous.value} to {target.value}",
            )

        if code is not None:
            code.current_uses += 1

        passport.status = target
        event = PassportEvent(
            id=str(uuid.uuid4()),
            passport_id=unit_id,
            actor=actor,
            previous_status=previous,
            new_status=target,
            metadata={**dict(metadata or {}), "actor_role": actor_role.value},
            created_at=self.clock(),
        )
        self.events.append(event)
        logger.info(
            "passport_transitioned",
            extra={"passport_id": unit_id, "from_status": previous.value, "to_status": target.value},
        )
        return TransitionResult(
            passport_id=unit_id,
            success=True,
            previous_status=previous,
            new_status=target,
            points_awarded=TRANSITION_POINTS.get(target, 0),
            event_id=event.id,
        )

    def bulk_transition(
        self,
        passport_ids: Iterable[str],
        to_status: Status | str,
        *,
        actor: str,
        role: ActorRole | str = ActorRole.MANUFACTURER,
        metadata: Mapping[str, str] | None = None,
    ) -> BulkTransitionResponse:
        results: list[BulkTransitionResult] = []
        for passport_id in passport_ids:
            outcome = self.transition(passport_id, to_status, actor=actor, role=role, metadata=metadata)
            results.append(
                BulkTransitionResult(passport_id=passport_id, success=outcome.success, error=outcome.error)
            )
        succeeded = sum(1 for result in results if result.success)
        return BulkTransitionResponse(
            success_count=succeeded,
            failed_count=len(results) - succeeded,
            results=results,
        )

    def _passport(self, passport_id: str) -> Passport | None:
        return self.passports.get(normalize_unit_id(passport_id) or passport_id)
