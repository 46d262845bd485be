from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import List

from pydantic import BaseModel, ConfigDict, Field


class Status(str, Enum):
    CREATED = "CREATED"
    SHIPPED = "SHIPPED"
    IN_SERVICE = "IN_SERVICE"
    RETURN_REQUESTED = "RETURN_REQUESTED"
    RETURNED = "RETURNED"
    RECYCLED = "RECYCLED"
    RECALLED = "RECALLED"


class ActorRole(str, Enum):
    MANUFACTURER = "MANUFACTURER"
    LOGISTICS = "LOGISTICS"
    TECHNICIAN = "TECHNICIAN"
    RECYCLER = "RECYCLER"
    CUSTOMER = "CUSTOMER"
    UNVERIFIED = "UNVERIFIED"


class ScannedItem(BaseModel):
    id: str
    raw_value: str
    captured_at: datetime
    failed: bool = False
    error: str | None = None


class Passport(BaseModel):
    model_config = ConfigDict(extra="allow")

    uuid: str
    serial_number: str | None = None
    status: Status


class Actor(BaseModel):
    model_config = ConfigDict(extra="allow")

    email: str
    role: str


class BulkTransitionRequest(BaseModel):
    passport_ids: List[str]
    to_status: Status
    metadata: dict[str, str] = Field(default_factory=dict)


class BulkTransitionResult(BaseModel):
    model_config = ConfigDict(extra="allow")

    passport_id: str
    success: bool
    error: str | None = None


class BulkTransitionResponse(BaseModel):
    model_config = ConfigDict(extra="allow")

    success_count: int = 0
    failed_count: int = 0
    results: List[BulkTransitionResult] | None = None


class DispatchBatch(BaseModel):
    unit_ids: List[str]
    target_status: Status
    metadata: dict[str, str] = Field(default_factory=dict)

    def to_request(self) -> BulkTransitionRequest:
        return BulkTransitionRequest(
            passport_ids=list(self.unit_ids),
            to_status=self.target_status,
            metadata=dict(self.metadata),
        )


class ActionInfo(BaseModel):
    model_config = ConfigDict(extra="allow")

    passport: Passport
    actor: Actor
    allowed_transitions: List[Status] = Field(default_factory=list)


class TransitionRequest(BaseModel):
    to_status: Status
    metadata: dict[str, str] = Field(default_factory=dict)
    partner_code: str | None = None


class TransitionResponse(BaseModel):
    model_config = ConfigDict(extra="allow")

    success: bool = True
    previous_status: Status | None = None
    new_status: Status | None = None
    actor: str | None = None
    role: str | None = None
    event_id: str | None = None
    points_awarded: int = 0


class PartnerCode(BaseModel):
    code: str
    role: ActorRole
    description: str | None = None
    max_uses: int | None = None
    current_uses: int = 0
    expires_at: datetime | None = None
    is_active: bool = True
