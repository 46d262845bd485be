from .config import ClientConfig, ConfigError, load_config
from .dispatch import DispatchOutcome, DispatchReconciler, DispatchStation, DispatchStatus, fold_bulk_response
from .exceptions import (
    ApiError,
    ForbiddenError,
    InvalidActionTokenError,
    NotFoundError,
    PartnerCodeRejectedError,
    TransitionRoleError,
    TransitionStateError,
    TransportError,
    UnauthorizedError,
    ValidationError,
)
from .feedback import AudioCuePlayer, FeedbackEmitter, FeedbackKind, NotificationCenter, TerminalBellSink
from .http_client import HttpClient, TraceContext
from .identifiers import extract_unit_id, is_unit_id, normalize_unit_id
from .lifecycle import (
    STATUS_METADATA_FIELDS,
    TransitionAuthority,
    allowed_transitions,
    metadata_fields_for,
    transition_action_availability,
)
from .models import (
    ActionInfo,
    Actor,
    ActorRole,
    BulkTransitionResponse,
    BulkTransitionResult,
    PartnerCode,
    Passport,
    ScannedItem,
    Status,
    TransitionRequest,
    TransitionResponse,
)
from .pending_queue import EnqueueResult, PendingQueue, RejectionReason
from .session import ApiSession
from .storage import FileQueueStorage, InMemoryQueueStorage, QueueStorage, StorageCorruption
from .transition_validation import ClientValidationError, ValidationIssue

__all__ = [
    "ActionInfo",
    "Actor",
    "ActorRole",
    "ApiError",
    "ApiSession",
    "AudioCuePlayer",
    "BulkTransitionResponse",
    "BulkTransitionResult",
    "ClientConfig",
    "ClientValidationError",
    "ConfigError",
    "DispatchOutcome",
    "DispatchReconciler",
    "DispatchStation",
    "DispatchStatus",
    "EnqueueResult",
    "FeedbackEmitter",
    "FeedbackKind",
    "FileQueueStorage",
    "ForbiddenError",
    "HttpClient",
    "InMemoryQueueStorage",
    "InvalidActionTokenError",
    "NotFoundError",
    "NotificationCenter",
    "PartnerCode",
    "PartnerCodeRejectedError",
    "Passport",
    "PendingQueue",
    "QueueStorage",
    "RejectionReason",
    "StorageCorruption",
    "STATUS_METADATA_FIELDS",
    "ScannedItem",
    "Status",
    "TerminalBellSink",
    "TraceContext",
    "TransitionAuthority",
    "TransitionRequest",
    "TransitionResponse",
    "TransitionRoleError",
    "TransitionStateError",
    "TransportError",
    "UnauthorizedError",
    "ValidationError",
    "ValidationIssue",
    "allowed_transitions",
    "extract_unit_id",
    "fold_bulk_response",
    "is_unit_id",
    "load_config",
    "metadata_fields_for",
    "normalize_unit_id",
    "transition_action_availability",
]
