from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, Iterable, Iterator, Mapping

from pydantic import ValidationError as PydanticValidationError

from .identifiers import extract_unit_id, normalize_unit_id
from .models import ScannedItem
from .storage import PENDING_ITEMS_KEY, QueueStorage, StorageCorruption

logger = logging.getLogger(__name__)

GENERIC_FAILURE_MESSAGE = "Transition failed"


class RejectionReason(str, Enum):
    INVALID_FORMAT = "invalid_format"
    DUPLICATE = "duplicate"


@dataclass(frozen=True)
class EnqueueResult:
    item: ScannedItem | None = None
    rejection: RejectionReason | None = None
    unit_id: str | None = None

    @property
    def accepted(self) -> bool:
        return self.item is not None


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class PendingQueue:
    """Deduplicated scan queue mirrored to durable storage on every mutation.

    Items are kept newest-first. The snapshot under ``key`` always equals the
    in-memory list once a mutating call returns; an empty queue is stored as
    an absent key, never as ``[]``.
    """

    def __init__(
        self,
        storage: QueueStorage,
        *,
        key: str = PENDING_ITEMS_KEY,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.storage = storage
        self.key = key
        self.clock = clock
        self._items: list[ScannedItem] = []

    def __len__(self) -> int:
        return len(self._items)

    def __iter__(self) -> Iterator[ScannedItem]:
        return iter(list(self._items))

    def __contains__(self, unit_id: object) -> bool:
        if not isinstance(unit_id, str):
            return False
        return self.get(unit_id) is not None

    @property
    def items(self) -> list[ScannedItem]:
        return [item.model_copy() for item in self._items]

    @property
    def unit_ids(self) -> list[str]:
        return [item.id for item in self._items]

    def get(self, unit_id: str) -> ScannedItem | None:
        normalized = normalize_unit_id(unit_id)
        for item in self._items:
            if item.id == normalized:
                return item
        return None

    def enqueue(self, raw: str) -> EnqueueResult:
        unit_id = extract_unit_id(raw)
        if unit_id is None:
            return EnqueueResult(rejection=RejectionReason.INVALID_FORMAT)
        if self.get(unit_id) is not None:
            return EnqueueResult(rejection=RejectionReason.DUPLICATE, unit_id=unit_id)
        item = ScannedItem(id=unit_id, raw_value=raw, captured_at=self.clock())
        self._commit([item, *self._items])
        return EnqueueResult(item=item, unit_id=unit_id)

    def remove(self, unit_id: str) -> bool:
        normalized = normalize_unit_id(unit_id)
        remaining = [item for item in self._items if item.id != normalized]
        if len(remaining) == len(self._items):
            return False
        self._commit(remaining)
        return True

    def clear(self) -> None:
        self._commit([])

    def reconcile(self, submitted: Iterable[str], failures: Mapping[str, str | None]) -> list[ScannedItem]:
        """Fold a dispatch result back into the queue.

        Submitted ids absent from ``failures`` are confirmed done and dropped;
        ids in ``failures`` stay, flagged failed with their error text. Items
        that were not part of the submission are left as they are.
        """
        done = set(submitted) - set(failures)
        retained: list[ScannedItem] = []
        for item in self._items:
            if item.id in done:
                continue
            if item.id not in failures:
                retained.append(item)
                continue
            message = failures[item.id] or GENERIC_FAILURE_MESSAGE
            retained.append(item.model_copy(update={"failed": True, "error": message}))
        self._commit(retained)
        return self.items

    def snapshot_to_storage(self) -> None:
        self._persist(self._items)

    def restore_from_storage(self) -> int:
        """Replace in-memory state with the stored snapshot.

        An absent, empty or undecodable snapshot leaves the queue empty; the
        latter two are erased from storage. Returns the number of restored
        items.
        """
        try:
            raw = self.storage.get(self.key)
            restored = _decode_snapshot(raw) if raw is not None else []
        except (StorageCorruption, OSError) as exc:
            logger.warning(
                "queue_snapshot_corrupted",
                extra={"key": self.key, "error": str(exc)},
            )
            self._items = []
            self._discard_snapshot()
            return 0
        self._items = restored
        if not restored and raw is not None:
            self._discard_snapshot()
        return len(restored)

    def _commit(self, items: list[ScannedItem]) -> None:
        # Memory only changes once the write has succeeded.
        self._persist(items)
        self._items = items

    def _persist(self, items: list[ScannedItem]) -> None:
        if not items:
            self.storage.remove(self.key)
            return
        payload = [item.model_dump(mode="json") for item in items]
        self.storage.set(self.key, json.dumps(payload))

    def _discard_snapshot(self) -> None:
        try:
            self.storage.remove(self.key)
        except OSError:
            logger.warning("queue_snapshot_discard_failed", extra={"key": self.key}, exc_info=True)


def _decode_snapshot(raw: str) -> list[ScannedItem]:
    try:
        return _decode_items(raw)
    except StorageCorruption:
        raise
    except (ValueError, TypeError, PydanticValidationError) as exc:
        raise StorageCorruption(f"{type(exc).__name__}: {exc}") from exc


def _decode_items(raw: str) -> list[ScannedItem]:
    parsed = json.loads(raw)
    if not isinstance(parsed, list):
        raise StorageCorruption("queue snapshot must be a JSON array")
    items: list[ScannedItem] = []
    seen: set[str] = set()
    for entry in parsed:
        item = ScannedItem.model_validate(entry)
        unit_id = extract_unit_id(item.id)
        if unit_id is None:
            raise StorageCorruption(f"queue snapshot holds a malformed unit id: {item.id!r}")
        if unit_id in seen:
            continue
        seen.add(unit_id)
        items.append(item.model_copy(update={"id": unit_id}))
    return items
