from __future__ import annotations

import uuid

IDEMPOTENCY_HEADER = "Idempotency-Key"


def new_idempotency_key() -> str:
    return str(uuid.uuid4())


def idempotency_headers(idempotency_key: str | None = None) -> dict[str, str]:
    return {IDEMPOTENCY_HEADER: idempotency_key or new_idempotency_key()}
