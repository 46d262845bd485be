from __future__ import annotations

import json
import os
from dataclasses import dataclass, field, fields
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, TextIO

from platformdirs import user_log_dir

TELEMETRY_CATEGORIES = frozenset({"scan", "dispatch", "transition", "storage", "error"})
TELEMETRY_ENV_VAR = "EXPORTREADY_TELEMETRY_ENABLED"

# Unit ids and counts are fine; anything that identifies a person or grants access is not.
_PII_KEYS = frozenset({"email", "password", "token", "authorization", "partner_code", "phone"})


@dataclass(frozen=True)
class TelemetryEvent:
    category: str
    name: str
    action: str
    timestamp_utc: str
    success: bool | None = None
    duration_ms: int | None = None
    error_code: str | None = None
    trace_id: str | None = None
    context: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {}
        for item in fields(self):
            value = getattr(self, item.name)
            if value is None or value == {}:
                continue
            payload[item.name] = value
        return payload


def build_event(
    *,
    category: str,
    name: str,
    action: str,
    success: bool | None = None,
    duration_ms: int | None = None,
    error_code: str | None = None,
    trace_id: str | None = None,
    context: dict[str, Any] | None = None,
    now: datetime | None = None,
) -> TelemetryEvent:
    if category not in TELEMETRY_CATEGORIES:
        raise ValueError(f"Unsupported telemetry category: {category}")
    leaked = sorted(key for key in (context or {}) if key.lower() in _PII_KEYS)
    if leaked:
        raise ValueError(f"PII-like keys are forbidden in telemetry context: {leaked}")
    return TelemetryEvent(
        category=category,
        name=name,
        action=action,
        timestamp_utc=(now or datetime.now(timezone.utc)).isoformat(),
        success=success,
        duration_ms=duration_ms,
        error_code=error_code,
        trace_id=trace_id,
        context=dict(context or {}),
    )


def telemetry_enabled_from_env() -> bool:
    return os.getenv(TELEMETRY_ENV_VAR, "").strip().lower() in {"1", "true", "yes", "on"}


class TelemetryLogger:
    """Appends one JSON object per line; off unless explicitly enabled."""

    def __init__(
        self,
        *,
        app_name: str,
        enabled: bool | None = None,
        log_file: str | Path | None = None,
        stdout_stream: TextIO | None = None,
    ) -> None:
        self.app_name = app_name
        self.enabled = telemetry_enabled_from_env() if enabled is None else enabled
        if log_file is None:
            log_file = Path(user_log_dir("exportready", "ExportReady")) / f"{app_name}.jsonl"
        self.log_file = Path(log_file)
        self.stdout_stream = stdout_stream

    def emit(self, event: TelemetryEvent) -> bool:
        if not self.enabled:
            return False
        line = json.dumps({"app_name": self.app_name, **event.to_dict()}, sort_keys=True)
        self.log_file.parent.mkdir(parents=True, exist_ok=True)
        with self.log_file.open("a", encoding="utf-8") as handle:
            handle.write(line + "\n")
        if self.stdout_stream is not None:
            print(line, file=self.stdout_stream, flush=True)
        return True
