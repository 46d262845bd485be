from __future__ import annotations

import logging
import sys
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Protocol, TextIO

logger = logging.getLogger(__name__)


class FeedbackKind(str, Enum):
    ACCEPTED = "accepted"
    DUPLICATE = "duplicate"
    REJECTED = "rejected"


@dataclass(frozen=True)
class Tone:
    frequency_hz: float
    duration_ms: int
    end_frequency_hz: float | None = None
    waveform: str = "sine"


CUES: dict[FeedbackKind, Tone] = {
    FeedbackKind.ACCEPTED: Tone(880, 100, end_frequency_hz=1760),
    FeedbackKind.DUPLICATE: Tone(300, 100, waveform="square"),
    FeedbackKind.REJECTED: Tone(150, 300, waveform="sawtooth"),
}


class ToneSink(Protocol):
    def play(self, tone: Tone) -> None: ...


@dataclass
class TerminalBellSink:
    stream: TextIO = field(default_factory=lambda: sys.stdout)

    def play(self, tone: Tone) -> None:
        self.stream.write("\a")
        self.stream.flush()


class AudioCuePlayer:
    """Plays short cues through a sink created on the first user gesture.

    ``unlock`` builds the sink once; later calls are no-ops. Playback never
    raises: a missing, muted, or broken sink is logged and ignored.
    """

    def __init__(self, sink_factory: Callable[[], ToneSink] | None = TerminalBellSink, *, enabled: bool = True) -> None:
        self.sink_factory = sink_factory
        self.enabled = enabled
        self._sink: ToneSink | None = None
        self._unlocked = False

    @property
    def sink(self) -> ToneSink | None:
        return self._sink

    def unlock(self) -> None:
        if self._unlocked:
            return
        self._unlocked = True
        if self.sink_factory is None:
            return
        try:
            self._sink = self.sink_factory()
        except Exception:
            logger.debug("audio_unavailable", exc_info=True)
            self._sink = None

    def play(self, kind: FeedbackKind) -> bool:
        if not self.enabled or self._sink is None:
            return False
        try:
            self._sink.play(CUES[kind])
        except Exception:
            logger.debug("audio_cue_failed", extra={"cue": kind.value}, exc_info=True)
            return False
        return True


@dataclass
class NotificationCenter:
    messages: list[dict[str, Any]] = field(default_factory=list)

    def push(self, *, level: str, title: str, message: str = "", details: dict[str, Any] | None = None) -> dict[str, Any]:
        payload = {
            "level": level,
            "title": title,
            "message": message,
            "details": details or {},
        }
        self.messages.append(payload)
        return payload

    def clear(self) -> None:
        self.messages.clear()

    def render(self) -> dict[str, Any]:
        return {"count": len(self.messages), "messages": list(self.messages)}


@dataclass
class FeedbackEmitter:
    notifications: NotificationCenter = field(default_factory=NotificationCenter)
    audio: AudioCuePlayer = field(default_factory=lambda: AudioCuePlayer(enabled=False))

    def accepted(self, unit_id: str) -> None:
        self._emit(FeedbackKind.ACCEPTED, level="success", title="Scanned", message=unit_id)

    def duplicate(self, unit_id: str) -> None:
        self._emit(
            FeedbackKind.DUPLICATE,
            level="warning",
            title="Duplicate: Item already in pending list",
            message=unit_id,
        )

    def rejected(self, raw: str) -> None:
        self._emit(
            FeedbackKind.REJECTED,
            level="error",
            title="Invalid Scan: Could not find valid Passport UUID",
            message=raw,
        )

    def info(self, title: str, message: str = "") -> None:
        self._notify(level="info", title=title, message=message)

    def dispatched(self, count: int) -> None:
        self._notify(level="success", title=f"Successfully dispatched {count} units!")

    def partially_dispatched(self, succeeded: int, failed: int) -> None:
        self._emit(
            FeedbackKind.REJECTED,
            level="warning",
            title=f"Dispatched {succeeded} units. {failed} failed - see list for details",
        )

    def dispatch_failed(self, message: str, details: dict[str, Any] | None = None) -> None:
        self._emit(FeedbackKind.REJECTED, level="error", title=message, details=details)

    def validation_failed(self, message: str) -> None:
        self._notify(level="error", title=message)

    def _emit(self, kind: FeedbackKind, *, level: str, title: str, message: str = "", details: dict[str, Any] | None = None) -> None:
        self._notify(level=level, title=title, message=message, details=details)
        self.audio.play(kind)

    def _notify(self, *, level: str, title: str, message: str = "", details: dict[str, Any] | None = None) -> None:
        try:
            self.notifications.push(level=level, title=title, message=message, details=details)
        except Exception:
            logger.debug("notification_failed", extra={"title": title}, exc_info=True)
