from __future__ import annotations

import io

from exportready_client_sdk.feedback import (
    CUES,
    AudioCuePlayer,
    FeedbackEmitter,
    FeedbackKind,
    NotificationCenter,
    TerminalBellSink,
    Tone,
)


class CountingFactory:
    def __init__(self) -> None:
        self.created = 0
        self.tones: list[Tone] = []

    def __call__(self) -> "CountingFactory":
        self.created += 1
        return self

    def play(self, tone: Tone) -> None:
        self.tones.append(tone)


class BrokenSink:
    def play(self, tone: Tone) -> None:
        raise OSError("no audio device")


def test_cues_are_distinct() -> None:
    assert CUES[FeedbackKind.ACCEPTED] == Tone(880, 100, end_frequency_hz=1760)
    assert CUES[FeedbackKind.DUPLICATE].frequency_hz == 300
    assert CUES[FeedbackKind.REJECTED].duration_ms == 300
    assert len({tone.frequency_hz for tone in CUES.values()}) == 3


def test_unlock_creates_one_sink() -> None:
    factory = CountingFactory()
    player = AudioCuePlayer(factory)

    assert player.play(FeedbackKind.ACCEPTED) is False
    player.unlock()
    player.unlock()
    player.unlock()

    assert factory.created == 1
    assert player.play(FeedbackKind.ACCEPTED) is True
    assert factory.tones == [CUES[FeedbackKind.ACCEPTED]]


def test_broken_audio_is_silent() -> None:
    player = AudioCuePlayer(BrokenSink)
    player.unlock()
    assert player.play(FeedbackKind.REJECTED) is False

    def _no_device():
        raise RuntimeError("audio backend missing")

    failing = AudioCuePlayer(_no_device)
    failing.unlock()
    assert failing.sink is None
    assert failing.play(FeedbackKind.DUPLICATE) is False


def test_muted_player_never_plays() -> None:
    factory = CountingFactory()
    player = AudioCuePlayer(factory, enabled=False)
    player.unlock()

    assert player.play(FeedbackKind.ACCEPTED) is False
    assert factory.tones == []


def test_terminal_bell_sink_writes_bel() -> None:
    stream = io.StringIO()
    TerminalBellSink(stream).play(CUES[FeedbackKind.ACCEPTED])
    assert stream.getvalue() == "\a"


def test_emitter_pushes_toasts_and_tones() -> None:
    factory = CountingFactory()
    audio = AudioCuePlayer(factory)
    audio.unlock()
    center = NotificationCenter()
    emitter = FeedbackEmitter(center, audio)

    emitter.accepted("unit-1")
    emitter.duplicate("unit-1")
    emitter.rejected("junk")
    emitter.dispatched(4)

    levels = [message["level"] for message in center.messages]
    assert levels == ["success", "warning", "error", "success"]
    assert center.messages[3]["title"] == "Successfully dispatched 4 units!"
    assert factory.tones == [CUES[FeedbackKind.ACCEPTED], CUES[FeedbackKind.DUPLICATE], CUES[FeedbackKind.REJECTED]]
    assert center.render()["count"] == 4


def test_emitter_survives_broken_notifications() -> None:
    class BrokenCenter(NotificationCenter):
        def push(self, **kwargs):
            raise RuntimeError("toast layer gone")

    emitter = FeedbackEmitter(BrokenCenter())
    emitter.accepted("unit-1")
    emitter.info("hello")
