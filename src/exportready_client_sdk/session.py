from __future__ import annotations

from dataclasses import dataclass

from .clients.action_client import ActionClient
from .clients.passports_client import PassportsClient
from .config import ClientConfig
from .dispatch import DispatchStation
from .feedback import AudioCuePlayer, FeedbackEmitter, NotificationCenter
from .http_client import HttpClient, TraceContext
from .storage import FileQueueStorage, QueueStorage
from .telemetry import TelemetryLogger


@dataclass
class ApiSession:
    config: ClientConfig
    trace: TraceContext | None = None
    token: str | None = None

    def __post_init__(self) -> None:
        self.trace = self.trace or TraceContext()
        self.token = self.token or self.config.access_token

    def _http(self) -> HttpClient:
        return HttpClient(config=self.config, trace=self.trace)

    def passports_client(self) -> PassportsClient:
        return PassportsClient(http=self._http(), access_token=self.token)

    def action_client(self, action_token: str) -> ActionClient:
        return ActionClient(http=self._http(), access_token=action_token)

    def queue_storage(self) -> FileQueueStorage:
        return FileQueueStorage(directory=self.config.data_dir)

    def feedback(self, notifications: NotificationCenter | None = None) -> FeedbackEmitter:
        return FeedbackEmitter(
            notifications=notifications or NotificationCenter(),
            audio=AudioCuePlayer(enabled=self.config.sound_enabled),
        )

    def dispatch_station(
        self,
        storage: QueueStorage | None = None,
        feedback: FeedbackEmitter | None = None,
        telemetry: TelemetryLogger | None = None,
    ) -> DispatchStation:
        return DispatchStation(
            storage or self.queue_storage(),
            self.passports_client(),
            feedback or self.feedback(),
            telemetry or TelemetryLogger(app_name="exportready-dispatch"),
        )
