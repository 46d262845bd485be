from __future__ import annotations

import logging
import time
import uuid
from dataclasses import dataclass, field
from typing import Any, Callable, Mapping

import requests
from requests.adapters import HTTPAdapter

from .config import ClientConfig
from .error_mapper import map_error
from .exceptions import TransportError

logger = logging.getLogger(__name__)

TRACE_HEADER = "X-Request-ID"
_RESPONSE_TRACE_HEADERS = (TRACE_HEADER, "X-Trace-ID")
# A bulk transition that timed out may still have been applied, so only reads are replayed.
RETRYABLE_METHODS = frozenset({"GET", "HEAD"})

ResponseHook = Callable[[requests.Response], None]
RequestHook = Callable[[str, str, dict[str, Any]], None]
JsonBody = dict[str, Any] | list[Any] | None


@dataclass
class TraceContext:
    trace_id: str | None = None

    def ensure(self) -> str:
        if not self.trace_id:
            self.trace_id = uuid.uuid4().hex
        return self.trace_id

    def adopt(self, candidate: object) -> None:
        if isinstance(candidate, str) and candidate:
            self.trace_id = candidate

    def update_from_headers(self, headers: Mapping[str, str]) -> None:
        for name in _RESPONSE_TRACE_HEADERS:
            if headers.get(name):
                self.adopt(headers[name])
                return


@dataclass
class LastOperation:
    module: str
    operation: str
    duration_ms: int
    result: str
    trace_id: str | None


@dataclass
class HttpClient:
    config: ClientConfig
    trace: TraceContext = field(default_factory=TraceContext)
    session: requests.Session | None = None
    before_request: RequestHook | None = None
    after_response: ResponseHook | None = None
    last_operation: LastOperation | None = None

    def __post_init__(self) -> None:
        if self.session is None:
            pool = HTTPAdapter(pool_connections=self.config.max_connections, pool_maxsize=self.config.max_connections)
            self.session = requests.Session()
            for scheme in ("http://", "https://"):
                self.session.mount(scheme, pool)

    def url_for(self, path: str) -> str:
        return f"{self.config.api_base_url.rstrip('/')}/{path.lstrip('/')}"

    def request(
        self,
        method: str,
        path: str,
        *,
        headers: dict[str, str] | None = None,
        json_body: dict[str, Any] | None = None,
        params: dict[str, Any] | None = None,
        module: str = "unknown",
        operation: str = "unknown",
    ) -> JsonBody:
        """Send one call and return its decoded JSON body (``None`` when empty).

        Reads are retried on transport errors and 5xx with exponential
        backoff; every other method is attempted exactly once.
        """
        verb = method.upper()
        url = self.url_for(path)
        send_headers = {"Accept": "application/json", **(headers or {}), TRACE_HEADER: self.trace.ensure()}
        if self.before_request:
            self.before_request(verb, url, {"headers": send_headers, "json_body": json_body, "params": params})

        attempts = 1 + self.config.retries if verb in RETRYABLE_METHODS else 1
        started = time.monotonic()
        response = None
        for attempt in range(1, attempts + 1):
            final = attempt == attempts
            try:
                response = self._send_once(verb, url, send_headers, json_body, params)
            except TransportError:
                if final:
                    self._finish(module, operation, started, "network_error")
                    raise
            else:
                if response.status_code < 500 or final:
                    break
            delay = self.config.retry_backoff_seconds * 2 ** (attempt - 1)
            logger.info("http_retry", extra={"method": verb, "path": path, "attempt": attempt, "delay": delay})
            time.sleep(delay)

        if self.after_response:
            self.after_response(response)
        self.trace.update_from_headers(response.headers)
        if response.ok:
            self._finish(module, operation, started, "success")
            return response.json() if response.content else None

        self._finish(module, operation, started, "error")
        payload = _error_payload(response)
        self.trace.adopt(payload.get("trace_id") or payload.get("request_id"))
        raise map_error(response.status_code, payload, self.trace.trace_id)

    def _send_once(
        self,
        verb: str,
        url: str,
        headers: dict[str, str],
        json_body: dict[str, Any] | None,
        params: dict[str, Any] | None,
    ) -> requests.Response:
        try:
            return self.session.request(
                verb,
                url,
                headers=headers,
                json=json_body,
                params=params,
                timeout=(self.config.connect_timeout_seconds, self.config.read_timeout_seconds),
                verify=self.config.verify_ssl,
            )
        except requests.RequestException as exc:
            logger.warning("http_transport_error", extra={"method": verb, "url": url, "error_type": type(exc).__name__})
            raise TransportError(
                code="TRANSPORT_ERROR",
                message=str(exc) or type(exc).__name__,
                details={"type": type(exc).__name__},
                trace_id=self.trace.trace_id,
                status_code=0,
            ) from exc

    def _finish(self, module: str, operation: str, started: float, result: str) -> None:
        self.last_operation = LastOperation(
            module=module,
            operation=operation,
            duration_ms=round((time.monotonic() - started) * 1000),
            result=result,
            trace_id=self.trace.trace_id,
        )


def _error_payload(response: requests.Response) -> dict[str, Any]:
    try:
        payload = response.json()
    except ValueError:
        return {"message": response.text}
    return payload if isinstance(payload, dict) else {"message": str(payload)}
