from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Callable

from dotenv import load_dotenv

ENV_PREFIX = "EXPORTREADY_"
_TRUTHY = {"1", "true", "yes", "on"}


class ConfigError(ValueError):
    pass


@dataclass(frozen=True)
class ClientConfig:
    env_name: str
    api_base_url: str
    connect_timeout_seconds: float = 5.0
    read_timeout_seconds: float = 15.0
    retries: int = 3
    retry_backoff_seconds: float = 0.3
    max_connections: int = 20
    verify_ssl: bool = True
    access_token: str | None = None
    sound_enabled: bool = True
    data_dir: str | None = None

    @property
    def normalized_env(self) -> str:
        return self.env_name.lower().strip()


@dataclass(frozen=True)
class _Bound:
    minimum: float
    inclusive: bool

    def accepts(self, value: float) -> bool:
        return value >= self.minimum if self.inclusive else value > self.minimum

    def __str__(self) -> str:
        return f"{'>=' if self.inclusive else '>'} {self.minimum:g}"


_POSITIVE = _Bound(0, inclusive=False)
_NON_NEGATIVE = _Bound(0, inclusive=True)
_AT_LEAST_ONE = _Bound(1, inclusive=True)


def _raw(name: str) -> str | None:
    value = os.getenv(ENV_PREFIX + name)
    if value is None or not value.strip():
        return None
    return value.strip()


def _number(name: str, default: float, parse: Callable[[str], float], bound: _Bound) -> float:
    raw = _raw(name)
    kind = "an integer" if parse is int else "a number"
    try:
        value = parse(raw) if raw is not None else default
    except ValueError as exc:
        raise ConfigError(f"Invalid {ENV_PREFIX}{name}: expected {kind}, got {raw!r}") from exc
    if not bound.accepts(value):
        raise ConfigError(f"Invalid {ENV_PREFIX}{name}: expected {bound}, got {value}")
    return value


def _flag(name: str, default: bool) -> bool:
    raw = _raw(name)
    return default if raw is None else raw.lower() in _TRUTHY


def load_config(env_file: str | None = None) -> ClientConfig:
    """Build the client config from ``EXPORTREADY_*`` variables.

    ``env_file`` is loaded first without overriding variables that are
    already set. ``EXPORTREADY_API_BASE_URL_<ENV>`` takes precedence over
    the plain base URL so one .env can carry several profiles.
    """
    load_dotenv(env_file)

    env_name = _raw("ENV") or "dev"
    base_url = _raw(f"API_BASE_URL_{env_name.upper()}") or _raw("API_BASE_URL")

    # The legacy single timeout seeds both connect and read defaults.
    overall = _number("TIMEOUT_SECONDS", 10.0, float, _POSITIVE)
    connect = _number("CONNECT_TIMEOUT_SECONDS", min(overall, 5.0), float, _POSITIVE)
    read = _number("READ_TIMEOUT_SECONDS", max(overall, connect), float, _POSITIVE)
    retries = int(_number("RETRIES", 3, int, _NON_NEGATIVE))
    backoff = _number("RETRY_BACKOFF_SECONDS", 0.3, float, _NON_NEGATIVE)
    max_connections = int(_number("MAX_CONNECTIONS", 20, int, _AT_LEAST_ONE))

    if not base_url:
        raise ConfigError(f"Missing required config values: {ENV_PREFIX}API_BASE_URL")

    return ClientConfig(
        env_name=env_name,
        api_base_url=base_url.rstrip("/"),
        connect_timeout_seconds=connect,
        read_timeout_seconds=read,
        retries=retries,
        retry_backoff_seconds=backoff,
        max_connections=max_connections,
        verify_ssl=_flag("VERIFY_SSL", True),
        access_token=_raw("ACCESS_TOKEN"),
        sound_enabled=_flag("SOUND_ENABLED", True),
        data_dir=_raw("DATA_DIR"),
    )
