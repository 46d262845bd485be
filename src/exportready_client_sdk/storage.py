from __future__ import annotations

import logging
import os
import re
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Protocol

from platformdirs import user_data_dir

logger = logging.getLogger(__name__)

PENDING_ITEMS_KEY = "dispatch_pending_items"
_SAFE_KEY = re.compile(r"^[A-Za-z0-9_.-]+$")


class StorageCorruption(ValueError):
    """The stored snapshot cannot be turned back into a queue."""


class QueueStorage(Protocol):
    def get(self, key: str) -> str | None: ...

    def set(self, key: str, value: str) -> None: ...

    def remove(self, key: str) -> None: ...


@dataclass
class InMemoryQueueStorage:
    values: dict[str, str] = field(default_factory=dict)

    def get(self, key: str) -> str | None:
        return self.values.get(key)

    def set(self, key: str, value: str) -> None:
        self.values[key] = value

    def remove(self, key: str) -> None:
        self.values.pop(key, None)


@dataclass
class FileQueueStorage:
    """One file per key under the user data directory.

    Writes go to a temp file in the same directory and are swapped in with
    ``os.replace`` so a crash mid-write never leaves a truncated snapshot.
    """

    app_name: str = "exportready"
    directory: str | Path | None = None

    def _base(self) -> Path:
        base = Path(self.directory) if self.directory else Path(user_data_dir(self.app_name, "ExportReady"))
        base.mkdir(parents=True, exist_ok=True)
        return base

    def _path(self, key: str) -> Path:
        if not _SAFE_KEY.match(key):
            raise ValueError(f"Invalid storage key: {key!r}")
        return self._base() / f"{key}.json"

    def get(self, key: str) -> str | None:
        path = self._path(key)
        if not path.exists():
            return None
        try:
            return path.read_text(encoding="utf-8")
        except UnicodeDecodeError as exc:
            raise StorageCorruption(f"{path.name} is not valid UTF-8") from exc

    def set(self, key: str, value: str) -> None:
        path = self._path(key)
        fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{key}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                fh.write(value)
                fh.flush()
                os.fsync(fh.fileno())
            try:
                os.chmod(tmp_name, 0o600)
            except OSError:
                pass
            os.replace(tmp_name, path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise

    def remove(self, key: str) -> None:
        path = self._path(key)
        if path.exists():
            path.unlink()
            logger.debug("storage_key_removed", extra={"key": key})
