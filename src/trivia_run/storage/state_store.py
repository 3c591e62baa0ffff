from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Mapping, Protocol

import structlog

from trivia_run.core.errors import StateUnreadable

log = structlog.get_logger()


class StateStore(Protocol):
    """
    Single durable slot holding {"run", "purchases", "play_log", "prize_claimed_at"}.
    """

    def load(self) -> Mapping[str, Any] | None:
        ...

    def save(self, payload: Mapping[str, Any]) -> None:
        ...


class InMemoryStateStore:
    def __init__(self, payload: Mapping[str, Any] | None = None) -> None:
        self._blob: str | None = None
        self.writes = 0
        if payload is not None:
            self._blob = json.dumps(payload)

    def load(self) -> Mapping[str, Any] | None:
        if self._blob is None:
            return None
        return json.loads(self._blob)

    def save(self, payload: Mapping[str, Any]) -> None:
        # serialize so callers never share structure with what is stored
        self._blob = json.dumps(payload, sort_keys=True)
        self.writes += 1


class JsonFileStateStore:
    """
    JSON document on disk.

    Writes go to a tmp file which then replaces the target, so readers never
    see partial JSON.
    """

    def __init__(self, *, path: Path) -> None:
        self._path = path

    @property
    def path(self) -> Path:
        return self._path

    def load(self) -> Mapping[str, Any] | None:
        if not self._path.exists():
            return None
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as exc:
            raise StateUnreadable(f"cannot read state from {self._path}: {exc}") from exc
        if not isinstance(data, dict):
            raise StateUnreadable(f"state in {self._path} is not a JSON object")
        return data

    def save(self, payload: Mapping[str, Any]) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self._path.with_suffix(self._path.suffix + ".tmp")
        tmp.write_text(
            json.dumps(payload, indent=2, sort_keys=True, ensure_ascii=False) + "\n",
            encoding="utf-8",
        )
        tmp.replace(self._path)
        log.debug("state.saved", path=str(self._path))
