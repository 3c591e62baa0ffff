from __future__ import annotations

import json
from pathlib import Path
from typing import Protocol

import structlog
from pydantic import ValidationError

from trivia_run.core.run.state import QuestionLock

log = structlog.get_logger()


class LockStore(Protocol):
    """
    Session-scoped slot for the question lock.

    Its presence when the engine starts is the refresh signal, so it must
    outlive a restart of the engine within the same session.
    """

    def get_lock(self) -> QuestionLock | None:
        ...

    def set_lock(self, lock: QuestionLock | None) -> None:
        ...


class InMemoryLockStore:
    def __init__(self, lock: QuestionLock | None = None) -> None:
        self._lock = lock

    def get_lock(self) -> QuestionLock | None:
        return self._lock

    def set_lock(self, lock: QuestionLock | None) -> None:
        self._lock = lock


class JsonFileLockStore:
    """
    Lock kept in a small JSON file; removing the file clears it.
    """

    def __init__(self, *, path: Path) -> None:
        self._path = path

    def get_lock(self) -> QuestionLock | None:
        if not self._path.exists():
            return None
        try:
            return QuestionLock.model_validate_json(self._path.read_text(encoding="utf-8"))
        except (OSError, ValidationError) as exc:
            log.error("lock.unreadable", path=str(self._path), error=str(exc))
            return None

    def set_lock(self, lock: QuestionLock | None) -> None:
        if lock is None:
            self._path.unlink(missing_ok=True)
            return
        self._path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self._path.with_suffix(self._path.suffix + ".tmp")
        tmp.write_text(json.dumps(lock.model_dump(mode="json"), sort_keys=True), encoding="utf-8")
        tmp.replace(self._path)
