from __future__ import annotations

import structlog

from trivia_run.catalog.loader import DirectoryCatalogProvider
from trivia_run.core.config.settings import AppSettings
from trivia_run.core.engine.engine import TriviaEngine
from trivia_run.storage.lock_store import InMemoryLockStore, JsonFileLockStore, LockStore
from trivia_run.storage.state_store import JsonFileStateStore

log = structlog.get_logger()


def build_engine(settings: AppSettings) -> TriviaEngine:
    """
    Wire an engine against the file-backed stores named in settings.

    The engine is returned uninitialized; callers decide when to restore state.
    """
    lock_store: LockStore
    if settings.lock_path is not None:
        lock_store = JsonFileLockStore(path=settings.lock_path)
    else:
        lock_store = InMemoryLockStore()

    engine = TriviaEngine(
        settings=settings,
        catalog_provider=DirectoryCatalogProvider(root=settings.questions_dir),
        state_store=JsonFileStateStore(path=settings.state_path),
        lock_store=lock_store,
    )

    log.info(
        "engine.assembled",
        state_path=str(settings.state_path),
        lock_store=type(lock_store).__name__,
        questions_dir=str(settings.questions_dir),
        daily_play_limit=settings.daily_play_limit,
        question_time_limit_ms=settings.question_time_limit_ms,
    )
    return engine
