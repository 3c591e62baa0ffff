from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable

import pytest

from trivia_run.catalog.loader import InMemoryCatalogProvider
from trivia_run.catalog.models import Catalog
from trivia_run.core.config.settings import AppSettings
from trivia_run.core.engine.engine import TriviaEngine
from trivia_run.storage.lock_store import InMemoryLockStore
from trivia_run.storage.state_store import InMemoryStateStore

START_MS = 1_700_000_000_000


def make_catalog_data(*, categories: int = 8, questions: int = 6) -> dict[str, Any]:
    """
    Raw question bank in the on-disk shape (camelCase answerIndex).
    """
    return {
        "version": 1,
        "categories": [
            {
                "id": f"cat-{c}",
                "name": f"Category {c}",
                "questions": [
                    {
                        "id": f"cat-{c}-q{q}",
                        "prompt": f"Question {q} of category {c}?",
                        "choices": [f"right-{c}-{q}", "wrong-a", "wrong-b", "wrong-c"],
                        "answerIndex": 0,
                        "explanation": f"Because {c}/{q}.",
                    }
                    for q in range(questions)
                ],
            }
            for c in range(categories)
        ],
    }


def make_catalog(**kwargs: Any) -> Catalog:
    return InMemoryCatalogProvider(make_catalog_data(**kwargs)).load_catalog()


class FakeClock:
    def __init__(self, start: int = START_MS) -> None:
        self.now = start

    def now_ms(self) -> int:
        return self.now

    def advance(self, ms: int) -> None:
        self.now += ms


@dataclass
class ManualTimer:
    deadline: int
    callback: Callable[[], None]
    cancelled: bool = False

    def cancel(self) -> None:
        self.cancelled = True


@dataclass
class ManualScheduler:
    """
    Records deadlines; tests fire them explicitly.
    """

    timers: list[ManualTimer] = field(default_factory=list)

    def call_at(self, deadline_ms: int, callback: Callable[[], None]) -> ManualTimer:
        t = ManualTimer(deadline=deadline_ms, callback=callback)
        self.timers.append(t)
        return t

    def pending(self) -> list[ManualTimer]:
        return [t for t in self.timers if not t.cancelled]

    def fire_due(self, now: int) -> int:
        fired = 0
        for t in list(self.timers):
            if not t.cancelled and t.deadline <= now:
                t.cancelled = True
                t.callback()
                fired += 1
        return fired


class IdFactory:
    def __init__(self) -> None:
        self.n = 0

    def __call__(self) -> str:
        self.n += 1
        return f"00000000-0000-4000-8000-{self.n:012d}"


@dataclass
class Harness:
    engine: TriviaEngine
    clock: FakeClock
    scheduler: ManualScheduler
    state_store: InMemoryStateStore
    lock_store: InMemoryLockStore
    settings: AppSettings


def build_harness(
    *,
    state_store: InMemoryStateStore | None = None,
    lock_store: InMemoryLockStore | None = None,
    clock: FakeClock | None = None,
    provider: Any = None,
    daily_play_limit: int = 3,
    seed: int = 12345,
) -> Harness:
    settings = AppSettings(daily_play_limit=daily_play_limit, question_time_limit_ms=20000)
    clock = clock if clock is not None else FakeClock()
    scheduler = ManualScheduler()
    state_store = state_store if state_store is not None else InMemoryStateStore()
    lock_store = lock_store if lock_store is not None else InMemoryLockStore()
    engine = TriviaEngine(
        settings=settings,
        catalog_provider=provider if provider is not None else InMemoryCatalogProvider(make_catalog_data()),
        state_store=state_store,
        lock_store=lock_store,
        clock=clock,
        scheduler=scheduler,
        seed_source=lambda: seed,
        new_id=IdFactory(),
    )
    return Harness(
        engine=engine,
        clock=clock,
        scheduler=scheduler,
        state_store=state_store,
        lock_store=lock_store,
        settings=settings,
    )


@pytest.fixture
def harness() -> Harness:
    h = build_harness()
    h.engine.initialize()
    return h


def answer_current(engine: TriviaEngine, *, correct: bool) -> None:
    q = engine.state.run.current_question
    index = q.answer_index if correct else (q.answer_index + 1) % len(q.choices)
    engine.submit_answer(index)


def enter_question(engine: TriviaEngine) -> None:
    """
    From a `wheel` step, get to a live question whatever the offer type.
    """
    run = engine.state.run
    assert run.current_step == "wheel"
    offer = run.current_offer
    engine.confirm_offer()
    if offer.type == "choice":
        engine.choose_category(offer.options[0])
    assert engine.state.run.current_step == "question"


def win_category(engine: TriviaEngine) -> None:
    enter_question(engine)
    for _ in range(5):
        answer_current(engine, correct=True)
        engine.continue_after_answer()
