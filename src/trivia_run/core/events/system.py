from __future__ import annotations

from dataclasses import dataclass
from typing import Any, ClassVar

from trivia_run.core.events.base import Event


@dataclass(frozen=True, slots=True, kw_only=True)
class RunStarted(Event):
    """
    Emitted when a new run passes the quota gate and is persisted.
    """

    event_type: ClassVar[str] = "run.started"

    run_id: str
    seed: int
    selected_category_ids: tuple[str, ...]


@dataclass(frozen=True, slots=True, kw_only=True)
class CategoryResolved(Event):
    """
    Emitted when the fifth answer of a session has been scored and acknowledged.
    """

    event_type: ClassVar[str] = "run.category_resolved"

    run_id: str
    category_id: str
    correct_count: int
    won: bool
    round_pointer: int


@dataclass(frozen=True, slots=True, kw_only=True)
class RunFinished(Event):
    """
    Emitted once a run reaches the terminal `end` step.
    """

    event_type: ClassVar[str] = "run.finished"

    run_id: str
    wins_count: int
    prize_unlocked: bool


@dataclass(frozen=True, slots=True, kw_only=True)
class RunInvalidated(Event):
    """
    Emitted when a run is discarded by game over or an anti-cheat trigger.
    """

    event_type: ClassVar[str] = "run.invalidated"

    run_id: str
    reason: str


@dataclass(frozen=True, slots=True, kw_only=True)
class TamperDetected(Event):
    """
    Emitted when persisted state fails integrity verification on load.
    """

    event_type: ClassVar[str] = "integrity.tamper_detected"

    detail: str


@dataclass(frozen=True, slots=True, kw_only=True)
class StateChanged(Event):
    """
    Carries the new application snapshot after every accepted intent.
    """

    event_type: ClassVar[str] = "engine.state_changed"

    intent: str
    state: Any
