from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Iterable

DAY_MS = 24 * 60 * 60 * 1000


@dataclass(frozen=True, slots=True)
class PlayWindow:
    """
    Result of evaluating the play log at a given instant.

    - pruned: starts within the last 24h, ascending
    - closed_until: ms timestamp the gate reopens at, or None while open
    """

    pruned: tuple[int, ...]
    closed_until: int | None


def evaluate_play_window(log: Iterable[int], *, now: int, limit: int) -> PlayWindow:
    pruned = sorted(t for t in log if now - t < DAY_MS)
    closed_until = pruned[0] + DAY_MS if len(pruned) >= limit else None
    return PlayWindow(pruned=tuple(pruned), closed_until=closed_until)


def is_closed(closed_until: int | None, *, now: int) -> bool:
    return closed_until is not None and closed_until > now


def lockout_message(closed_until: int) -> str:
    reopen = datetime.fromtimestamp(closed_until / 1000).strftime("%H:%M")
    return f"Daily limit reached. Come back after {reopen}."
