from __future__ import annotations

from dataclasses import dataclass


@dataclass(slots=True)
class EngineState:
    """
    Counters that order everything the engine emits.

    - sequence: monotonic number stamped on every published event
    - applied: intents that changed the snapshot
    """

    sequence: int = 0
    applied: int = 0

    def next_sequence(self) -> int:
        self.sequence += 1
        return self.sequence
