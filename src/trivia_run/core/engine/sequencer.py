"""
Deterministic sequencer.

Every random decision in a run is a pure function of (seed, cursor). Callers
thread the returned cursor back into the run after each call so the stream
continues where it left off, and a run can be replayed from the persisted pair.
"""

from __future__ import annotations

import math
import secrets
import time
from typing import Sequence, TypeVar

from trivia_run.core.errors import InvalidBound

T = TypeVar("T")

UINT32_MAX = 0xFFFFFFFF

_MULTIPLIER = 12.9898
_OFFSET = 78.233
_SCALE = 43758.5453


def draw(seed: int, cursor: int) -> tuple[float, int]:
    """
    Return (value in [0, 1), cursor + 1).
    """
    if cursor < 0:
        raise ValueError(f"cursor must be >= 0, got {cursor!r}")
    raw = math.sin(seed * _MULTIPLIER + cursor * _OFFSET) * _SCALE
    return raw - math.floor(raw), cursor + 1


def random_index(bound: int, seed: int, cursor: int) -> tuple[int, int]:
    if bound <= 0:
        raise InvalidBound(bound)
    value, next_cursor = draw(seed, cursor)
    # float rounding can land value*bound on bound itself
    return min(int(value * bound), bound - 1), next_cursor


def take_without_replacement(
    items: Sequence[T],
    count: int,
    seed: int,
    cursor: int,
) -> tuple[list[T], int]:
    """
    Draw up to `count` items from a shrinking pool.

    Returns fewer than `count` items when the pool runs out first.
    """
    pool = list(items)
    picked: list[T] = []
    while len(picked) < count and pool:
        index, cursor = random_index(len(pool), seed, cursor)
        picked.append(pool.pop(index))
    return picked, cursor


def shuffle(items: Sequence[T], seed: int, cursor: int) -> tuple[list[T], int]:
    """
    Fisher-Yates, walking from the last index down to 1.
    """
    out = list(items)
    for i in range(len(out) - 1, 0, -1):
        j, cursor = random_index(i + 1, seed, cursor)
        out[i], out[j] = out[j], out[i]
    return out, cursor


def generate_seed() -> int:
    """
    Fresh 32-bit seed from the OS CSPRNG.
    """
    return secrets.randbits(32) or (int(time.time() * 1000) & UINT32_MAX)
