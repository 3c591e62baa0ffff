from __future__ import annotations

from typing import Sequence


class TriviaError(Exception):
    """
    Base class for errors raised by the trivia core.
    """


class InvalidBound(TriviaError, ValueError):
    """
    Raised when the sequencer is asked for an index into an empty range.
    """

    def __init__(self, bound: int) -> None:
        super().__init__(f"bound must be positive, got {bound!r}")
        self.bound = bound


class MissingCategoryData(TriviaError, LookupError):
    """
    A run references a category the loaded catalog does not have.

    This means persisted state and catalog have diverged; it is never
    swallowed by the engine.
    """

    def __init__(self, category_id: str) -> None:
        super().__init__(f"Missing category data for {category_id}")
        self.category_id = category_id


class CatalogValidationError(TriviaError):
    """
    Aggregated catalog problems.

    `details` holds one human-readable line per problem so the UI can list them.
    """

    def __init__(self, message: str, details: Sequence[str] = ()) -> None:
        super().__init__(message)
        self.message = message
        self.details: tuple[str, ...] = tuple(details)


class StateUnreadable(TriviaError):
    """
    The durable slot exists but does not hold a readable state document.
    """
