from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict

from trivia_run.catalog.models import Category
from trivia_run.core.run.prize import SHOP_ITEM, Purchase, ShopItem
from trivia_run.core.run.state import Run

QuestionStatus = Literal["loading", "ready", "error"]
Screen = Literal["loading", "home", "error", "wheel", "roundChoice", "question", "answer", "end"]
ModalType = Literal["shop", "prizeCard", "claim"]


class QuestionError(BaseModel):
    model_config = ConfigDict(frozen=True)

    message: str
    details: tuple[str, ...] = ()


class Modal(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: ModalType
    token: str | None = None
    purchase: Purchase | None = None


class AppState(BaseModel):
    """
    The snapshot handed to the presentation layer after every accepted intent.

    Never mutated in place; the engine swaps in a new instance.
    """

    model_config = ConfigDict(frozen=True)

    question_status: QuestionStatus = "loading"
    question_error: QuestionError | None = None
    screen: Screen = "loading"
    categories: tuple[Category, ...] = ()
    run: Run | None = None
    purchases: tuple[Purchase, ...] = ()
    shop_inventory: tuple[ShopItem, ...] = (SHOP_ITEM,)
    prize_claimed_at: int | None = None
    message: str = ""
    tamper_detected: bool = False
    last_invalidation: str | None = None
    modal: Modal | None = None
    play_log: tuple[int, ...] = ()
    closed_until: int | None = None
    daily_limit: int = 3

    def to_public_dict(self) -> dict[str, Any]:
        return self.model_dump(mode="json")


def screen_for(run: Run | None) -> Screen:
    if run is None:
        return "home"
    return "end" if run.finished else run.current_step
