from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field

MIN_CATEGORIES = 7


class Question(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    prompt: str
    choices: tuple[str, ...] = Field(..., min_length=2, max_length=6)
    answer_index: int = Field(..., ge=0)
    explanation: str = ""
    difficulty: str = "normal"
    tags: tuple[str, ...] = ()


class Category(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    questions: tuple[Question, ...]


class Catalog(BaseModel):
    """
    Normalized question bank.

    Construction goes through a loader that has already checked every entry,
    so the engine trusts ids and answer indexes found here.
    """

    model_config = ConfigDict(frozen=True)

    version: int | str = 1
    categories: tuple[Category, ...]

    def category(self, category_id: str) -> Category | None:
        for c in self.categories:
            if c.id == category_id:
                return c
        return None

    def category_ids(self) -> tuple[str, ...]:
        return tuple(c.id for c in self.categories)
