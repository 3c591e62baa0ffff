from __future__ import annotations

from typing import Annotated, Literal, Union

from pydantic import BaseModel, ConfigDict, Field

from trivia_run.catalog.models import Question

QUESTION_BATCH_SIZE = 5
RUN_CATEGORY_COUNT = 7
TOTAL_ROUNDS = 5
CHOICE_ROUNDS = 3
PRIZE_WIN_THRESHOLD = 4

Step = Literal["wheel", "roundChoice", "question", "answer", "end"]
OfferType = Literal["choice", "forced"]
CategoryOutcome = Literal["unplayed", "won", "lost"]


class _Record(BaseModel):
    # Immutable records: updates go through model_copy(update=...)
    model_config = ConfigDict(frozen=True, extra="ignore")


class Offer(_Record):
    type: OfferType
    options: tuple[str, ...]


class QuestionTimer(_Record):
    deadline: int
    duration: int


class AnswerRecord(_Record):
    question_id: str
    selected_index: int | None
    correct: bool
    prompt: str
    explanation: str = ""


class QuestionSession(_Record):
    category_id: str
    questions: tuple[Question, ...] = Field(..., min_length=QUESTION_BATCH_SIZE, max_length=QUESTION_BATCH_SIZE)
    index: int = 0
    answers: tuple[AnswerRecord, ...] = ()
    correct_count: int = 0

    @property
    def answered(self) -> int:
        return len(self.answers)

    @property
    def current(self) -> Question:
        return self.questions[self.index]


class QuestionResult(_Record):
    kind: Literal["question"] = "question"
    correct: bool
    prompt: str
    explanation: str = ""
    question_number: int
    total_in_category: int = QUESTION_BATCH_SIZE
    timed_out: bool = False


class CategoryResult(_Record):
    kind: Literal["category"] = "category"
    category_id: str
    correct_count: int
    total: int = QUESTION_BATCH_SIZE
    won: bool


LastResult = Annotated[Union[QuestionResult, CategoryResult], Field(discriminator="kind")]


class Run(_Record):
    """
    One game attempt.

    Randomness is never stored, only (rand_seed, rand_cursor); everything
    derived from it (offers, batches, choice order) is reproducible.
    state_hash is maintained by the integrity guard, never set directly.
    """

    run_id: str
    rand_seed: int
    rand_cursor: int = 0

    selected_category_ids: tuple[str, ...] = ()
    remaining_category_ids: tuple[str, ...] = ()
    round_pointer: int = Field(default=0, ge=0, le=TOTAL_ROUNDS)
    category_results: dict[str, CategoryOutcome] = Field(default_factory=dict)
    categories_played: tuple[str, ...] = ()

    current_step: Step = "wheel"
    current_offer: Offer | None = None
    current_session: QuestionSession | None = None
    current_question: Question | None = None
    question_timer: QuestionTimer | None = None
    last_result: LastResult | None = None
    wheel_reveal_at: int | None = None

    wins_count: int = 0
    finished: bool = False
    prize_unlocked: bool = False

    action_counter: int = 0
    state_hash: str = ""

    @classmethod
    def fresh(cls, *, run_id: str, seed: int, cursor: int, category_ids: tuple[str, ...]) -> "Run":
        return cls(
            run_id=run_id,
            rand_seed=seed,
            rand_cursor=cursor,
            selected_category_ids=category_ids,
            remaining_category_ids=category_ids,
            category_results={cid: "unplayed" for cid in category_ids},
        )


class QuestionLock(_Record):
    """
    Marker that a question was presented and not yet answered.
    """

    run_id: str
    category_id: str | None = None
    question_id: str | None = None
    presented_at: int
    deadline: int | None = None
