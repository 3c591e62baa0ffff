"""
Run state machine.

Every mutator takes the current run and returns the next one, or None when
the move is structurally invalid (wrong step, unknown option, no session).
None means "nothing happened": the caller must not stamp or persist.

Entropy is consumed in a fixed order from the run's own (seed, cursor):
offer draw, batch shuffle, then one choice shuffle per batch question.
"""

from __future__ import annotations

from dataclasses import dataclass
from math import ceil

from trivia_run.catalog.models import Catalog, Category, Question
from trivia_run.core.engine import sequencer
from trivia_run.core.errors import MissingCategoryData
from trivia_run.core.run.state import (
    CHOICE_ROUNDS,
    PRIZE_WIN_THRESHOLD,
    QUESTION_BATCH_SIZE,
    RUN_CATEGORY_COUNT,
    TOTAL_ROUNDS,
    AnswerRecord,
    CategoryResult,
    Offer,
    OfferType,
    QuestionResult,
    QuestionSession,
    QuestionTimer,
    Run,
)

PASS_THRESHOLD = ceil(QUESTION_BATCH_SIZE / 2)

GAME_OVER_REASON = "Game over. You needed at least 3 correct answers in the category."


@dataclass(frozen=True, slots=True)
class MoveContext:
    catalog: Catalog
    now: int
    question_time_limit_ms: int


@dataclass(frozen=True, slots=True)
class AnswerOutcome:
    run: Run
    game_over: bool


def round_type(pointer: int) -> OfferType:
    return "choice" if pointer < CHOICE_ROUNDS else "forced"


def category_won(session: QuestionSession) -> bool:
    return session.correct_count >= PASS_THRESHOLD


def category_lost_early(session: QuestionSession) -> bool:
    remaining = QUESTION_BATCH_SIZE - session.answered
    return session.correct_count + remaining < PASS_THRESHOLD


# ---------------- Entropy consumers ----------------


def select_categories(catalog: Catalog, seed: int) -> tuple[tuple[str, ...], int]:
    """
    The run's category pool, drawn once at cursor 0.
    """
    picked, cursor = sequencer.take_without_replacement(catalog.categories, RUN_CATEGORY_COUNT, seed, 0)
    return tuple(c.id for c in picked), cursor


def _pick_offer(run: Run, count: int) -> tuple[tuple[str, ...], int]:
    available = run.remaining_category_ids
    amount = min(count, len(available))
    if amount == 0:
        return (), run.rand_cursor

    items, cursor = sequencer.take_without_replacement(available, amount, run.rand_seed, run.rand_cursor)
    if len(items) == amount:
        return tuple(items), cursor
    return available[:amount], cursor


def _pick_batch(category: Category, seed: int, cursor: int) -> tuple[list[Question], int]:
    shuffled, cursor = sequencer.shuffle(category.questions, seed, cursor)
    batch = shuffled[:QUESTION_BATCH_SIZE]
    while len(batch) < QUESTION_BATCH_SIZE:
        batch.append(category.questions[len(batch) % len(category.questions)])
    return batch, cursor


def _shuffle_choices(question: Question, seed: int, cursor: int) -> tuple[Question, int]:
    order, cursor = sequencer.shuffle(range(len(question.choices)), seed, cursor)
    prepared = question.model_copy(
        update={
            "choices": tuple(question.choices[i] for i in order),
            "answer_index": order.index(question.answer_index),
        }
    )
    return prepared, cursor


# ---------------- Transitions ----------------


def _timer(ctx: MoveContext) -> QuestionTimer:
    return QuestionTimer(deadline=ctx.now + ctx.question_time_limit_ms, duration=ctx.question_time_limit_ms)


def schedule_next_round(run: Run, ctx: MoveContext) -> Run:
    if run.round_pointer >= TOTAL_ROUNDS:
        return run.model_copy(
            update={
                "finished": True,
                "prize_unlocked": run.wins_count >= PRIZE_WIN_THRESHOLD,
                "current_step": "end",
                "current_offer": None,
            }
        )

    kind = round_type(run.round_pointer)
    options, cursor = _pick_offer(run, 2 if kind == "choice" else 1)
    return run.model_copy(
        update={
            "rand_cursor": cursor,
            "current_offer": Offer(type=kind, options=options),
            "current_step": "wheel",
            "wheel_reveal_at": ctx.now,
        }
    )


def new_run(*, run_id: str, seed: int, ctx: MoveContext) -> Run:
    category_ids, cursor = select_categories(ctx.catalog, seed)
    run = Run.fresh(run_id=run_id, seed=seed, cursor=cursor, category_ids=category_ids)
    return schedule_next_round(run, ctx)


def begin_session(run: Run, category_id: str, ctx: MoveContext) -> Run:
    category = ctx.catalog.category(category_id)
    if category is None or not category.questions:
        raise MissingCategoryData(category_id)

    batch, cursor = _pick_batch(category, run.rand_seed, run.rand_cursor)
    prepared: list[Question] = []
    for q in batch:
        pq, cursor = _shuffle_choices(q, run.rand_seed, cursor)
        prepared.append(pq)

    session = QuestionSession(category_id=category_id, questions=tuple(prepared))
    return run.model_copy(
        update={
            "rand_cursor": cursor,
            "remaining_category_ids": tuple(c for c in run.remaining_category_ids if c != category_id),
            "current_session": session,
            "current_question": session.current,
            "question_timer": _timer(ctx),
            "current_step": "question",
        }
    )


def confirm_offer(run: Run, ctx: MoveContext) -> Run | None:
    offer = run.current_offer
    if offer is None or run.current_step != "wheel" or not offer.options:
        return None
    if offer.type == "forced":
        return begin_session(run, offer.options[0], ctx)
    return run.model_copy(update={"current_step": "roundChoice"})


def choose_category(run: Run, category_id: str, ctx: MoveContext) -> Run | None:
    offer = run.current_offer
    if offer is None or offer.type != "choice" or run.current_step != "roundChoice":
        return None
    if category_id not in offer.options:
        return None
    return begin_session(run, category_id, ctx)


def record_answer(run: Run, choice_index: int | None, *, timed_out: bool) -> AnswerOutcome | None:
    session = run.current_session
    question = run.current_question
    if run.current_step != "question" or session is None or question is None:
        return None

    correct = not timed_out and choice_index == question.answer_index
    answer = AnswerRecord(
        question_id=question.id,
        selected_index=None if timed_out else choice_index,
        correct=correct,
        prompt=question.prompt,
        explanation=question.explanation,
    )
    session = session.model_copy(
        update={
            "answers": session.answers + (answer,),
            "correct_count": session.correct_count + (1 if correct else 0),
        }
    )
    result = QuestionResult(
        correct=correct,
        prompt=question.prompt,
        explanation=question.explanation,
        question_number=session.answered,
        timed_out=timed_out,
    )
    nxt = run.model_copy(
        update={
            "current_session": session,
            "last_result": result,
            "current_step": "answer",
            "question_timer": None,
        }
    )
    return AnswerOutcome(run=nxt, game_over=category_lost_early(session))


def _resolve_category(run: Run, session: QuestionSession, ctx: MoveContext) -> Run:
    won = category_won(session)
    results = dict(run.category_results)
    results[session.category_id] = "won" if won else "lost"
    resolved = run.model_copy(
        update={
            "category_results": results,
            "wins_count": run.wins_count + (1 if won else 0),
            "categories_played": run.categories_played + (session.category_id,),
            "remaining_category_ids": tuple(c for c in run.remaining_category_ids if c != session.category_id),
            "current_session": None,
            "current_question": None,
            "question_timer": None,
            "last_result": CategoryResult(
                category_id=session.category_id,
                correct_count=session.correct_count,
                won=won,
            ),
            "round_pointer": run.round_pointer + 1,
        }
    )
    return schedule_next_round(resolved, ctx)


def continue_after_answer(run: Run, ctx: MoveContext) -> Run | None:
    session = run.current_session
    if session is None:
        return run.model_copy(update={"current_step": "end" if run.finished else run.current_step})
    if run.current_step != "answer":
        return None

    if session.answered >= QUESTION_BATCH_SIZE:
        return _resolve_category(run, session, ctx)

    session = session.model_copy(update={"index": session.index + 1})
    return run.model_copy(
        update={
            "current_session": session,
            "current_question": session.current,
            "question_timer": _timer(ctx),
            "current_step": "question",
        }
    )
