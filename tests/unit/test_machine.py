from __future__ import annotations

from trivia_run.catalog.loader import InMemoryCatalogProvider
from trivia_run.core.engine import machine
from trivia_run.core.run.state import AnswerRecord, QuestionSession, Run

from conftest import START_MS, make_catalog, make_catalog_data

CATALOG = make_catalog()


def _ctx(catalog=CATALOG, now: int = START_MS) -> machine.MoveContext:
    return machine.MoveContext(catalog=catalog, now=now, question_time_limit_ms=20000)


def _run(seed: int = 4242) -> Run:
    return machine.new_run(run_id="r1", seed=seed, ctx=_ctx())


def test_new_run_selects_seven_distinct_categories_and_first_offer() -> None:
    run = _run()
    assert len(run.selected_category_ids) == 7
    assert len(set(run.selected_category_ids)) == 7
    assert run.remaining_category_ids == run.selected_category_ids
    assert set(run.category_results.values()) == {"unplayed"}
    assert run.current_step == "wheel"
    assert run.current_offer.type == "choice"
    assert len(run.current_offer.options) == 2
    assert set(run.current_offer.options) <= set(run.remaining_category_ids)
    # 7 category draws then 2 offer draws
    assert run.rand_cursor == 9
    assert run.wheel_reveal_at == START_MS


def test_same_seed_reproduces_the_same_run() -> None:
    a = _run(seed=77)
    b = _run(seed=77)
    assert a == b

    a = machine.choose_category(machine.confirm_offer(a, _ctx()), a.current_offer.options[1], _ctx())
    b = machine.choose_category(machine.confirm_offer(b, _ctx()), b.current_offer.options[1], _ctx())
    assert a.current_session == b.current_session
    assert a.rand_cursor == b.rand_cursor


def test_round_types() -> None:
    assert [machine.round_type(p) for p in range(5)] == ["choice", "choice", "choice", "forced", "forced"]


def test_confirm_choice_offer_moves_to_round_choice() -> None:
    run = machine.confirm_offer(_run(), _ctx())
    assert run.current_step == "roundChoice"
    assert run.current_session is None


def test_confirm_without_offer_is_rejected() -> None:
    run = _run().model_copy(update={"current_offer": None})
    assert machine.confirm_offer(run, _ctx()) is None


def test_choose_category_outside_offer_is_rejected() -> None:
    run = machine.confirm_offer(_run(), _ctx())
    outsider = next(c for c in run.selected_category_ids if c not in run.current_offer.options)
    assert machine.choose_category(run, outsider, _ctx()) is None


def test_choose_category_requires_round_choice_step() -> None:
    run = _run()
    assert machine.choose_category(run, run.current_offer.options[0], _ctx()) is None


def test_choose_category_starts_session() -> None:
    run = machine.confirm_offer(_run(), _ctx())
    pick = run.current_offer.options[0]
    run = machine.choose_category(run, pick, _ctx(now=START_MS + 500))

    assert run.current_step == "question"
    assert pick not in run.remaining_category_ids
    assert len(run.current_session.questions) == 5
    assert run.current_question == run.current_session.questions[0]
    assert run.question_timer.deadline == START_MS + 500 + 20000
    assert run.question_timer.duration == 20000
    # 5 question draws for the batch shuffle of 6, 3 draws per 4-choice shuffle
    assert run.rand_cursor == 9 + 5 + 5 * 3


def test_prepared_choices_keep_the_right_answer() -> None:
    run = machine.confirm_offer(_run(), _ctx())
    run = machine.choose_category(run, run.current_offer.options[0], _ctx())
    category = CATALOG.category(run.current_session.category_id)
    originals = {q.id: q for q in category.questions}

    for prepared in run.current_session.questions:
        original = originals[prepared.id]
        assert sorted(prepared.choices) == sorted(original.choices)
        assert prepared.choices[prepared.answer_index] == original.choices[original.answer_index]


def test_small_category_is_padded_by_wraparound() -> None:
    data = make_catalog_data(questions=2)
    catalog = InMemoryCatalogProvider(data).load_catalog()
    run = machine.new_run(run_id="r", seed=5, ctx=_ctx(catalog))
    run = machine.confirm_offer(run, _ctx(catalog))
    run = machine.choose_category(run, run.current_offer.options[0], _ctx(catalog))

    ids = [q.id for q in run.current_session.questions]
    assert len(ids) == 5
    source = [q.id for q in catalog.category(run.current_session.category_id).questions]
    assert set(ids) == set(source)
    assert ids[2:] == [source[0], source[1], source[0]]


def _in_question(run: Run | None = None) -> Run:
    run = machine.confirm_offer(run or _run(), _ctx())
    return machine.choose_category(run, run.current_offer.options[0], _ctx())


def test_answer_outside_question_step_is_rejected() -> None:
    assert machine.record_answer(_run(), 0, timed_out=False) is None


def test_correct_answer_is_scored() -> None:
    run = _in_question()
    outcome = machine.record_answer(run, run.current_question.answer_index, timed_out=False)

    session = outcome.run.current_session
    assert outcome.game_over is False
    assert outcome.run.current_step == "answer"
    assert outcome.run.question_timer is None
    assert session.correct_count == 1
    assert session.answers[0].selected_index == run.current_question.answer_index
    assert outcome.run.last_result.kind == "question"
    assert outcome.run.last_result.question_number == 1
    assert outcome.run.last_result.correct is True


def test_timeout_is_scored_incorrect_without_selection() -> None:
    run = _in_question()
    outcome = machine.record_answer(run, None, timed_out=True)
    answer = outcome.run.current_session.answers[0]
    assert answer.correct is False
    assert answer.selected_index is None
    assert outcome.run.last_result.timed_out is True


def test_three_wrong_answers_is_game_over_on_the_third() -> None:
    run = _in_question()
    for n in range(1, 4):
        q = run.current_question
        outcome = machine.record_answer(run, (q.answer_index + 1) % len(q.choices), timed_out=False)
        assert outcome.game_over is (n == 3)
        run = outcome.run
        if n < 3:
            run = machine.continue_after_answer(run, _ctx())
            assert run.current_step == "question"
            assert run.current_session.index == n


def test_continue_requires_answer_step() -> None:
    run = _in_question()
    assert machine.continue_after_answer(run, _ctx()) is None


def test_continue_without_session_is_passthrough() -> None:
    run = _run()
    out = machine.continue_after_answer(run, _ctx())
    assert out == run


def _session_with(correct: list[bool]) -> QuestionSession:
    run = _in_question()
    session = run.current_session
    answers = tuple(
        AnswerRecord(question_id=q.id, selected_index=0, correct=c, prompt=q.prompt)
        for q, c in zip(session.questions, correct)
    )
    return session.model_copy(
        update={"answers": answers, "correct_count": sum(correct), "index": len(correct) - 1}
    )


def test_category_won_iff_three_of_five() -> None:
    assert machine.category_won(_session_with([True, True, True, False, False]))
    assert not machine.category_won(_session_with([True, True, False, False, False]))


def test_resolution_after_fifth_answer_advances_round() -> None:
    run = _in_question()
    session = _session_with([True, False, True, True, False])
    run = run.model_copy(update={"current_session": session, "current_step": "answer"})

    out = machine.continue_after_answer(run, _ctx())

    assert out.round_pointer == 1
    assert out.wins_count == 1
    assert out.category_results[session.category_id] == "won"
    assert out.categories_played == (session.category_id,)
    assert out.current_session is None
    assert out.last_result.kind == "category"
    assert out.last_result.correct_count == 3
    assert out.current_step == "wheel"
    assert out.current_offer.type == "choice"
    assert set(out.remaining_category_ids) <= set(out.selected_category_ids)


def test_later_rounds_are_forced_single_offers() -> None:
    run = _run().model_copy(update={"round_pointer": 3})
    out = machine.schedule_next_round(run, _ctx())
    assert out.current_offer.type == "forced"
    assert len(out.current_offer.options) == 1

    started = machine.confirm_offer(out, _ctx())
    assert started.current_step == "question"
    assert out.current_offer.options[0] not in started.remaining_category_ids


def test_finishing_unlocks_prize_only_with_four_wins() -> None:
    base = _run().model_copy(update={"round_pointer": 5})

    four = machine.schedule_next_round(base.model_copy(update={"wins_count": 4}), _ctx())
    assert four.finished and four.prize_unlocked
    assert four.current_step == "end"

    three = machine.schedule_next_round(base.model_copy(update={"wins_count": 3}), _ctx())
    assert three.finished and not three.prize_unlocked


def test_offer_is_clamped_to_remaining_pool() -> None:
    run = _run().model_copy(update={"remaining_category_ids": ("cat-1",)})
    out = machine.schedule_next_round(run, _ctx())
    assert out.current_offer.options == ("cat-1",)
