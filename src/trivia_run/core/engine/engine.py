from __future__ import annotations

import threading
from typing import Any, Callable, Iterable, Mapping
from uuid import uuid4

import structlog
from pydantic import ValidationError

from trivia_run.catalog.loader import CatalogProvider
from trivia_run.catalog.models import Catalog
from trivia_run.core.config.settings import AppSettings
from trivia_run.core.engine import integrity, machine
from trivia_run.core.engine.clock import Clock, Scheduler, SystemClock, ThreadingScheduler, TimerHandle
from trivia_run.core.engine.quota import evaluate_play_window, is_closed, lockout_message
from trivia_run.core.engine.sequencer import generate_seed
from trivia_run.core.engine.snapshot import AppState, Modal, QuestionError, screen_for
from trivia_run.core.engine.state import EngineState
from trivia_run.core.errors import CatalogValidationError, StateUnreadable
from trivia_run.core.events.bus import EventBus, Subscription
from trivia_run.core.events.system import (
    CategoryResolved,
    RunFinished,
    RunInvalidated,
    RunStarted,
    StateChanged,
    TamperDetected,
)
from trivia_run.core.logging.setup import bind_context, unbind_context
from trivia_run.core.run import prize
from trivia_run.core.run.prize import SHOP_ITEM, Purchase
from trivia_run.core.run.state import CategoryResult, QuestionLock, Run
from trivia_run.storage.lock_store import LockStore
from trivia_run.storage.state_store import StateStore

log = structlog.get_logger()

RunMutator = Callable[[Run, machine.MoveContext], "Run | None"]

INTENTS: tuple[str, ...] = (
    "start_run",
    "confirm_offer",
    "choose_category",
    "submit_answer",
    "timeout_answer",
    "continue_after_answer",
    "restart_run",
    "report_navigation_violation",
    "report_backgrounding",
    "open_shop",
    "close_modal",
    "purchase_prize",
    "redeem_prize",
    "open_claim",
    "view_prize_card",
    "acknowledge_message",
    "retry_load",
)

# intents that take exactly one argument
ARGUMENT_INTENTS = frozenset(
    {
        "choose_category",
        "submit_answer",
        "purchase_prize",
        "redeem_prize",
        "open_claim",
        "view_prize_card",
    }
)


class TriviaEngine:
    """
    Owns the application snapshot and is the only writer of persisted state.

    Every intent runs under one re-entrant lock: read state, mutate, stamp,
    persist, publish. Timer expiry re-enters through timeout handling on the
    same lock, so a manual answer and a timeout can never both score a question.

    Rejected intents leave state untouched: nothing is stamped, persisted or
    published.
    """

    def __init__(
        self,
        *,
        settings: AppSettings,
        catalog_provider: CatalogProvider,
        state_store: StateStore,
        lock_store: LockStore,
        clock: Clock | None = None,
        scheduler: Scheduler | None = None,
        seed_source: Callable[[], int] = generate_seed,
        new_id: Callable[[], str] = lambda: str(uuid4()),
        bus: EventBus | None = None,
    ) -> None:
        self._settings = settings
        self._provider = catalog_provider
        self._store = state_store
        self._locks = lock_store
        self._clock = clock if clock is not None else SystemClock()
        self._scheduler = scheduler if scheduler is not None else ThreadingScheduler(clock=self._clock)
        self._seed_source = seed_source
        self._new_id = new_id
        self._bus = bus if bus is not None else EventBus()

        self._mutex = threading.RLock()
        self._engine_state = EngineState()
        self._catalog: Catalog | None = None
        self._timer: TimerHandle | None = None
        self._state = AppState(daily_limit=settings.daily_play_limit)

    # ---------------- Observation ----------------

    @property
    def state(self) -> AppState:
        return self._state

    @property
    def bus(self) -> EventBus:
        return self._bus

    @property
    def catalog(self) -> Catalog | None:
        return self._catalog

    def subscribe(self, handler: Callable[[AppState], None]) -> Subscription:
        def _on_state_changed(e: StateChanged) -> None:
            handler(e.state)

        return self._bus.subscribe(event_type=StateChanged.event_type, handler=_on_state_changed)

    def unsubscribe(self, subscription: Subscription) -> None:
        self._bus.unsubscribe(subscription)

    # ---------------- Startup ----------------

    def initialize(self) -> None:
        """
        Restore persisted state, run the refresh check, then load the catalog.
        """
        with self._mutex:
            blob, tampered = self._read_store()
            run, run_tampered = integrity.decode_run(blob.get("run"))
            tampered = tampered or run_tampered

            now = self._now()
            window = evaluate_play_window(
                _ints(blob.get("play_log")),
                now=now,
                limit=self._settings.daily_play_limit,
            )

            self._set(
                "initialize",
                self._state.model_copy(
                    update={
                        "run": run,
                        "purchases": _purchases(blob.get("purchases")),
                        "prize_claimed_at": blob.get("prize_claimed_at") or None,
                        "play_log": window.pruned,
                        "closed_until": window.closed_until,
                        "tamper_detected": tampered,
                        "screen": screen_for(run),
                    }
                ),
            )

            if tampered:
                log.warning("integrity.tamper_detected")
                self._emit(TamperDetected, detail="persisted run failed verification")

            if run is not None:
                bind_context(run_id=run.run_id)

            lock = self._locks.get_lock()
            if lock is not None:
                if run is not None and not run.finished and lock.run_id == run.run_id:
                    self._invalidate(integrity.REFRESH_REASON, intent="initialize")
                else:
                    self._locks.set_lock(None)

        self.retry_load()

    def retry_load(self) -> None:
        with self._mutex:
            self._set(
                "retry_load",
                self._state.model_copy(update={"question_status": "loading", "question_error": None}),
            )

            try:
                catalog = self._provider.load_catalog()
            except CatalogValidationError as exc:
                log.error("catalog.invalid", message=exc.message, problems=len(exc.details))
                self._set(
                    "retry_load",
                    self._state.model_copy(
                        update={
                            "question_status": "error",
                            "question_error": QuestionError(message=exc.message, details=exc.details),
                            "screen": "error",
                        }
                    ),
                )
                return

            self._catalog = catalog
            run = self._state.run
            if run is not None and not integrity.references_catalog(run, catalog):
                log.warning("run.catalog_mismatch", run_id=run.run_id)
                run = None
                self._persist(run=None)
                self._drop_run_context()

            log.info("catalog.loaded", version=catalog.version, categories=len(catalog.categories))
            self._set(
                "retry_load",
                self._state.model_copy(
                    update={
                        "question_status": "ready",
                        "question_error": None,
                        "categories": catalog.categories,
                        "run": run,
                        "screen": screen_for(run),
                    }
                ),
            )
            if run is not None and run.current_step == "question":
                self._resume_question(run)

    def shutdown(self) -> None:
        with self._mutex:
            self._cancel_timer()

    # ---------------- Gameplay intents ----------------

    def start_run(self) -> None:
        with self._mutex:
            if self._catalog is None:
                log.debug("intent.rejected", intent="start_run", reason="catalog_not_ready")
                return

            now = self._now()
            window = evaluate_play_window(self._state.play_log, now=now, limit=self._settings.daily_play_limit)

            if is_closed(window.closed_until, now=now):
                self._persist(play_log=window.pruned)
                log.info("quota.closed", closed_until=window.closed_until, plays=len(window.pruned))
                self._set(
                    "start_run",
                    self._state.model_copy(
                        update={
                            "play_log": window.pruned,
                            "closed_until": window.closed_until,
                            "message": lockout_message(window.closed_until),
                        }
                    ),
                )
                return

            seed = self._seed_source()
            run = integrity.stamp(machine.new_run(run_id=self._new_id(), seed=seed, ctx=self._ctx(now)))
            play_log = window.pruned + (now,)

            self._persist(run=run, play_log=play_log)
            self._sync_question_lock(run)

            bind_context(run_id=run.run_id)
            log.info("run.started", seed=seed, categories=list(run.selected_category_ids))

            self._set(
                "start_run",
                self._state.model_copy(
                    update={
                        "run": run,
                        "screen": screen_for(run),
                        "play_log": play_log,
                        "closed_until": None,
                        "message": "",
                    }
                ),
            )
            self._emit(
                RunStarted,
                run_id=run.run_id,
                seed=seed,
                selected_category_ids=run.selected_category_ids,
            )

    def confirm_offer(self) -> None:
        self._update_run("confirm_offer", machine.confirm_offer)

    def choose_category(self, category_id: str) -> None:
        self._update_run("choose_category", lambda run, ctx: machine.choose_category(run, category_id, ctx))

    def submit_answer(self, choice_index: int) -> None:
        self._answer("submit_answer", choice_index, timed_out=False)

    def timeout_answer(self) -> None:
        self._answer("timeout_answer", None, timed_out=True)

    def continue_after_answer(self) -> None:
        self._update_run("continue_after_answer", machine.continue_after_answer)

    def restart_run(self) -> None:
        with self._mutex:
            self._cancel_timer()
            self._locks.set_lock(None)
            self._persist(run=None)
            self._drop_run_context()
            self._set("restart_run", self._state.model_copy(update={"run": None, "screen": "home"}))

    # ---------------- Anti-cheat triggers ----------------

    def report_navigation_violation(self) -> None:
        self._invalidate_live_question(integrity.NAVIGATION_REASON, intent="report_navigation_violation")

    def report_backgrounding(self) -> None:
        self._invalidate_live_question(integrity.BACKGROUND_REASON, intent="report_backgrounding")

    # ---------------- Shop & prize ----------------

    def open_shop(self) -> None:
        with self._mutex:
            self._set("open_shop", self._state.model_copy(update={"modal": Modal(type="shop")}))

    def close_modal(self) -> None:
        with self._mutex:
            self._set("close_modal", self._state.model_copy(update={"modal": None}))

    def purchase_prize(self, prize_id: str) -> None:
        with self._mutex:
            if prize_id != SHOP_ITEM.id:
                log.debug("intent.rejected", intent="purchase_prize", prize_id=prize_id)
                return

            state = self._state
            if state.run is None or not state.run.prize_unlocked:
                message = "Win 4 categories to unlock the gift card."
            elif state.purchases:
                message = "You already generated the gift card."
            elif state.prize_claimed_at:
                message = "The billiards gift card has already been claimed."
            else:
                message = ""

            if message:
                self._set("purchase_prize", state.model_copy(update={"message": message}))
                return

            purchase = prize.create_purchase(
                SHOP_ITEM,
                base_url=self._settings.claim_base_url,
                new_id=self._new_id,
            )
            purchases = (purchase,)
            claimed_at = self._now()
            self._persist(purchases=purchases, prize_claimed_at=claimed_at)

            log.info("prize.generated", purchase_id=purchase.purchase_id, claim_code=purchase.claim_code)
            self._set(
                "purchase_prize",
                state.model_copy(
                    update={
                        "purchases": purchases,
                        "prize_claimed_at": claimed_at,
                        "message": "Gift card generated! Share it to redeem.",
                        "modal": Modal(type="prizeCard", purchase=purchase),
                    }
                ),
            )

    def redeem_prize(self, purchase_id: str) -> None:
        with self._mutex:
            state = self._state
            purchases = tuple(
                prize.redeem(p) if p.purchase_id == purchase_id else p for p in state.purchases
            )
            self._persist(purchases=purchases)

            modal = state.modal
            if modal is not None and modal.type == "claim":
                match = next((p for p in purchases if p.purchase_id == purchase_id), None)
                modal = modal.model_copy(update={"purchase": match})

            log.info("prize.redeemed", purchase_id=purchase_id)
            self._set("redeem_prize", state.model_copy(update={"purchases": purchases, "modal": modal}))

    def open_claim(self, token: str) -> None:
        if not token:
            return
        with self._mutex:
            match = next((p for p in self._state.purchases if p.claim_token == token), None)
            self._set(
                "open_claim",
                self._state.model_copy(update={"modal": Modal(type="claim", token=token, purchase=match)}),
            )

    def view_prize_card(self, purchase_id: str) -> None:
        with self._mutex:
            match = next((p for p in self._state.purchases if p.purchase_id == purchase_id), None)
            if match is None:
                return
            self._set(
                "view_prize_card",
                self._state.model_copy(update={"modal": Modal(type="prizeCard", purchase=match)}),
            )

    def acknowledge_message(self) -> None:
        with self._mutex:
            self._set("acknowledge_message", self._state.model_copy(update={"message": ""}))

    # ---------------- Dispatch ----------------

    def dispatch(self, intent: str, argument: Any = None) -> AppState:
        """
        Apply a named intent; used by adapters that receive intents as data.
        """
        if intent not in INTENTS:
            raise KeyError(intent)
        handler = getattr(self, intent)
        if intent in ARGUMENT_INTENTS:
            handler(argument)
        else:
            handler()
        return self._state

    # ---------------- Internals ----------------

    def _now(self) -> int:
        return self._clock.now_ms()

    def _ctx(self, now: int) -> machine.MoveContext:
        if self._catalog is None:
            raise RuntimeError("catalog is not loaded")
        return machine.MoveContext(
            catalog=self._catalog,
            now=now,
            question_time_limit_ms=self._settings.question_time_limit_ms,
        )

    def _update_run(self, intent: str, mutator: RunMutator) -> bool:
        with self._mutex:
            prev = self._state.run
            if prev is None or self._catalog is None:
                log.debug("intent.rejected", intent=intent, reason="no_run_or_catalog")
                return False

            try:
                nxt = mutator(prev, self._ctx(self._now()))
            except Exception:
                log.exception("intent.failed", intent=intent, run_id=prev.run_id)
                raise

            if nxt is None:
                log.debug("intent.rejected", intent=intent, step=prev.current_step)
                return False

            self._commit(intent, prev, nxt)
            return True

    def _answer(self, intent: str, choice_index: int | None, *, timed_out: bool) -> None:
        with self._mutex:
            prev = self._state.run
            if prev is None or self._catalog is None:
                log.debug("intent.rejected", intent=intent, reason="no_run_or_catalog")
                return

            outcome = machine.record_answer(prev, choice_index, timed_out=timed_out)
            if outcome is None:
                log.debug("intent.rejected", intent=intent, step=prev.current_step)
                return

            self._commit(intent, prev, outcome.run)
            if outcome.game_over:
                self._invalidate(machine.GAME_OVER_REASON, intent=intent)

    def _commit(self, intent: str, prev: Run, nxt: Run) -> None:
        run = integrity.stamp(nxt)
        self._persist(run=run)
        self._sync_question_lock(run)

        self._set(intent, self._state.model_copy(update={"run": run, "screen": screen_for(run)}))

        result = run.last_result
        if run.round_pointer > prev.round_pointer and isinstance(result, CategoryResult):
            log.info(
                "run.category_resolved",
                category_id=result.category_id,
                correct_count=result.correct_count,
                won=result.won,
                round_pointer=run.round_pointer,
            )
            self._emit(
                CategoryResolved,
                run_id=run.run_id,
                category_id=result.category_id,
                correct_count=result.correct_count,
                won=result.won,
                round_pointer=run.round_pointer,
            )

        if run.finished and not prev.finished:
            log.info("run.finished", wins=run.wins_count, prize_unlocked=run.prize_unlocked)
            self._emit(RunFinished, run_id=run.run_id, wins_count=run.wins_count, prize_unlocked=run.prize_unlocked)

    def _sync_question_lock(self, run: Run) -> None:
        self._cancel_timer()
        if run.current_step != "question" or run.current_question is None:
            self._locks.set_lock(None)
            return

        session = run.current_session
        timer = run.question_timer
        self._locks.set_lock(
            QuestionLock(
                run_id=run.run_id,
                category_id=session.category_id if session is not None else None,
                question_id=run.current_question.id,
                presented_at=self._now(),
                deadline=timer.deadline if timer is not None else None,
            )
        )
        if timer is not None:
            answered = session.answered if session is not None else 0
            self._timer = self._scheduler.call_at(
                timer.deadline,
                lambda: self._on_deadline(run.run_id, answered),
            )

    def _resume_question(self, run: Run) -> None:
        """
        Re-arm the deadline for a question restored from storage.

        The lock is rewritten so a refresh from here on is still detected. A
        deadline that passed while no engine was running times out at once.
        """
        timer = run.question_timer
        if timer is not None and timer.deadline <= self._now():
            log.info("question.deadline_missed", deadline=timer.deadline)
            self.timeout_answer()
            return
        self._sync_question_lock(run)

    def _on_deadline(self, run_id: str, answered: int) -> None:
        # timer threads start with an empty logging context
        bind_context(run_id=run_id)
        with self._mutex:
            run = self._state.run
            # the question this timer was armed for may already be answered
            if run is None or run.run_id != run_id or run.current_step != "question":
                return
            if run.current_session is None or run.current_session.answered != answered:
                return
            log.info("question.deadline_reached", question_id=run.current_question.id if run.current_question else None)
            self.timeout_answer()

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _invalidate_live_question(self, reason: str, *, intent: str) -> None:
        with self._mutex:
            run = self._state.run
            if run is None or run.current_step != "question":
                return
            self._invalidate(reason, intent=intent)

    def _invalidate(self, reason: str, *, intent: str) -> None:
        run = self._state.run
        self._cancel_timer()
        self._locks.set_lock(None)
        self._persist(run=None)

        log.warning("run.invalidated", reason=reason, intent=intent)
        self._drop_run_context()

        self._set(
            intent,
            self._state.model_copy(
                update={
                    "run": None,
                    "screen": "home",
                    "last_invalidation": reason,
                    "message": reason,
                }
            ),
        )
        if run is not None:
            self._emit(RunInvalidated, run_id=run.run_id, reason=reason)

    def _drop_run_context(self) -> None:
        unbind_context("run_id")

    def _read_store(self) -> tuple[Mapping[str, Any], bool]:
        try:
            blob = self._store.load()
        except StateUnreadable as exc:
            log.error("state.unreadable", error=str(exc))
            return {}, True
        return (blob or {}), False

    def _persist(
        self,
        *,
        run: Run | None | object = ...,
        purchases: Iterable[Purchase] | None = None,
        play_log: Iterable[int] | None = None,
        prize_claimed_at: int | None | object = ...,
    ) -> None:
        """
        Write the whole durable slot; unspecified parts come from the current snapshot.
        """
        state = self._state
        current_run = state.run if run is ... else run
        claimed = state.prize_claimed_at if prize_claimed_at is ... else prize_claimed_at
        self._store.save(
            {
                "run": current_run.model_dump(mode="json") if current_run is not None else None,
                "purchases": [p.model_dump(mode="json") for p in (purchases if purchases is not None else state.purchases)],
                "play_log": list(play_log if play_log is not None else state.play_log),
                "prize_claimed_at": claimed,
            }
        )

    def _set(self, intent: str, state: AppState) -> None:
        self._state = state
        self._engine_state.applied += 1
        self._bus.publish(
            StateChanged.create(
                sequence=self._engine_state.next_sequence(),
                intent=intent,
                state=state,
            )
        )

    def _emit(self, event_cls: type, **fields: Any) -> None:
        self._bus.publish(event_cls.create(sequence=self._engine_state.next_sequence(), **fields))


def _ints(raw: Any) -> list[int]:
    if not isinstance(raw, list):
        return []
    return [int(v) for v in raw if isinstance(v, (int, float)) and not isinstance(v, bool)]


def _purchases(raw: Any) -> tuple[Purchase, ...]:
    if not isinstance(raw, list):
        return ()
    out: list[Purchase] = []
    for item in raw:
        try:
            out.append(Purchase.model_validate(item))
        except ValidationError as exc:
            log.warning("state.purchase_unreadable", errors=exc.error_count())
    return tuple(out)
