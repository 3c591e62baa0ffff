from __future__ import annotations

from trivia_run.core.run.prize import SHOP_ITEM
from trivia_run.storage.state_store import InMemoryStateStore

from conftest import build_harness, win_category

GENERATED = "Gift card generated! Share it to redeem."


def _finished_harness():
    h = build_harness()
    h.engine.initialize()
    h.engine.start_run()
    for _ in range(5):
        win_category(h.engine)
    assert h.engine.state.run.prize_unlocked
    return h


def test_prize_is_locked_without_enough_wins(harness) -> None:
    harness.engine.start_run()
    harness.engine.purchase_prize(SHOP_ITEM.id)

    assert harness.engine.state.message == "Win 4 categories to unlock the gift card."
    assert harness.engine.state.purchases == ()


def test_purchase_generates_a_single_card() -> None:
    h = _finished_harness()
    engine = h.engine

    engine.purchase_prize(SHOP_ITEM.id)

    state = engine.state
    assert state.message == GENERATED
    assert len(state.purchases) == 1
    purchase = state.purchases[0]
    assert purchase.prize_id == SHOP_ITEM.id
    assert purchase.status == "unredeemed"
    assert purchase.claim_code.startswith("CUE-")
    assert purchase.share_url == f"https://example.com/#/claim/{purchase.claim_token}"
    assert state.modal.type == "prizeCard"
    assert state.modal.purchase == purchase
    assert state.prize_claimed_at == h.clock.now

    stored = h.state_store.load()
    assert stored["purchases"][0]["purchase_id"] == purchase.purchase_id
    assert stored["prize_claimed_at"] == h.clock.now

    engine.acknowledge_message()
    engine.purchase_prize(SHOP_ITEM.id)

    assert len(engine.state.purchases) == 1
    assert engine.state.message == "You already generated the gift card."


def test_unknown_prize_id_is_ignored() -> None:
    h = _finished_harness()
    writes = h.state_store.writes
    h.engine.purchase_prize("pool-cue")
    assert h.engine.state.purchases == ()
    assert h.state_store.writes == writes


def test_claimed_marker_without_purchase_blocks_generation() -> None:
    h = _finished_harness()
    blob = dict(h.state_store.load(), prize_claimed_at=123)
    again = build_harness(state_store=InMemoryStateStore(blob), clock=h.clock)
    again.engine.initialize()

    again.engine.purchase_prize(SHOP_ITEM.id)

    assert again.engine.state.message == "The billiards gift card has already been claimed."
    assert again.engine.state.purchases == ()


def test_claim_and_redeem_flow() -> None:
    h = _finished_harness()
    engine = h.engine
    engine.purchase_prize(SHOP_ITEM.id)
    purchase = engine.state.purchases[0]
    engine.close_modal()
    assert engine.state.modal is None

    engine.open_claim(purchase.claim_token)
    assert engine.state.modal.type == "claim"
    assert engine.state.modal.purchase == purchase

    engine.redeem_prize(purchase.purchase_id)

    redeemed = engine.state.purchases[0]
    assert redeemed.status == "redeemed"
    assert redeemed.redeemed_at is not None
    assert engine.state.modal.purchase == redeemed
    assert h.state_store.load()["purchases"][0]["status"] == "redeemed"


def test_claim_with_unknown_token_shows_empty_modal(harness) -> None:
    harness.engine.open_claim("nope")
    assert harness.engine.state.modal.type == "claim"
    assert harness.engine.state.modal.token == "nope"
    assert harness.engine.state.modal.purchase is None


def test_view_prize_card() -> None:
    h = _finished_harness()
    h.engine.purchase_prize(SHOP_ITEM.id)
    purchase = h.engine.state.purchases[0]
    h.engine.open_shop()
    assert h.engine.state.modal.type == "shop"

    h.engine.view_prize_card("missing")
    assert h.engine.state.modal.type == "shop"

    h.engine.view_prize_card(purchase.purchase_id)
    assert h.engine.state.modal.type == "prizeCard"
    assert h.engine.state.modal.purchase == purchase


def test_purchases_survive_reload() -> None:
    h = _finished_harness()
    h.engine.purchase_prize(SHOP_ITEM.id)

    again = build_harness(state_store=h.state_store, clock=h.clock)
    again.engine.initialize()

    assert again.engine.state.purchases == h.engine.state.purchases
    assert again.engine.state.prize_claimed_at == h.clock.now
