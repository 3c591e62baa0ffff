from __future__ import annotations

import secrets
from datetime import datetime, timezone
from typing import Callable, Literal

from pydantic import BaseModel, ConfigDict

RedemptionStatus = Literal["unredeemed", "redeemed"]


class ShopItem(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    description: str
    instructions: str
    code_prefix: str


class Purchase(BaseModel):
    """
    A generated prize claim.

    Prize metadata is fixed at creation; only the redemption fields change.
    """

    model_config = ConfigDict(frozen=True, extra="ignore")

    purchase_id: str
    prize_id: str
    prize_name: str
    description: str
    instructions: str = ""
    status: RedemptionStatus = "unredeemed"
    created_at: str
    redeemed_at: str | None = None
    claim_token: str
    claim_code: str
    share_url: str


SHOP_ITEM = ShopItem(
    id="billiards-card",
    name="Billiards Night Gift Card",
    description="Redeem for a free game of billiards for you and a friend.",
    instructions="Show this animated hologram at the desk to redeem your table time.",
    code_prefix="CUE",
)


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def build_claim_code(prefix: str, *, chunk: int | None = None) -> str:
    """
    Human-entry code, e.g. CUE-004217.
    """
    if chunk is None:
        chunk = secrets.randbelow(999999)
    return f"{prefix.upper()[:4]}-{chunk:06d}"


def build_share_url(base_url: str, token: str) -> str:
    return f"{base_url.rstrip('/')}/#/claim/{token}"


def create_purchase(
    item: ShopItem,
    *,
    base_url: str,
    new_id: Callable[[], str],
    now_iso: Callable[[], str] = _now_iso,
) -> Purchase:
    token = new_id().replace("-", "")
    return Purchase(
        purchase_id=new_id(),
        prize_id=item.id,
        prize_name=item.name,
        description=item.description,
        instructions=item.instructions,
        created_at=now_iso(),
        claim_token=token,
        claim_code=build_claim_code(item.code_prefix),
        share_url=build_share_url(base_url, token),
    )


def redeem(purchase: Purchase, *, now_iso: Callable[[], str] = _now_iso) -> Purchase:
    return purchase.model_copy(update={"status": "redeemed", "redeemed_at": now_iso()})
