from __future__ import annotations

from typing import Any

import structlog
from fastapi import APIRouter, HTTPException, Request
from pydantic import BaseModel, Field

from trivia_run.core.engine.engine import ARGUMENT_INTENTS, INTENTS, TriviaEngine

log = structlog.get_logger()

router = APIRouter(tags=["game"])


# =========================
# Schemas
# =========================

class IntentRequest(BaseModel):
    argument: Any = Field(default=None, description="Category id, answer index, prize id, purchase id or claim token")


class IntentResponse(BaseModel):
    intent: str
    state: dict[str, Any]


# =========================
# Routes
# =========================

def _engine(request: Request) -> TriviaEngine:
    return request.app.state.engine


@router.get("/state")
def get_state(request: Request) -> dict[str, Any]:
    return _engine(request).state.to_public_dict()


@router.get("/intents")
def list_intents() -> dict[str, list[str]]:
    return {"intents": list(INTENTS)}


@router.post("/intents/{name}", response_model=IntentResponse)
def post_intent(name: str, request: Request, payload: IntentRequest | None = None) -> IntentResponse:
    if name not in INTENTS:
        raise HTTPException(status_code=404, detail=f"unknown intent: {name}")

    argument = payload.argument if payload is not None else None
    if name in ARGUMENT_INTENTS and argument is None:
        raise HTTPException(status_code=422, detail=f"intent {name} requires an argument")
    if name == "submit_answer" and (not isinstance(argument, int) or isinstance(argument, bool)):
        raise HTTPException(status_code=422, detail="submit_answer expects an integer choice index")

    state = _engine(request).dispatch(name, argument)
    log.debug("api.intent", intent=name)
    return IntentResponse(intent=name, state=state.to_public_dict())
