from __future__ import annotations

from fastapi import APIRouter, Request
from pydantic import BaseModel

router = APIRouter(tags=["health"])


class HealthResponse(BaseModel):
    """
    Minimal health check response.

    Reports the catalog load status so a failed question bank is visible.
    """

    status: str
    environment: str
    question_status: str


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Service health check",
)
def health(request: Request) -> HealthResponse:
    engine = request.app.state.engine
    return HealthResponse(
        status="ok",
        environment=request.app.state.settings.env,
        question_status=engine.state.question_status,
    )
