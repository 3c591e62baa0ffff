from __future__ import annotations

import structlog
from fastapi import FastAPI

from trivia_run.api import router as api_router
from trivia_run.core.config.settings import AppSettings, settings as default_settings
from trivia_run.core.engine.engine import TriviaEngine
from trivia_run.core.engine.factory import build_engine
from trivia_run.core.logging.setup import configure_logging

log = structlog.get_logger()


def create_app(*, settings: AppSettings | None = None, engine: TriviaEngine | None = None) -> FastAPI:
    """
    Application factory.

    Tests pass their own settings and a pre-wired engine; the module-level
    `app` uses the process settings and the file-backed stores.
    The engine restores state and loads questions on startup.
    """
    settings = settings if settings is not None else default_settings

    configure_logging(level=settings.log_level, env=settings.env)

    app = FastAPI(
        title="Trivia Run",
        version="0.1.0",
    )
    app.state.settings = settings
    app.state.engine = engine if engine is not None else build_engine(settings)

    @app.on_event("startup")
    async def on_startup() -> None:
        app.state.engine.initialize()
        log.info(
            "app.startup",
            environment=settings.env,
            question_status=app.state.engine.state.question_status,
        )

    @app.on_event("shutdown")
    async def on_shutdown() -> None:
        app.state.engine.shutdown()
        log.info("app.shutdown")

    # Mount API
    app.include_router(api_router, prefix="/api")

    return app


# ASGI entrypoint
app = create_app()
