"""
NoteSynth API

FastAPI application exposing the note generation dispatch core.

Run:
    uvicorn notesynth.main:app --reload
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from notesynth.config import settings
from notesynth.middleware import setup_error_handling, setup_rate_limiting
from notesynth.routers import health, notes
from notesynth.services.dispatch import close_provider_pool, get_provider_pool

logger = logging.getLogger(__name__)


def setup_logging(level: str = "INFO") -> None:
    """Configure root logging from the LOG_LEVEL setting."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%H:%M:%S",
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    pool = get_provider_pool()
    if not pool.available:
        logger.warning("No LLM provider credentials configured; batches will be rejected")
    yield
    await close_provider_pool()


def create_app() -> FastAPI:
    """Build the FastAPI application with middleware and routers."""
    setup_logging(settings.LOG_LEVEL)

    app = FastAPI(title=f"{settings.APP_NAME} API", lifespan=lifespan)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    setup_error_handling(app, debug=settings.DEBUG)
    setup_rate_limiting(app, enabled=settings.RATE_LIMIT_ENABLED)

    app.include_router(health.router)
    app.include_router(notes.router)

    @app.get("/")
    async def root():
        return {"message": f"{settings.APP_NAME} API"}

    return app


app = create_app()
