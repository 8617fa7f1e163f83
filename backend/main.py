"""FastAPI application entry point and configuration."""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware

from backend.api.review_router import router as review_router
from backend.api.session_router import router as session_router
from backend.api.stats_router import router as stats_router
from backend.config import settings
from backend.database import engine
from backend.errors import PersistenceFailure
from backend.models import Base
from backend.srs.session import SessionEngine
from backend.storage import Storage

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Initialize the database and engine; auto-save results on shutdown."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    if getattr(app.state, "engine", None) is None:
        app.state.engine = SessionEngine(Storage())
    yield
    await app.state.engine.auto_save()
    await engine.dispose()


app = FastAPI(
    title=settings.app_name,
    description="Timed word drills with error tracking and spaced review",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:5173", "http://localhost:3000"],
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(session_router)
app.include_router(review_router)
app.include_router(stats_router)


@app.get("/health")
async def health_check() -> dict[str, str]:
    """Check store connectivity and return status."""
    try:
        await app.state.engine.storage.ping()
    except PersistenceFailure as exc:
        logger.error("Health check failed: %s", exc)
        raise HTTPException(status_code=503, detail="Store unavailable") from exc
    return {"status": "ok"}
