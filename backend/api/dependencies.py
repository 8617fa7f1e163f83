"""FastAPI dependencies resolving the process-wide services."""

from fastapi import Request

from backend.srs.session import SessionEngine
from backend.storage import Storage


def get_engine(request: Request) -> SessionEngine:
    """Return the session engine created in the application lifespan."""
    return request.app.state.engine


def get_storage(request: Request) -> Storage:
    return request.app.state.engine.storage
