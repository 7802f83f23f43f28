"""FastAPI dependency providers for app-lifetime objects built in the lifespan."""
from fastapi import HTTPException, Request

from autokudos.services.engine import KudosEngine


def get_engine(request: Request) -> KudosEngine:
    engine = getattr(request.app.state, "engine", None)
    if engine is None:
        raise HTTPException(status_code=503, detail="Engine not started")
    return engine


def require_admin(request: Request) -> None:
    if not request.session.get("authenticated"):
        raise HTTPException(status_code=401, detail="Admin authentication required")
