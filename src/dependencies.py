"""Shared FastAPI dependencies injected into route handlers."""

from __future__ import annotations

from typing import Annotated

from fastapi import Depends, HTTPException, Request

from src.config import Settings, get_settings
from src.fitness.base import SessionCredentials
from src.fitness.session import SessionRegistry
from src.fitness.sync.orchestrator import FitnessOrchestrator


async def get_current_session(request: Request) -> SessionCredentials:
    """Return the session resolved by the session middleware.

    The session middleware sets ``request.state.session`` before routes run.
    """
    session: SessionCredentials | None = getattr(request.state, "session", None)
    if session is None:
        raise HTTPException(status_code=401, detail="Not authenticated")
    return session


def get_orchestrator(request: Request) -> FitnessOrchestrator:
    return request.app.state.orchestrator


def get_session_registry(request: Request) -> SessionRegistry:
    return request.app.state.sessions


# Annotated shortcuts for route signatures
CurrentSession = Annotated[SessionCredentials, Depends(get_current_session)]
Orchestrator = Annotated[FitnessOrchestrator, Depends(get_orchestrator)]
Sessions = Annotated[SessionRegistry, Depends(get_session_registry)]
AppSettings = Annotated[Settings, Depends(get_settings)]
