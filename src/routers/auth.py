"""Session status and logout endpoints.

The OAuth authorization-code routes live in a separate service; these only
report and tear down what it registered.
"""

from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, Request, Response

from src.dependencies import AppSettings, CurrentSession, Orchestrator, Sessions
from src.fitness.base import SessionCredentials, short_id
from src.models.fitness import AuthStatus, LogoutResponse

router = APIRouter(prefix="/auth", tags=["auth"])
logger = logging.getLogger("stridesleep.auth")


@router.get("/status", response_model=AuthStatus)
async def auth_status(request: Request) -> Any:
    session: SessionCredentials | None = getattr(request.state, "session", None)
    return AuthStatus(
        strava=session is not None and session.strava is not None,
        oura=session is not None and session.oura is not None,
    )


@router.get("/logout", response_model=LogoutResponse)
async def logout(
    session: CurrentSession,
    orchestrator: Orchestrator,
    sessions: Sessions,
    settings: AppSettings,
    response: Response,
) -> Any:
    """Clear the session's cache, forget its credentials, drop the cookie."""
    cleared = await orchestrator.logout(session.session_id)
    sessions.forget(session.session_id)
    response.delete_cookie(settings.session_cookie_name)
    logger.info("Session %s logged out", short_id(session.session_id))
    return LogoutResponse(success=True, cleared_keys=cleared)
