"""Session cookie middleware for FastAPI.

Reads the session cookie on every request, looks it up in the in-process
SessionRegistry, and sets ``request.state.session`` (SessionCredentials or
None).  Routes that need a session consume it via ``get_current_session``.
"""

from __future__ import annotations

import logging
from typing import Any

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

from src.config import Settings, get_settings
from src.fitness.session import SessionRegistry

logger = logging.getLogger("stridesleep.session")


class SessionMiddleware(BaseHTTPMiddleware):
    """Resolve the session cookie into request.state.session."""

    def __init__(self, app: Any, registry: SessionRegistry, settings: Settings | None = None) -> None:
        super().__init__(app)
        self._registry = registry
        self._cookie_name = (settings or get_settings()).session_cookie_name

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        session_id = request.cookies.get(self._cookie_name)
        request.state.session = self._registry.get(session_id)
        if session_id and request.state.session is None:
            logger.debug("Unknown session cookie on %s", request.url.path)
        return await call_next(request)
