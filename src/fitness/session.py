"""In-process registry of per-session credentials.

The OAuth callback flow lives outside this service.  Whatever completes it
hands the resulting tokens over through ``register``; the HTTP layer then
resolves a session cookie to its SessionCredentials object.  Each session
keeps the same object for its lifetime so rotated Strava tokens and the
refresh lock are shared by every request of that session.
"""

from __future__ import annotations

import logging
import secrets

from src.fitness.base import OAuthTokens, SessionCredentials, short_id

logger = logging.getLogger("stridesleep.fitness.session")


class SessionRegistry:
    def __init__(self) -> None:
        self._sessions: dict[str, SessionCredentials] = {}

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, session_id: object) -> bool:
        return session_id in self._sessions

    @staticmethod
    def new_session_id() -> str:
        return secrets.token_urlsafe(32)

    def register(
        self,
        session_id: str | None = None,
        strava: OAuthTokens | None = None,
        oura: OAuthTokens | None = None,
    ) -> SessionCredentials:
        """Create or update a session's credentials.

        An existing session keeps its credential object (and lock); only the
        provided token sets are replaced.
        """
        sid = session_id or self.new_session_id()
        credentials = self._sessions.get(sid)
        if credentials is None:
            credentials = SessionCredentials(session_id=sid)
            self._sessions[sid] = credentials
        if strava is not None:
            credentials.strava = strava
        if oura is not None:
            credentials.oura = oura
        logger.info(
            "Session %s registered (strava=%s, oura=%s)",
            short_id(sid), credentials.strava is not None, credentials.oura is not None,
        )
        return credentials

    def get(self, session_id: str | None) -> SessionCredentials | None:
        if not session_id:
            return None
        return self._sessions.get(session_id)

    def forget(self, session_id: str) -> bool:
        removed = self._sessions.pop(session_id, None) is not None
        if removed:
            logger.info("Session %s forgotten", short_id(session_id))
        return removed
