"""
In-memory review sessions
A session holds the suggestions generated for one job until the dispatcher is
done with them. Sessions expire after SUGGESTION_SESSION_TTL seconds.
"""

import logging
import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from threading import Lock
from typing import Callable, Optional

from ...config import SUGGESTION_SESSION_TTL
from .schemas import Suggestion, SuggestionSessionResponse

logger = logging.getLogger(__name__)


class SuggestionNotFoundError(Exception):
    """Unknown or expired session, or unknown suggestion id"""


@dataclass
class SuggestionSession:
    id: str
    organization_id: str
    suggestions: dict[str, Suggestion]
    created_at: datetime = field(default_factory=datetime.utcnow)
    expires_at: float = 0.0

    def to_response(self) -> SuggestionSessionResponse:
        return SuggestionSessionResponse(
            sessionId=self.id,
            organizationId=self.organization_id,
            createdAt=self.created_at,
            suggestions=list(self.suggestions.values()),
        )


class SuggestionSessionStore:
    def __init__(self, ttl_seconds: int = SUGGESTION_SESSION_TTL, clock: Callable[[], float] = time.monotonic):
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._sessions: dict[str, SuggestionSession] = {}
        self._lock = Lock()

    def _cleanup_expired(self) -> None:
        now = self._clock()
        expired = [sid for sid, s in self._sessions.items() if s.expires_at <= now]
        for sid in expired:
            del self._sessions[sid]
        if expired:
            logger.debug(f"🧹 Dropped {len(expired)} expired suggestion sessions")

    def create(self, organization_id: str, suggestions: list[Suggestion]) -> SuggestionSession:
        session = SuggestionSession(
            id=str(uuid.uuid4()),
            organization_id=organization_id,
            suggestions={s.id: s for s in suggestions},
            expires_at=self._clock() + self.ttl_seconds,
        )
        with self._lock:
            self._cleanup_expired()
            self._sessions[session.id] = session
        logger.info(f"🗂️ Suggestion session {session.id} created with {len(suggestions)} suggestions")
        return session

    def get(self, session_id: str, organization_id: str) -> SuggestionSession:
        """
        Raises:
            SuggestionNotFoundError: unknown, expired, or owned by another organization
        """
        with self._lock:
            self._cleanup_expired()
            session = self._sessions.get(session_id)
        if session is None or session.organization_id != organization_id:
            raise SuggestionNotFoundError(f"Suggestion session {session_id} not found")
        return session

    def get_suggestion(self, session_id: str, suggestion_id: str, organization_id: str) -> Suggestion:
        session = self.get(session_id, organization_id)
        suggestion: Optional[Suggestion] = session.suggestions.get(suggestion_id)
        if suggestion is None:
            raise SuggestionNotFoundError(f"Suggestion {suggestion_id} not found")
        return suggestion

    def clear(self) -> None:
        with self._lock:
            self._sessions.clear()


# Process-wide store shared by all requests
session_store = SuggestionSessionStore()
