"""
Local verification provider - In-process VerificationProvider.

Sessions stay pending until decide() records an outcome, which the
development API exposes so the redirect/poll cycle can be driven by hand.
"""

import logging
import uuid
from datetime import datetime, timezone
from urllib.parse import urlencode

from src.domain.exceptions import ExternalServiceError
from src.domain.models import VerificationSession, VerifiedFields
from src.domain.ports import VerificationStatus

logger = logging.getLogger(__name__)


class LocalVerificationProvider:
    """Implements VerificationProvider protocol with a dict of sessions."""

    def __init__(self, verification_base_url: str = "http://localhost:8000/dev/verify") -> None:
        self._base_url = verification_base_url.rstrip("/")
        self._sessions: dict[str, VerificationSession] = {}
        self._return_urls: dict[str, str] = {}

    async def create_session(self, language: str, return_url: str) -> tuple[str, str]:
        session_id = uuid.uuid4().hex
        self._sessions[session_id] = VerificationSession(
            session_id=session_id,
            status=VerificationStatus.CREATED,
            created_at=datetime.now(timezone.utc),
        )
        self._return_urls[session_id] = return_url
        url = f"{self._base_url}/{session_id}?{urlencode({'lang': language})}"
        logger.info("[VERIFICATION] Session: %s URL: %s", session_id, url)
        return session_id, url

    async def get_session_result(self, session_id: str) -> VerificationSession:
        session = self._sessions.get(session_id)
        if session is None:
            raise ExternalServiceError("Session not found", 404)
        return VerificationSession(
            session_id=session.session_id,
            status=session.status,
            created_at=session.created_at,
            verified_fields=session.verified_fields,
        )

    def decide(
        self,
        session_id: str,
        status: VerificationStatus,
        fields: VerifiedFields | None = None,
    ) -> str:
        """
        Record an outcome for a session.

        Returns:
            The callback URL the provider would redirect to
        """
        session = self._sessions.get(session_id)
        if session is None:
            raise KeyError(session_id)
        session.status = status
        session.verified_fields = fields if status == VerificationStatus.APPROVED else None
        separator = "&" if "?" in self._return_urls[session_id] else "?"
        return f"{self._return_urls[session_id]}{separator}{urlencode({'session_id': session_id})}"
