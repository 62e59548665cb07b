"""
Verification Session Client - Starts provider sessions and fetches results.

The provider verifies the applicant out-of-band behind a browser redirect,
so completion is never synchronous: callers poll fetch_result() until a
terminal status arrives. The active session id is kept in a fixed storage
slot so a reloaded app can find it again.
"""

import logging
from datetime import datetime, timezone
from urllib.parse import parse_qs, urlsplit

from .exceptions import (
    CreateSessionFailed,
    ExternalServiceError,
    ResultFetchFailed,
    StorageError,
)
from .models import SessionHandle, VerificationSession
from .ports import KeyValueStorage, VerificationProvider

logger = logging.getLogger(__name__)

SESSION_SLOT_KEY = "verification:session_id"
CALLBACK_PARAM = "session_id"


class VerificationSessionClient:
    """Wraps a VerificationProvider with session-slot bookkeeping."""

    def __init__(self, provider: VerificationProvider, storage: KeyValueStorage) -> None:
        self._provider = provider
        self._storage = storage

    async def start(self, language: str, return_target: str) -> SessionHandle:
        """
        Create a verification session and remember its id.

        Args:
            language: UI language for the hosted verification flow
            return_target: Callback URL the provider redirects to

        Returns:
            SessionHandle with the redirect URL to open

        Raises:
            CreateSessionFailed: Provider or transport failure
        """
        try:
            session_id, redirect_url = await self._provider.create_session(
                language, return_target
            )
        except ExternalServiceError as e:
            logger.warning("Verification session creation failed: %s", e.message)
            raise CreateSessionFailed(e.message or "Failed to create verification session") from e

        if not session_id or not redirect_url:
            raise CreateSessionFailed("Failed to create verification session")

        self.remember(session_id)
        logger.info("Verification session %s created", session_id)
        return SessionHandle(session_id=session_id, redirect_url=redirect_url)

    async def fetch_result(self, session_id: str) -> VerificationSession:
        """
        Fetch the session's current status.

        Raises:
            ResultFetchFailed: Provider or transport failure (never for PENDING)
        """
        try:
            session = await self._provider.get_session_result(session_id)
        except ExternalServiceError as e:
            raise ResultFetchFailed(
                e.message or "Failed to retrieve session results"
            ) from e

        if session.created_at is None:
            session.created_at = datetime.now(timezone.utc)
        return session

    def cached_session_id(self) -> str | None:
        """Session id from the fixed slot; None if absent or unreadable."""
        try:
            return self._storage.get(SESSION_SLOT_KEY) or None
        except StorageError as e:
            logger.warning("Session slot read failed: %s", e)
            return None

    def remember(self, session_id: str) -> None:
        try:
            self._storage.set(SESSION_SLOT_KEY, session_id)
        except StorageError as e:
            logger.warning("Session slot write failed: %s", e)

    def forget(self) -> None:
        try:
            self._storage.remove(SESSION_SLOT_KEY)
        except StorageError as e:
            logger.warning("Session slot clear failed: %s", e)

    @staticmethod
    def session_id_from_callback(url: str | None) -> str | None:
        """Extract `session_id` from an inbound callback URL."""
        if not url:
            return None
        values = parse_qs(urlsplit(url).query).get(CALLBACK_PARAM)
        if not values:
            return None
        return values[0].strip() or None
