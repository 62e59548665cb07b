"""
Callback Reconciler - Resumes and polls a pending verification session.

State machine over one variable, active_session_id:

    IDLE --mount(cached or callback id)--> RESUMING --pending--> POLLING
    IDLE --track(new session id)---------> POLLING
    RESUMING/POLLING --Approved (complete fields)--> APPROVED
    RESUMING/POLLING --Declined/Expired/incomplete--> IDLE
    any --teardown()--> STOPPED

Precedence on mount: an inbound callback session id wins over the id in the
cached session slot, because it reflects the latest provider interaction.
The slot is overwritten with the callback id when they differ.

Every transition into IDLE clears the session slot so a dead session is never
resumed on the next launch. The slot is kept on APPROVED until registration
completes, so a reload while confirming details can re-fetch the approval.

Ordering: fetches are serialized (the next tick is only scheduled after the
previous result is processed). Every start/stop bumps a generation counter;
a fetch that resolves under an older generation is discarded unprocessed.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from enum import Enum
from typing import Protocol

from .exceptions import (
    RegistrationError,
    ResultFetchFailed,
    VerificationDeclined,
    VerificationExpired,
    VerificationIncomplete,
)
from .models import VerificationSession
from .ports import VerificationStatus
from .verification import VerificationSessionClient

logger = logging.getLogger(__name__)

DEFAULT_POLL_INTERVAL = 3.0


class ReconcilerState(str, Enum):
    IDLE = "idle"
    RESUMING = "resuming"
    POLLING = "polling"
    APPROVED = "approved"
    STOPPED = "stopped"


class VerificationListener(Protocol):
    """Receives the outcome of a reconciled session."""

    async def verification_approved(self, session: VerificationSession) -> None:
        ...

    async def verification_failed(self, error: RegistrationError) -> None:
        ...


class CallbackReconciler:
    """Drives one verification session from resume/track to a terminal outcome."""

    def __init__(
        self,
        client: VerificationSessionClient,
        listener: VerificationListener,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._client = client
        self._listener = listener
        self._poll_interval = poll_interval
        self._sleep = sleep
        self._task: asyncio.Task | None = None
        self._generation = 0
        self.state = ReconcilerState.IDLE
        self.active_session_id: str | None = None

    async def mount(self, callback_session_id: str | None = None) -> bool:
        """
        Look for a pending session and resume it.

        Args:
            callback_session_id: Session id carried by an inbound callback URL

        Returns:
            True if a session is being reconciled, False if there was none
        """
        cached = self._client.cached_session_id()
        session_id = callback_session_id or cached

        if callback_session_id and callback_session_id != cached:
            if cached:
                logger.info(
                    "Callback session %s supersedes cached session %s",
                    callback_session_id,
                    cached,
                )
            self._client.remember(callback_session_id)

        if session_id is None:
            return False

        if session_id == self.active_session_id and self.state in (
            ReconcilerState.RESUMING,
            ReconcilerState.POLLING,
            ReconcilerState.APPROVED,
        ):
            return True

        await self._resume(session_id)
        return True

    def track(self, session_id: str) -> None:
        """Poll a freshly started session without an initial fetch."""
        self._stop()
        self.active_session_id = session_id
        self._start_polling(session_id, self._generation)

    def reset(self) -> None:
        """Return to IDLE and clear the session slot."""
        self._stop()
        self.active_session_id = None
        self.state = ReconcilerState.IDLE
        self._client.forget()

    def teardown(self) -> None:
        """Stop polling; late results are discarded. The slot is kept."""
        self._stop()
        self.state = ReconcilerState.STOPPED

    async def _resume(self, session_id: str) -> None:
        self._stop()
        self.active_session_id = session_id
        self.state = ReconcilerState.RESUMING
        generation = self._generation
        logger.info("Resuming verification session %s", session_id)

        session = None
        try:
            session = await self._client.fetch_result(session_id)
        except ResultFetchFailed as e:
            logger.warning("Resume fetch for %s failed: %s", session_id, e.message)

        if generation != self._generation:
            logger.debug("Discarding resume result for %s", session_id)
            return
        if session is not None and await self._settle(session):
            return
        self._start_polling(session_id, generation)

    def _start_polling(self, session_id: str, generation: int) -> None:
        self.state = ReconcilerState.POLLING
        self._task = asyncio.get_running_loop().create_task(
            self._poll(session_id, generation)
        )

    async def _poll(self, session_id: str, generation: int) -> None:
        while True:
            await self._sleep(self._poll_interval)
            if generation != self._generation:
                return

            try:
                session = await self._client.fetch_result(session_id)
            except ResultFetchFailed as e:
                logger.warning("Polling %s failed: %s", session_id, e.message)
                continue

            if generation != self._generation:
                logger.debug("Discarding late result for %s", session_id)
                return
            if await self._settle(session):
                return

    async def _settle(self, session: VerificationSession) -> bool:
        """Handle a terminal result. Returns False while still pending."""
        status = session.status

        if status == VerificationStatus.APPROVED:
            fields = session.verified_fields
            missing = fields.missing() if fields else ["verified_fields"]
            if missing:
                logger.warning(
                    "Session %s approved without %s", session.session_id, ", ".join(missing)
                )
                await self._fail(
                    VerificationIncomplete(
                        "Could not extract required information from the verification. "
                        "Please try again."
                    )
                )
                return True

            self._release()
            self.state = ReconcilerState.APPROVED
            logger.info("Session %s approved", session.session_id)
            await self._listener.verification_approved(session)
            return True

        if status == VerificationStatus.DECLINED:
            logger.info("Session %s declined", session.session_id)
            await self._fail(
                VerificationDeclined(
                    "Your identity verification was declined. "
                    "Please ensure your ID is valid and try again."
                )
            )
            return True

        if status == VerificationStatus.EXPIRED:
            logger.info("Session %s expired", session.session_id)
            await self._fail(
                VerificationExpired("Your verification session expired. Please start again.")
            )
            return True

        return False

    async def _fail(self, error: RegistrationError) -> None:
        self._release()
        self.reset()
        await self._listener.verification_failed(error)

    def _release(self) -> None:
        """Detach the running poll task so stopping does not cancel the caller."""
        if self._task is asyncio.current_task():
            self._task = None

    def _stop(self) -> None:
        self._generation += 1
        if self._task is not None:
            self._task.cancel()
            self._task = None
