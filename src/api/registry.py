"""
Registration registry - Live orchestrators keyed by registration id.

Each registration gets its own storage namespace, so its draft and session
slot survive an API restart when the storage backend is durable. A
registration that is not in memory is rebuilt and resumed from storage on
first access.
"""

import logging
import uuid
from collections.abc import Callable
from dataclasses import dataclass, field

from src.domain.exceptions import RegistrationError
from src.domain.ports import RegistrationHost, RegistrationState
from src.domain.registration import RegistrationOrchestrator

logger = logging.getLogger(__name__)

OrchestratorFactory = Callable[[str, RegistrationHost], RegistrationOrchestrator]


@dataclass
class RecordingHost:
    """
    Implements RegistrationHost by remembering the latest outcome.

    HTTP clients read it back on their next status request.
    """

    state: RegistrationState | None = None
    last_error: Exception | None = None
    account_id: str | None = None

    def state_changed(self, state: RegistrationState) -> None:
        self.state = state
        self.last_error = None

    def error(self, error: Exception) -> None:
        logger.info("Registration error surfaced to host: %s", error)
        self.last_error = error

    def completed(self, account_id: str) -> None:
        self.account_id = account_id


@dataclass
class Registration:
    registration_id: str
    orchestrator: RegistrationOrchestrator
    host: RecordingHost = field(default_factory=RecordingHost)


class RegistrationRegistry:
    """In-process map of open registrations."""

    def __init__(self, factory: OrchestratorFactory) -> None:
        self._factory = factory
        self._open: dict[str, Registration] = {}

    async def open(self) -> Registration:
        """Create a new, empty registration."""
        return self._build(uuid.uuid4().hex)

    async def get(self, registration_id: str) -> Registration | None:
        """
        Return an open registration, resuming it from storage if needed.

        Returns:
            None when the id is unknown in memory and has no pending session
        """
        registration = self._open.get(registration_id)
        if registration is not None:
            return registration

        registration = self._build(registration_id)
        if registration.orchestrator.sessions.cached_session_id() is None:
            self._open.pop(registration_id, None)
            return None
        await registration.orchestrator.resume()
        return registration

    async def close(self, registration_id: str) -> None:
        registration = self._open.pop(registration_id, None)
        if registration is not None:
            await registration.orchestrator.close()

    async def shutdown(self) -> None:
        for registration_id in list(self._open):
            try:
                await self.close(registration_id)
            except RegistrationError as e:
                logger.warning("Closing registration %s failed: %s", registration_id, e)

    def __len__(self) -> int:
        return len(self._open)

    def _build(self, registration_id: str) -> Registration:
        host = RecordingHost()
        orchestrator = self._factory(registration_id, host)
        registration = Registration(registration_id, orchestrator, host)
        self._open[registration_id] = registration
        return registration
