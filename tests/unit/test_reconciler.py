"""
Unit tests for CallbackReconciler.

Tests polling and resume behavior with a fake clock:
- Exactly one terminal outcome per session
- Late results are discarded after teardown/reset
- Callback session id precedence over the cached slot
- The slot is cleared on every failure
"""

import asyncio

import pytest

from src.adapters.storage import MemoryStorage
from src.domain.exceptions import (
    VerificationDeclined,
    VerificationExpired,
    VerificationIncomplete,
)
from src.domain.models import VerificationSession, VerifiedFields
from src.domain.ports import VerificationStatus
from src.domain.reconciler import CallbackReconciler, ReconcilerState
from src.domain.verification import SESSION_SLOT_KEY, VerificationSessionClient
from tests.support import FakeSleep, ScriptedProvider, settle, unavailable

pytestmark = pytest.mark.anyio


class Listener:
    def __init__(self) -> None:
        self.approved: list[VerificationSession] = []
        self.failed: list[Exception] = []

    async def verification_approved(self, session: VerificationSession) -> None:
        self.approved.append(session)

    async def verification_failed(self, error) -> None:
        self.failed.append(error)


class BlockingProvider(ScriptedProvider):
    """Holds every fetch until release() is called."""

    def __init__(self, *script) -> None:
        super().__init__(*script)
        self.gate = asyncio.Event()

    async def get_session_result(self, session_id: str) -> VerificationSession:
        self.fetched.append(session_id)
        await self.gate.wait()
        return await super().get_session_result(session_id)


def make_reconciler(provider, storage, sleep=None):
    listener = Listener()
    client = VerificationSessionClient(provider, storage)
    reconciler = CallbackReconciler(client, listener, poll_interval=3.0, sleep=sleep or FakeSleep())
    return reconciler, listener


class TestPolling:
    """Tests for track() and the poll loop."""

    async def test_polls_until_approved_and_reports_once(self, storage: MemoryStorage) -> None:
        provider = ScriptedProvider(
            VerificationStatus.CREATED,
            VerificationStatus.PENDING,
            VerificationStatus.APPROVED,
        )
        sleep = FakeSleep()
        reconciler, listener = make_reconciler(provider, storage, sleep)
        storage.set(SESSION_SLOT_KEY, "sess-1")

        reconciler.track("sess-1")
        await settle()

        assert len(listener.approved) == 1
        assert listener.approved[0].verified_fields.first_name == "Ada"
        assert listener.failed == []
        assert reconciler.state == ReconcilerState.APPROVED
        assert provider.fetched == ["sess-1"] * 3
        assert sleep.calls == [3.0, 3.0, 3.0]
        # kept until registration completes
        assert storage.get(SESSION_SLOT_KEY) == "sess-1"

    async def test_declined_clears_slot_and_reports(self, storage: MemoryStorage) -> None:
        reconciler, listener = make_reconciler(
            ScriptedProvider(VerificationStatus.DECLINED), storage
        )
        storage.set(SESSION_SLOT_KEY, "sess-1")

        reconciler.track("sess-1")
        await settle()

        assert len(listener.failed) == 1
        assert isinstance(listener.failed[0], VerificationDeclined)
        assert reconciler.state == ReconcilerState.IDLE
        assert storage.get(SESSION_SLOT_KEY) is None

    async def test_expired_is_terminal(self, storage: MemoryStorage) -> None:
        provider = ScriptedProvider(VerificationStatus.EXPIRED)
        reconciler, listener = make_reconciler(provider, storage)

        reconciler.track("sess-1")
        await settle()

        assert [type(e) for e in listener.failed] == [VerificationExpired]
        assert len(provider.fetched) == 1

    async def test_approved_without_required_fields_is_incomplete(
        self, storage: MemoryStorage
    ) -> None:
        partial = VerificationSession(
            session_id="x",
            status=VerificationStatus.APPROVED,
            verified_fields=VerifiedFields("Ada", "Lovelace", "1815-12-10", None),
        )
        reconciler, listener = make_reconciler(ScriptedProvider(partial), storage)

        reconciler.track("sess-1")
        await settle()

        assert listener.approved == []
        assert [type(e) for e in listener.failed] == [VerificationIncomplete]

    async def test_fetch_errors_keep_polling(self, storage: MemoryStorage) -> None:
        provider = ScriptedProvider(
            unavailable(), unavailable(), VerificationStatus.APPROVED
        )
        reconciler, listener = make_reconciler(provider, storage)

        reconciler.track("sess-1")
        await settle()

        assert len(listener.approved) == 1
        assert listener.failed == []


class TestCancellation:
    """Tests that stopped reconcilers ignore in-flight results."""

    async def test_teardown_discards_late_result_and_keeps_slot(
        self, storage: MemoryStorage
    ) -> None:
        provider = BlockingProvider(VerificationStatus.APPROVED)
        reconciler, listener = make_reconciler(provider, storage)
        storage.set(SESSION_SLOT_KEY, "sess-1")

        reconciler.track("sess-1")
        await settle()
        assert provider.fetched == ["sess-1"]

        reconciler.teardown()
        provider.gate.set()
        await settle()

        assert listener.approved == []
        assert reconciler.state == ReconcilerState.STOPPED
        assert storage.get(SESSION_SLOT_KEY) == "sess-1"

    async def test_reset_clears_slot(self, storage: MemoryStorage) -> None:
        reconciler, listener = make_reconciler(ScriptedProvider(), storage)
        storage.set(SESSION_SLOT_KEY, "sess-1")
        reconciler.track("sess-1")

        reconciler.reset()
        await settle()

        assert reconciler.state == ReconcilerState.IDLE
        assert reconciler.active_session_id is None
        assert storage.get(SESSION_SLOT_KEY) is None

    async def test_track_replaces_previous_session(self, storage: MemoryStorage) -> None:
        provider = BlockingProvider(VerificationStatus.DECLINED)
        reconciler, listener = make_reconciler(provider, storage)

        reconciler.track("sess-old")
        await settle()
        reconciler.track("sess-new")
        provider.gate.set()
        await settle()

        # only the new session's result is acted on
        assert len(listener.failed) == 1
        assert reconciler.active_session_id is None


class TestMount:
    """Tests for mount() and precedence."""

    async def test_mount_without_session_does_nothing(
        self, provider: ScriptedProvider, storage: MemoryStorage
    ) -> None:
        reconciler, _ = make_reconciler(provider, storage)

        assert await reconciler.mount() is False
        assert provider.fetched == []
        assert reconciler.state == ReconcilerState.IDLE

    async def test_mount_resumes_cached_session(self, storage: MemoryStorage) -> None:
        provider = ScriptedProvider(VerificationStatus.APPROVED)
        reconciler, listener = make_reconciler(provider, storage)
        storage.set(SESSION_SLOT_KEY, "sess-cached")

        assert await reconciler.mount() is True

        assert provider.fetched == ["sess-cached"]
        assert len(listener.approved) == 1

    async def test_callback_id_wins_over_cached(self, storage: MemoryStorage) -> None:
        provider = ScriptedProvider(VerificationStatus.APPROVED)
        reconciler, listener = make_reconciler(provider, storage)
        storage.set(SESSION_SLOT_KEY, "sess-old")

        await reconciler.mount("sess-new")

        assert provider.fetched == ["sess-new"]
        assert storage.get(SESSION_SLOT_KEY) == "sess-new"
        assert listener.approved[0].session_id == "sess-new"

    async def test_pending_resume_starts_polling(self, storage: MemoryStorage) -> None:
        provider = ScriptedProvider(VerificationStatus.PENDING)
        reconciler, _ = make_reconciler(provider, storage)
        storage.set(SESSION_SLOT_KEY, "sess-1")

        await reconciler.mount()

        assert reconciler.state == ReconcilerState.POLLING
        reconciler.teardown()

    async def test_mount_is_idempotent_while_polling(self, storage: MemoryStorage) -> None:
        provider = BlockingProvider(VerificationStatus.PENDING)
        reconciler, _ = make_reconciler(provider, storage)
        storage.set(SESSION_SLOT_KEY, "sess-1")
        reconciler.track("sess-1")
        await settle()

        assert await reconciler.mount("sess-1") is True

        assert provider.fetched == ["sess-1"]
        reconciler.teardown()
