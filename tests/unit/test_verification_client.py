"""
Unit tests for VerificationSessionClient.

Tests session creation, result fetching, the session slot and callback
URL parsing.
"""

import pytest

from src.adapters.storage import MemoryStorage
from src.domain.exceptions import CreateSessionFailed, ErrorKind, ResultFetchFailed
from src.domain.ports import VerificationStatus
from src.domain.verification import SESSION_SLOT_KEY, VerificationSessionClient
from tests.support import FailingStorage, ScriptedProvider, unavailable

pytestmark = pytest.mark.anyio


class TestStart:
    """Tests for start()."""

    async def test_start_returns_handle_and_remembers_id(
        self, provider: ScriptedProvider, storage: MemoryStorage
    ) -> None:
        client = VerificationSessionClient(provider, storage)

        handle = await client.start("en", "https://app.example/return")

        assert handle.session_id == "sess-1"
        assert handle.redirect_url == "https://verify.example/sess-1"
        assert storage.get(SESSION_SLOT_KEY) == "sess-1"
        assert provider.created == [("en", "https://app.example/return")]

    async def test_provider_failure_is_fatal_external(
        self, provider: ScriptedProvider, storage: MemoryStorage
    ) -> None:
        provider.fail_create = unavailable("Didit is down")
        client = VerificationSessionClient(provider, storage)

        with pytest.raises(CreateSessionFailed) as exc_info:
            await client.start("en", "https://app.example/return")

        assert exc_info.value.message == "Didit is down"
        assert exc_info.value.kind == ErrorKind.FATAL_EXTERNAL
        assert storage.get(SESSION_SLOT_KEY) is None

    async def test_start_survives_unavailable_storage(self, provider: ScriptedProvider) -> None:
        client = VerificationSessionClient(provider, FailingStorage())

        handle = await client.start("en", "https://app.example/return")

        assert handle.session_id == "sess-1"
        assert client.cached_session_id() is None


class TestFetchResult:
    """Tests for fetch_result()."""

    async def test_pending_is_not_an_error(self, storage: MemoryStorage) -> None:
        client = VerificationSessionClient(ScriptedProvider(VerificationStatus.PENDING), storage)

        session = await client.fetch_result("sess-1")

        assert session.status == VerificationStatus.PENDING
        assert session.created_at is not None

    async def test_transport_failure_maps_to_result_fetch_failed(
        self, storage: MemoryStorage
    ) -> None:
        client = VerificationSessionClient(ScriptedProvider(unavailable()), storage)

        with pytest.raises(ResultFetchFailed):
            await client.fetch_result("sess-1")


class TestSessionSlot:
    """Tests for the cached session slot."""

    def test_remember_and_forget(self, provider: ScriptedProvider, storage: MemoryStorage) -> None:
        client = VerificationSessionClient(provider, storage)

        client.remember("sess-9")
        assert client.cached_session_id() == "sess-9"

        client.forget()
        assert client.cached_session_id() is None


class TestCallbackParsing:
    """Tests for session_id_from_callback()."""

    @pytest.mark.parametrize(
        ("url", "expected"),
        [
            ("https://app.example/return?session_id=abc", "abc"),
            ("https://app.example/return?x=1&session_id=abc&y=2", "abc"),
            ("https://app.example/return", None),
            ("https://app.example/return?session_id=", None),
            (None, None),
        ],
    )
    def test_session_id_extracted(self, url, expected) -> None:
        assert VerificationSessionClient.session_id_from_callback(url) == expected
