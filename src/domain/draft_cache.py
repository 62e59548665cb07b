"""
Durable Form Cache - Debounced persistence of in-flight registration fields.

The cache owns a single storage slot holding at most one draft, stamped with
the verification session it belongs to. A draft is only handed back to the
session that wrote it; any other session finds the slot purged. Staged
passwords never leave memory.

Storage failures are logged and treated as "no draft": the registration
flow must keep working with an unavailable cache.
"""

import asyncio
import json
import logging
from collections import deque
from collections.abc import Awaitable, Callable
from dataclasses import replace
from datetime import datetime, timezone

from .exceptions import StorageError
from .models import RegistrationDraft
from .ports import KeyValueStorage

logger = logging.getLogger(__name__)

DRAFT_KEY = "registration:draft"

_DRAFT_FIELDS = ("phone_number", "email")

# Cleared sessions remembered to ignore late saves
CLEARED_HISTORY = 32


class DraftCache:
    """Session-keyed, debounced draft storage over a KeyValueStorage."""

    def __init__(
        self,
        storage: KeyValueStorage,
        debounce_seconds: float = 0.5,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        key: str = DRAFT_KEY,
    ) -> None:
        self._storage = storage
        self._debounce_seconds = debounce_seconds
        self._sleep = sleep
        self._key = key
        self._pending: RegistrationDraft | None = None
        self._timer: asyncio.Task | None = None
        self._cleared: deque[str] = deque(maxlen=CLEARED_HISTORY)

    def save(self, session_id: str, **fields: str | None) -> None:
        """
        Merge fields into the session's draft and schedule a write.

        Rapid calls coalesce: each call re-arms the debounce timer, so a
        burst of edits produces a single write. Saves for a session that
        has been cleared are ignored.

        Args:
            session_id: Verification session the draft belongs to
            **fields: phone_number and/or email
        """
        unknown = set(fields) - set(_DRAFT_FIELDS)
        if unknown:
            raise ValueError(f"Unknown draft fields: {sorted(unknown)}")
        if session_id in self._cleared:
            logger.debug("Ignoring draft save for cleared session %s", session_id)
            return

        if self._pending is None or self._pending.session_id != session_id:
            self._cancel_timer()
            self._pending = self._read(session_id) or RegistrationDraft(session_id=session_id)

        changes = {name: value or "" for name, value in fields.items()}
        self._pending = replace(self._pending, updated_at=_now(), **changes)

        if self._debounce_seconds <= 0:
            self._write_pending()
            return

        self._cancel_timer()
        self._timer = asyncio.get_running_loop().create_task(self._write_later())

    def load(self, session_id: str) -> RegistrationDraft | None:
        """
        Return the draft saved under session_id, or None.

        A stored draft stamped with another session is purged.
        """
        if self._pending is not None:
            if self._pending.session_id == session_id:
                return replace(self._pending)
            self._cancel_timer()
            self._pending = None

        return self._read(session_id)

    async def flush(self) -> None:
        """Write any pending draft immediately."""
        self._cancel_timer()
        self._write_pending()

    def clear(self, session_id: str) -> None:
        """Remove the draft and disarm the debounce timer for good."""
        self._cancel_timer()
        self._pending = None
        if session_id not in self._cleared:
            self._cleared.append(session_id)
        try:
            self._storage.remove(self._key)
        except StorageError as e:
            logger.warning("Draft cache clear failed: %s", e)

    async def _write_later(self) -> None:
        await self._sleep(self._debounce_seconds)
        self._timer = None
        self._write_pending()

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _write_pending(self) -> None:
        draft = self._pending
        if draft is None:
            return
        payload = {
            "session_id": draft.session_id,
            "phone_number": draft.phone_number,
            "email": draft.email,
            "updated_at": draft.updated_at.isoformat() if draft.updated_at else None,
        }
        try:
            self._storage.set(self._key, json.dumps(payload))
        except StorageError as e:
            logger.warning("Draft cache write failed: %s", e)

    def _read(self, session_id: str) -> RegistrationDraft | None:
        try:
            raw = self._storage.get(self._key)
        except StorageError as e:
            logger.warning("Draft cache read failed: %s", e)
            return None
        if raw is None:
            return None

        try:
            data = json.loads(raw)
            stored_session = data["session_id"]
            updated_at = data.get("updated_at")
            updated_at = datetime.fromisoformat(updated_at) if updated_at else None
        except (ValueError, KeyError, TypeError):
            logger.warning("Discarding unreadable draft")
            self._purge()
            return None

        if stored_session != session_id:
            logger.info("Discarding draft of previous session %s", stored_session)
            self._purge()
            return None

        return RegistrationDraft(
            session_id=session_id,
            phone_number=data.get("phone_number") or "",
            email=data.get("email") or "",
            updated_at=updated_at,
        )

    def _purge(self) -> None:
        try:
            self._storage.remove(self._key)
        except StorageError as e:
            logger.warning("Draft cache purge failed: %s", e)


def _now() -> datetime:
    return datetime.now(timezone.utc)
