from __future__ import annotations

import asyncio
import logging
import time
import weakref
from typing import Callable, Dict, Optional

from .errors import RecordExistsError, RecordNotFoundError
from .models import ChatMessage, ConversationSession, SessionStatus
from .records.record_store import RecordStore

logger = logging.getLogger("obrachat.sessions")


class SessionStore:
    """Session storage for conversation transcripts and collected customer facts."""

    def __init__(self, records: RecordStore, clock: Callable[[], float] = time.time) -> None:
        """Purpose: Initialize the session store over a record store.
        Inputs/Outputs: Inputs are the RecordStore and a clock; no return.
        Side Effects / State: Creates the per-session lock registry.
        Dependencies: RecordStore fetch/create/append operations.
        Failure Modes: None at init.
        If Removed: Conversations lose their history between messages.
        Testing Notes: Use JsonFileRecordStore without paths for an in-memory store.
        """
        self._records = records
        self._clock = clock
        # Locks live only while some coroutine holds a reference to them.
        self._locks: "weakref.WeakValueDictionary[str, asyncio.Lock]" = weakref.WeakValueDictionary()

    def _lock_for(self, session_id: str) -> asyncio.Lock:
        """Return the lock for a session; callers keep it alive while they hold it."""
        lock = self._locks.get(session_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[session_id] = lock
        return lock

    async def resume_or_create(self, session_id: str) -> ConversationSession:
        """Purpose: Return the stored session, creating an empty active one when missing.
        Inputs/Outputs: Input is the caller-supplied session_id; output is a ConversationSession.
        Side Effects / State: Inserts a session record on first contact.
        Dependencies: Uses RecordStore.fetch_session and create_session.
        Failure Modes: Only RecordNotFoundError triggers creation; RecordStoreError from a
            connectivity failure propagates so history is never silently replaced.
        If Removed: New conversations cannot start.
        Testing Notes: Two calls with one id return the same session id and history.
        """
        lock = self._lock_for(session_id)
        async with lock:
            try:
                record = await self._records.fetch_session(session_id)
                return ConversationSession.model_validate(record)
            except RecordNotFoundError:
                pass

            now = self._clock()
            session = ConversationSession(
                session_id=session_id,
                status=SessionStatus.ACTIVE,
                created_at=now,
                last_activity=now,
            )
            try:
                record = await self._records.create_session(session.model_dump(mode="json"))
            except RecordExistsError:
                # Another process created it between our read and insert.
                record = await self._records.fetch_session(session_id)
            logger.info("session=%s started", session_id)
            return ConversationSession.model_validate(record)

    async def append_exchange(
        self,
        session_id: str,
        user_message: ChatMessage,
        assistant_message: ChatMessage,
        context_updates: Optional[Dict[str, str]] = None,
    ) -> ConversationSession:
        """Purpose: Append a user/assistant message pair and merge context facts.
        Inputs/Outputs: Inputs are the session id, both messages, and context updates;
            output is the stored ConversationSession after the append.
        Side Effects / State: Writes to the record store under the session's lock.
        Dependencies: Uses RecordStore.append_to_session.
        Failure Modes: RecordStoreError propagates; RecordNotFoundError if the session
            vanished from the store.
        If Removed: Transcripts are never recorded.
        Testing Notes: N concurrent appends for one id must store exactly 2N messages.
        """
        messages = [user_message.model_dump(mode="json"), assistant_message.model_dump(mode="json")]
        updates = {key: value for key, value in (context_updates or {}).items() if value}
        lock = self._lock_for(session_id)
        async with lock:
            record = await self._records.append_to_session(
                session_id,
                messages,
                updates,
                last_activity=self._clock(),
            )
        logger.debug("session=%s appended messages=%d", session_id, len(record.get("messages", [])))
        return ConversationSession.model_validate(record)

    async def get_history(self, session_id: str) -> Optional[ConversationSession]:
        """Read-only lookup; None when the session does not exist."""
        try:
            record = await self._records.fetch_session(session_id)
        except RecordNotFoundError:
            return None
        return ConversationSession.model_validate(record)
