from __future__ import annotations

import asyncio
import copy
import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

from ..errors import RecordExistsError, RecordNotFoundError, RecordStoreError
from .record_store import CatalogRows, RecordStore

logger = logging.getLogger("obrachat.records")


class JsonFileRecordStore(RecordStore):
    """Record store backed by a catalog JSON file and a sessions JSON file."""

    def __init__(self, catalog_path: Optional[Path] = None, sessions_path: Optional[Path] = None) -> None:
        """Purpose: Initialize the store and hydrate sessions from disk if available.
        Inputs/Outputs: Inputs are optional catalog and sessions file paths; no return.
        Side Effects / State: Loads and caches session records in memory.
        Dependencies: Calls _load.
        Failure Modes: A corrupt sessions file raises RecordStoreError at startup.
        If Removed: The default backend disappears and the app needs Supabase to run.
        Testing Notes: Pass sessions_path=None to keep sessions in memory only.
        """
        # Keep configuration and preload persisted sessions if present.
        self._catalog_path = catalog_path
        self._sessions_path = sessions_path
        self._sessions: Dict[str, Dict[str, Any]] = {}
        self._write_lock = asyncio.Lock()
        self._load()

    def _load(self) -> None:
        """Purpose: Load persisted session records from disk into memory.
        Inputs/Outputs: Reads from self._sessions_path; no return value.
        Side Effects / State: Populates the _sessions cache.
        Dependencies: Uses json.loads.
        Failure Modes: Missing file leaves the cache empty; JSONDecodeError raises
            RecordStoreError so transcripts are never silently dropped.
        If Removed: Previously stored sessions are never restored on startup.
        Testing Notes: Corrupt JSON should raise; valid JSON should hydrate the cache.
        """
        if not self._sessions_path or not self._sessions_path.exists():
            return
        try:
            data = json.loads(self._sessions_path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as exc:
            raise RecordStoreError(f"sessions file {self._sessions_path} is not valid JSON") from exc
        sessions = data.get("sessions", {}) if isinstance(data, dict) else {}
        for session_id, record in sessions.items():
            if isinstance(record, dict):
                self._sessions[session_id] = record

    async def _persist(self, sessions: Dict[str, Dict[str, Any]]) -> None:
        """Purpose: Persist a staged copy of the session records to disk.
        Inputs/Outputs: Input is the full sessions mapping to write; no return value.
        Side Effects / State: Writes a JSON file through a temp file and rename.
        Dependencies: Uses json.dumps and a worker thread for the file write.
        Failure Modes: IO errors are raised as RecordStoreError; callers commit to
            memory only after this returns, so a failed write changes nothing.
        If Removed: Transcripts are lost on restart.
        Testing Notes: Ensure the file is created and reloads into the same records.
        """
        if not self._sessions_path:
            return
        payload = json.dumps({"sessions": sessions}, ensure_ascii=False, indent=2)
        try:
            await asyncio.to_thread(_write_atomic, self._sessions_path, payload)
        except OSError as exc:
            raise RecordStoreError(f"could not write {self._sessions_path}: {exc}") from exc

    async def fetch_catalog(self) -> CatalogRows:
        if not self._catalog_path:
            raise RecordStoreError("no catalog file configured")
        try:
            raw = await asyncio.to_thread(self._catalog_path.read_text, encoding="utf-8")
            data = json.loads(raw)
        except (OSError, json.JSONDecodeError) as exc:
            raise RecordStoreError(f"could not read catalog {self._catalog_path}: {exc}") from exc
        if isinstance(data, list):
            return CatalogRows(products=data, faqs=[])
        if not isinstance(data, dict):
            raise RecordStoreError(f"catalog {self._catalog_path} has an unexpected shape")
        return CatalogRows(products=list(data.get("products", [])), faqs=list(data.get("faqs", [])))

    async def fetch_session(self, session_id: str) -> Dict[str, Any]:
        record = self._sessions.get(session_id)
        if record is None:
            raise RecordNotFoundError(session_id)
        return copy.deepcopy(record)

    async def create_session(self, record: Dict[str, Any]) -> Dict[str, Any]:
        session_id = record["session_id"]
        async with self._write_lock:
            if session_id in self._sessions:
                raise RecordExistsError(session_id)
            stored = copy.deepcopy(record)
            await self._persist({**self._sessions, session_id: stored})
            self._sessions[session_id] = stored
        logger.info("session=%s created", session_id)
        return copy.deepcopy(stored)

    async def append_to_session(
        self,
        session_id: str,
        messages: List[Dict[str, Any]],
        context_updates: Dict[str, str],
        last_activity: float,
    ) -> Dict[str, Any]:
        async with self._write_lock:
            current = self._sessions.get(session_id)
            if current is None:
                raise RecordNotFoundError(session_id)
            # Work on a copy; memory changes only once the file write succeeded.
            record = copy.deepcopy(current)
            record.setdefault("messages", []).extend(copy.deepcopy(messages))
            record.setdefault("collected_context", {}).update(context_updates)
            record["last_activity"] = last_activity
            await self._persist({**self._sessions, session_id: record})
            self._sessions[session_id] = record
        return copy.deepcopy(record)


def _write_atomic(path: Path, payload: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = path.with_suffix(".tmp")
    tmp_path.write_text(payload, encoding="utf-8")
    tmp_path.replace(path)
