import asyncio
import copy
from typing import Any, Dict

import pytest

from obrachat.errors import RecordNotFoundError, RecordStoreError
from obrachat.models import ChatMessage, Sender, SessionStatus
from obrachat.records.json_store import JsonFileRecordStore
from obrachat.records.record_store import CatalogRows, RecordStore
from obrachat.session_store import SessionStore


class ReadModifyWriteRecordStore(RecordStore):
    """Appends by reading the row, yielding, then writing it back, like a remote table without an RPC."""

    def __init__(self) -> None:
        self.rows: Dict[str, Dict[str, Any]] = {}

    async def fetch_catalog(self) -> CatalogRows:
        return CatalogRows(products=[], faqs=[])

    async def fetch_session(self, session_id: str) -> Dict[str, Any]:
        if session_id not in self.rows:
            raise RecordNotFoundError(session_id)
        return copy.deepcopy(self.rows[session_id])

    async def create_session(self, record: Dict[str, Any]) -> Dict[str, Any]:
        self.rows[record["session_id"]] = copy.deepcopy(record)
        return copy.deepcopy(record)

    async def append_to_session(self, session_id, messages, context_updates, last_activity):
        record = await self.fetch_session(session_id)
        # Another append can run here; without the per-session lock it would be lost.
        await asyncio.sleep(0)
        record["messages"] = record.get("messages", []) + messages
        record["collected_context"] = {**record.get("collected_context", {}), **context_updates}
        record["last_activity"] = last_activity
        self.rows[session_id] = record
        return copy.deepcopy(record)


def _pair(index: int):
    return (
        ChatMessage(id=f"u{index}", text=f"pregunta {index}", sender=Sender.USER, timestamp=float(index)),
        ChatMessage(id=f"a{index}", text=f"respuesta {index}", sender=Sender.ASSISTANT, timestamp=float(index)),
    )


@pytest.mark.asyncio
async def test_resume_returns_the_same_session(records, clock):
    store = SessionStore(records, clock=clock)

    created = await store.resume_or_create("s1")
    resumed = await store.resume_or_create("s1")

    assert created.session_id == resumed.session_id == "s1"
    assert created.status == SessionStatus.ACTIVE
    assert created.messages == [] and resumed.messages == []
    assert created.created_at == clock.now


@pytest.mark.asyncio
async def test_unreachable_store_is_not_mistaken_for_a_new_session(unreachable):
    store = SessionStore(unreachable)

    with pytest.raises(RecordStoreError):
        await store.resume_or_create("s1")

    # Only the fetch was attempted; no create after a connectivity failure.
    assert unreachable.calls == 1


@pytest.mark.asyncio
async def test_concurrent_appends_keep_every_message(records):
    store = SessionStore(records)
    await store.resume_or_create("s1")

    await asyncio.gather(*(store.append_exchange("s1", *_pair(i)) for i in range(20)))
    session = await store.get_history("s1")

    assert len(session.messages) == 40
    assert {m.id for m in session.messages} == {f"u{i}" for i in range(20)} | {f"a{i}" for i in range(20)}


@pytest.mark.asyncio
async def test_concurrent_appends_are_serialized_over_a_read_modify_write_store():
    records = ReadModifyWriteRecordStore()
    store = SessionStore(records)
    await store.resume_or_create("s1")

    await asyncio.gather(*(store.append_exchange("s1", *_pair(i)) for i in range(20)))
    session = await store.get_history("s1")

    expected = [message_id for i in range(20) for message_id in (f"u{i}", f"a{i}")]
    assert [m.id for m in session.messages] == expected


@pytest.mark.asyncio
async def test_user_message_precedes_its_reply(records):
    store = SessionStore(records)
    await store.resume_or_create("s1")

    session = await store.append_exchange("s1", *_pair(1))

    assert [m.sender for m in session.messages] == [Sender.USER, Sender.ASSISTANT]


@pytest.mark.asyncio
async def test_context_updates_merge_and_skip_empty_values(records, clock):
    store = SessionStore(records, clock=clock)
    await store.resume_or_create("s1")

    await store.append_exchange("s1", *_pair(1), context_updates={"name": "Ana", "email": ""})
    clock.advance(10)
    session = await store.append_exchange("s1", *_pair(2), context_updates={"phone": "+56 9 1234 5678"})

    assert session.collected_context == {"name": "Ana", "phone": "+56 9 1234 5678"}
    assert session.last_activity == clock.now


@pytest.mark.asyncio
async def test_unknown_session_history_is_none(records):
    store = SessionStore(records)

    assert await store.get_history("missing") is None


@pytest.mark.asyncio
async def test_sessions_survive_a_restart_of_the_json_store(tmp_path):
    path = tmp_path / "sessions.json"
    store = SessionStore(JsonFileRecordStore(sessions_path=path))
    await store.resume_or_create("s1")
    await store.append_exchange("s1", *_pair(1), context_updates={"name": "Ana"})

    reloaded = SessionStore(JsonFileRecordStore(sessions_path=path))
    session = await reloaded.get_history("s1")

    assert session is not None
    assert len(session.messages) == 2
    assert session.collected_context == {"name": "Ana"}


def test_corrupt_sessions_file_is_an_error(tmp_path):
    path = tmp_path / "sessions.json"
    path.write_text("{not json", encoding="utf-8")

    with pytest.raises(RecordStoreError):
        JsonFileRecordStore(sessions_path=path)
