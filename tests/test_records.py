import pytest

from obrachat.config import load_settings
from obrachat.errors import RecordExistsError, RecordNotFoundError, RecordStoreError
from obrachat.records import json_store
from obrachat.records.json_store import JsonFileRecordStore


@pytest.mark.asyncio
async def test_json_catalog_is_read_from_file(catalog_file):
    store = JsonFileRecordStore(catalog_path=catalog_file)

    rows = await store.fetch_catalog()

    assert len(rows.products) == 5
    assert len(rows.faqs) == 2


@pytest.mark.asyncio
async def test_json_catalog_accepts_a_bare_product_list(tmp_path):
    path = tmp_path / "catalog.json"
    path.write_text('[{"codigo": "A-1", "nombre": "Uno", "precio": 10}]', encoding="utf-8")

    rows = await JsonFileRecordStore(catalog_path=path).fetch_catalog()

    assert rows.products == [{"codigo": "A-1", "nombre": "Uno", "precio": 10}]
    assert rows.faqs == []


@pytest.mark.asyncio
async def test_unreadable_catalog_is_a_store_error(tmp_path):
    store = JsonFileRecordStore(catalog_path=tmp_path / "missing.json")

    with pytest.raises(RecordStoreError):
        await store.fetch_catalog()


@pytest.mark.asyncio
async def test_session_records_distinguish_missing_and_duplicate():
    store = JsonFileRecordStore()

    with pytest.raises(RecordNotFoundError):
        await store.fetch_session("s1")
    await store.create_session({"session_id": "s1", "messages": []})
    with pytest.raises(RecordExistsError):
        await store.create_session({"session_id": "s1", "messages": []})


@pytest.mark.asyncio
async def test_returned_records_are_copies():
    store = JsonFileRecordStore()
    await store.create_session({"session_id": "s1", "messages": []})

    record = await store.fetch_session("s1")
    record["messages"].append({"id": "x"})

    assert (await store.fetch_session("s1"))["messages"] == []


def test_settings_defaults(monkeypatch):
    for key in ("KNOWLEDGE_TTL_SECONDS", "RECORD_BACKEND", "CATALOG_PATH", "SESSIONS_PATH", "RELATED_PRODUCTS_LIMIT"):
        monkeypatch.delenv(key, raising=False)

    settings = load_settings()

    assert settings.knowledge_ttl_seconds == 300
    assert settings.record_backend == "json"
    assert settings.related_products_limit == 3
    assert settings.catalog_path.name == "catalog.json"
    assert settings.sessions_path is not None


def test_settings_reject_bad_values(monkeypatch):
    monkeypatch.setenv("RECORD_BACKEND", "mongo")
    with pytest.raises(ValueError):
        load_settings()

    monkeypatch.setenv("RECORD_BACKEND", "json")
    monkeypatch.setenv("KNOWLEDGE_TTL_SECONDS", "five minutes")
    with pytest.raises(ValueError):
        load_settings()


@pytest.mark.asyncio
async def test_failed_session_write_leaves_the_record_unchanged(tmp_path, monkeypatch):
    store = JsonFileRecordStore(sessions_path=tmp_path / "sessions.json")
    await store.create_session({"session_id": "s1", "messages": []})
    exchange = [{"id": "u1", "text": "Hola", "sender": "user", "timestamp": 1.0}]

    def disk_full(path, payload):
        raise OSError("No space left on device")

    monkeypatch.setattr(json_store, "_write_atomic", disk_full)
    with pytest.raises(RecordStoreError):
        await store.append_to_session("s1", exchange, {"name": "Ana"}, last_activity=5.0)

    assert (await store.fetch_session("s1"))["messages"] == []

    monkeypatch.undo()
    record = await store.append_to_session("s1", exchange, {"name": "Ana"}, last_activity=5.0)

    assert [m["id"] for m in record["messages"]] == ["u1"]
    assert record["collected_context"] == {"name": "Ana"}


@pytest.mark.asyncio
async def test_failed_create_does_not_leave_a_session_behind(tmp_path, monkeypatch):
    store = JsonFileRecordStore(sessions_path=tmp_path / "sessions.json")

    def disk_full(path, payload):
        raise OSError("No space left on device")

    monkeypatch.setattr(json_store, "_write_atomic", disk_full)
    with pytest.raises(RecordStoreError):
        await store.create_session({"session_id": "s1", "messages": []})

    with pytest.raises(RecordNotFoundError):
        await store.fetch_session("s1")
