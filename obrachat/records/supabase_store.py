"""Supabase-backed record store.

Tables (Postgres, accessed through PostgREST):

* ``productos``: catalog rows, filtered on ``disponible_en_web``.
* ``faqs_chatbot``: ``pregunta`` / ``respuesta`` / ``categoria``.
* ``conversaciones_chatbot``: one row per session: ``session_id``, ``mensajes``
  (jsonb array), ``contexto`` (jsonb), ``estado_conversacion``
  (``activa`` | ``finalizada`` | ``abandonada``), ``ultima_actividad``.

The client is synchronous, so every call runs in a worker thread.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

import httpx
from postgrest.exceptions import APIError
from supabase import Client, create_client

from ..config import Settings
from ..errors import RecordExistsError, RecordNotFoundError, RecordStoreError
from .record_store import CatalogRows, RecordStore

logger = logging.getLogger("obrachat.records")

PRODUCT_COLUMNS = (
    "codigo, nombre, categoria, tipo, espesor, ancho, largo, color, uso, "
    "precio_con_iva, stock, disponible_en_web"
)
DUPLICATE_KEY_CODE = "23505"
STATUS_TO_ROW = {"active": "activa", "closed": "finalizada"}
ROW_CLOSED_STATES = {"finalizada", "abandonada"}


class SupabaseRecordStore(RecordStore):
    """Record store over the Supabase tables used by the storefront."""

    def __init__(
        self,
        client: Client,
        products_table: str = "productos",
        faqs_table: str = "faqs_chatbot",
        sessions_table: str = "conversaciones_chatbot",
        append_rpc: str = "",
    ) -> None:
        self._client = client
        self._products_table = products_table
        self._faqs_table = faqs_table
        self._sessions_table = sessions_table
        self._append_rpc = append_rpc

    @classmethod
    def from_settings(cls, settings: Settings) -> "SupabaseRecordStore":
        """Purpose: Build the store from Settings with a fresh Supabase client.
        Inputs/Outputs: Input is Settings; returns a SupabaseRecordStore.
        Side Effects / State: Creates a Supabase client (no network call yet).
        Dependencies: Uses supabase.create_client.
        Failure Modes: Raises ValueError when SUPABASE_URL or the key is missing.
        If Removed: RECORD_BACKEND=supabase cannot be configured.
        Testing Notes: Construct with an empty URL and expect ValueError.
        """
        if not settings.supabase_url or not settings.supabase_key:
            raise ValueError("SUPABASE_URL and SUPABASE_KEY are required for the supabase backend")
        client = create_client(settings.supabase_url, settings.supabase_key)
        logger.info("supabase record store initialized url=%s", settings.supabase_url)
        return cls(
            client,
            products_table=settings.supabase_products_table,
            faqs_table=settings.supabase_faqs_table,
            sessions_table=settings.supabase_sessions_table,
            append_rpc=settings.supabase_append_rpc,
        )

    async def _execute(self, build: Callable[[], Any]) -> Any:
        """Purpose: Run one PostgREST builder chain off the event loop.
        Inputs/Outputs: Input is a callable returning the query builder; returns response.data.
        Side Effects / State: One network round trip in a worker thread.
        Dependencies: supabase client, postgrest APIError, httpx.
        Failure Modes: Code 23505 raises RecordExistsError; other API and transport
            failures raise RecordStoreError.
        If Removed: Every caller would need its own error translation.
        Testing Notes: Queue an APIError or httpx error in a fake client.
        """
        # Translate client failures into the record-store taxonomy.
        try:
            response = await asyncio.to_thread(lambda: build().execute())
        except APIError as exc:
            if getattr(exc, "code", None) == DUPLICATE_KEY_CODE:
                raise RecordExistsError(str(exc)) from exc
            raise RecordStoreError(f"supabase api error: {exc}") from exc
        except httpx.HTTPError as exc:
            raise RecordStoreError(f"supabase transport error: {exc}") from exc
        return getattr(response, "data", None)

    async def fetch_catalog(self) -> CatalogRows:
        products = await self._execute(
            lambda: self._client.table(self._products_table)
            .select(PRODUCT_COLUMNS)
            .eq("disponible_en_web", True)
            .order("categoria")
        )
        faqs = await self._execute(
            lambda: self._client.table(self._faqs_table).select("pregunta, respuesta, categoria")
        )
        return CatalogRows(products=list(products or []), faqs=list(faqs or []))

    async def fetch_session(self, session_id: str) -> Dict[str, Any]:
        rows = await self._execute(
            lambda: self._client.table(self._sessions_table).select("*").eq("session_id", session_id).limit(1)
        )
        if not rows:
            raise RecordNotFoundError(session_id)
        return _record_from_row(rows[0])

    async def create_session(self, record: Dict[str, Any]) -> Dict[str, Any]:
        row = _row_from_record(record)
        rows = await self._execute(lambda: self._client.table(self._sessions_table).insert(row))
        logger.info("session=%s created table=%s", record["session_id"], self._sessions_table)
        return _record_from_row(rows[0]) if rows else dict(record)

    async def append_to_session(
        self,
        session_id: str,
        messages: List[Dict[str, Any]],
        context_updates: Dict[str, str],
        last_activity: float,
    ) -> Dict[str, Any]:
        if self._append_rpc:
            # Server-side jsonb append: mensajes = mensajes || p_messages, contexto = contexto || p_context.
            rows = await self._execute(
                lambda: self._client.rpc(
                    self._append_rpc,
                    {
                        "p_session_id": session_id,
                        "p_messages": messages,
                        "p_context": context_updates,
                    },
                )
            )
            if not rows:
                raise RecordNotFoundError(session_id)
            row = rows[0] if isinstance(rows, list) else rows
            return _record_from_row(row)

        # Read-modify-write; callers serialize appends per session.
        current = await self.fetch_session(session_id)
        merged_messages = list(current.get("messages") or []) + list(messages)
        merged_context = dict(current.get("collected_context") or {})
        merged_context.update(context_updates)
        update = {
            "mensajes": merged_messages,
            "contexto": merged_context,
            "ultima_actividad": _to_iso(last_activity),
        }
        await self._execute(
            lambda: self._client.table(self._sessions_table).update(update).eq("session_id", session_id)
        )
        current.update(
            messages=merged_messages,
            collected_context=merged_context,
            last_activity=last_activity,
        )
        return current


def _record_from_row(row: Dict[str, Any]) -> Dict[str, Any]:
    state = str(row.get("estado_conversacion") or "activa").lower()
    return {
        "session_id": row.get("session_id"),
        "messages": list(row.get("mensajes") or []),
        "collected_context": dict(row.get("contexto") or {}),
        "status": "closed" if state in ROW_CLOSED_STATES else "active",
        "created_at": _to_epoch(row.get("created_at")),
        "last_activity": _to_epoch(row.get("ultima_actividad")),
    }


def _row_from_record(record: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "session_id": record["session_id"],
        "mensajes": list(record.get("messages") or []),
        "contexto": dict(record.get("collected_context") or {}),
        "estado_conversacion": STATUS_TO_ROW.get(str(record.get("status") or "active"), "activa"),
        "ultima_actividad": _to_iso(record.get("last_activity") or 0.0),
    }


def _to_epoch(value: Optional[Any]) -> float:
    if value is None:
        return 0.0
    if isinstance(value, (int, float)):
        return float(value)
    try:
        return datetime.fromisoformat(str(value).replace("Z", "+00:00")).timestamp()
    except ValueError:
        return 0.0


def _to_iso(epoch: float) -> str:
    return datetime.fromtimestamp(epoch, tz=timezone.utc).isoformat()
