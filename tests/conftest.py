from __future__ import annotations

import asyncio
import json
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import pytest

from obrachat.errors import RecordStoreError
from obrachat.knowledge.catalog_loader import load_catalog
from obrachat.knowledge.knowledge_store import KnowledgeSnapshot
from obrachat.records.json_store import JsonFileRecordStore
from obrachat.records.record_store import CatalogRows, RecordStore

PRODUCT_ROWS: List[Dict[str, Any]] = [
    {
        "codigo": "PAL-6MM-CR",
        "nombre": "Policarbonato Alveolar 6mm Cristal",
        "categoria": "Policarbonato Alveolar",
        "espesor": "6mm",
        "color": "Cristal",
        "precio_con_iva": 85000,
        "stock": 50,
        "disponible_en_web": True,
    },
    {
        "codigo": "PAL-10MM-CR",
        "nombre": "Policarbonato Alveolar 10mm Cristal",
        "categoria": "Policarbonato Alveolar",
        "espesor": "10mm",
        "precio_con_iva": 125000,
        "stock": 30,
        "disponible_en_web": True,
    },
    {
        "codigo": "PAL-16MM-CR",
        "nombre": "Policarbonato Alveolar 16mm Cristal",
        "categoria": "Policarbonato Alveolar",
        "espesor": "16mm",
        "precio_con_iva": 189000,
        "stock": 0,
        "disponible_en_web": True,
    },
    {
        "codigo": "PC-4MM-CR",
        "nombre": "Policarbonato Compacto 4mm Cristal",
        "categoria": "Policarbonato Compacto",
        "espesor": "4mm",
        "precio_con_iva": 145000,
        "stock": 20,
        "disponible_en_web": True,
    },
    {
        "codigo": "PERF-U-6MM",
        "nombre": "Perfil U 6mm Aluminio",
        "categoria": "Perfiles",
        "precio_con_iva": 8990,
        "stock": 200,
        "disponible_en_web": True,
    },
]

FAQ_ROWS: List[Dict[str, Any]] = [
    {
        "pregunta": "¿Cuáles son los horarios de atención?",
        "respuesta": "Atendemos de Lunes a Viernes de 9:00 a 18:00 hrs.",
        "categoria": "general",
    },
    {
        "pregunta": "¿Ofrecen garantía en los productos?",
        "respuesta": "Todos nuestros productos tienen garantía de 10 años.",
        "categoria": "garantia",
    },
]


class FakeClock:
    """Manually advanced clock for TTL tests."""

    def __init__(self, start: float = 1_700_000_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class CountingRecordStore(JsonFileRecordStore):
    """In-memory record store that counts catalog reads and can hold them open."""

    def __init__(
        self,
        products: Optional[List[Dict[str, Any]]] = None,
        faqs: Optional[List[Dict[str, Any]]] = None,
    ) -> None:
        super().__init__(catalog_path=None, sessions_path=None)
        self.products = list(PRODUCT_ROWS if products is None else products)
        self.faqs = list(FAQ_ROWS if faqs is None else faqs)
        self.catalog_reads = 0
        self.gate: Optional[asyncio.Event] = None

    async def fetch_catalog(self) -> CatalogRows:
        self.catalog_reads += 1
        if self.gate is not None:
            await self.gate.wait()
        return CatalogRows(products=list(self.products), faqs=list(self.faqs))


class UnreachableRecordStore(RecordStore):
    """Record store whose every call fails as if the network were down."""

    def __init__(self) -> None:
        self.calls = 0

    async def fetch_catalog(self) -> CatalogRows:
        self.calls += 1
        raise RecordStoreError("connection refused")

    async def fetch_session(self, session_id: str) -> Dict[str, Any]:
        self.calls += 1
        raise RecordStoreError("connection refused")

    async def create_session(self, record: Dict[str, Any]) -> Dict[str, Any]:
        self.calls += 1
        raise RecordStoreError("connection refused")

    async def append_to_session(
        self,
        session_id: str,
        messages: List[Dict[str, Any]],
        context_updates: Dict[str, str],
        last_activity: float,
    ) -> Dict[str, Any]:
        self.calls += 1
        raise RecordStoreError("connection refused")


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def records() -> CountingRecordStore:
    return CountingRecordStore()


@pytest.fixture
def unreachable() -> UnreachableRecordStore:
    return UnreachableRecordStore()


@pytest.fixture
def catalog_file(tmp_path):
    path = tmp_path / "catalog.json"
    path.write_text(json.dumps({"products": PRODUCT_ROWS, "faqs": FAQ_ROWS}, ensure_ascii=False), encoding="utf-8")
    return path


@pytest.fixture
def make_records():
    return CountingRecordStore


@pytest.fixture
def snapshot():
    result = load_catalog(PRODUCT_ROWS, FAQ_ROWS)
    return KnowledgeSnapshot.build(result.products, result.faqs, datetime(2024, 1, 1, tzinfo=timezone.utc))
