"""Time-to-live cache over the product catalog and FAQs with fallback on read failure."""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional, Tuple, Union

from ..models import FAQ, Product
from ..records.record_store import RecordStore
from ..utils import format_price
from .catalog_loader import load_catalog
from .fallback import DEFAULT_FAQ_ROWS, FALLBACK_PRODUCT_ROWS

logger = logging.getLogger("obrachat.knowledge")

DEFAULT_TTL_SECONDS = 5 * 60
SUMMARY_PRODUCTS_PER_CATEGORY = 3


@dataclass(frozen=True)
class KnowledgeSnapshot:
    """Immutable point-in-time bundle of products, categories, and FAQs."""
    products: Tuple[Product, ...]
    categories: Tuple[str, ...]
    faqs: Tuple[FAQ, ...]
    last_updated: datetime

    @classmethod
    def build(cls, products: List[Product], faqs: List[FAQ], last_updated: datetime) -> "KnowledgeSnapshot":
        """Build a snapshot whose categories are exactly those present in products."""
        categories = sorted({product.category for product in products if product.category})
        return cls(
            products=tuple(products),
            categories=tuple(categories),
            faqs=tuple(faqs),
            last_updated=last_updated,
        )

    def search_products(self, query: str) -> List[Product]:
        """Purpose: Find products whose name or category contains the query.
        Inputs/Outputs: Input is a free-text query; output is a list in snapshot order.
        Side Effects / State: None.
        Dependencies: None beyond str.lower.
        Failure Modes: Empty or whitespace-only query returns an empty list.
        If Removed: Browse and price replies cannot find products by keyword.
        Testing Notes: "ALVEOLAR" and "alveolar" must return the same products.
        """
        term = (query or "").strip().lower()
        if not term:
            return []
        return [
            product
            for product in self.products
            if term in product.name.lower() or term in product.category.lower()
        ]

    def get_products_by_category(self, category: str) -> List[Product]:
        target = (category or "").strip().lower()
        if not target:
            return []
        return [product for product in self.products if product.category.lower() == target]

    def get_product_by_sku(self, code: str) -> Optional[Product]:
        target = str(code or "").strip().lower()
        if not target:
            return None
        for product in self.products:
            if product.code.lower() == target:
                return product
        return None

    def get_related_products(self, code: str, limit: int = 3) -> List[Product]:
        """Purpose: Recommend products from the same category with the closest prices.
        Inputs/Outputs: Inputs are a reference code and a limit; output is a list.
        Side Effects / State: None.
        Dependencies: Uses get_product_by_sku.
        Failure Modes: Unknown code or a non-positive limit returns an empty list.
        If Removed: Product replies lose their "también te puede interesar" block.
        Testing Notes: Result never contains the reference and is ordered by price distance.
        """
        reference = self.get_product_by_sku(code)
        if reference is None or limit <= 0:
            return []
        candidates = [
            product
            for product in self.products
            if product.category == reference.category and product.code.lower() != reference.code.lower()
        ]
        # sorted() is stable, so equal distances keep snapshot order.
        candidates = sorted(candidates, key=lambda product: abs(product.price - reference.price))
        return candidates[:limit]

    def get_relevant_faqs(self, query: str) -> List[FAQ]:
        term = (query or "").strip().lower()
        if not term:
            return []
        return [faq for faq in self.faqs if term in faq.question.lower() or term in faq.answer.lower()]

    def products_summary(self) -> str:
        """Per-category digest listing the first products with their prices."""
        grouped: Dict[str, List[Product]] = {}
        for product in self.products:
            grouped.setdefault(product.category or "Otros", []).append(product)

        lines = ["Productos disponibles:", ""]
        for category, products in grouped.items():
            lines.append(f"**{category}:**")
            for product in products[:SUMMARY_PRODUCTS_PER_CATEGORY]:
                lines.append(f"• {product.name} - {format_price(product.price)}")
            if len(products) > SUMMARY_PRODUCTS_PER_CATEGORY:
                lines.append(f"  ...y {len(products) - SUMMARY_PRODUCTS_PER_CATEGORY} productos más")
            lines.append("")
        return "\n".join(lines).strip()


@dataclass(frozen=True)
class Fresh:
    snapshot: KnowledgeSnapshot


@dataclass(frozen=True)
class Fallback:
    snapshot: KnowledgeSnapshot
    error: Exception


RefreshOutcome = Union[Fresh, Fallback]


@dataclass(frozen=True)
class CacheState:
    snapshot: KnowledgeSnapshot
    fetched_at: float
    source: str


class KnowledgeStore:
    """Own the catalog snapshot and keep it fresh without hammering the record store."""

    def __init__(
        self,
        records: RecordStore,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Purpose: Configure the cache over a record store.
        Inputs/Outputs: Inputs are the record store, TTL in seconds, and a clock; no return.
        Side Effects / State: Starts with an empty cache; nothing is read until first use.
        Dependencies: RecordStore.fetch_catalog is the only outbound call.
        Failure Modes: None at init.
        If Removed: Every request would need its own catalog read.
        Testing Notes: Inject a fake clock to move past the TTL deterministically.
        """
        self._records = records
        self._ttl = float(ttl_seconds)
        self._clock = clock
        self._state: Optional[CacheState] = None
        self._refresh_task: Optional[asyncio.Task] = None
        self._refresh_generation = 0
        self._generation = 0

    async def get_knowledge(self) -> KnowledgeSnapshot:
        """Purpose: Return the current snapshot, refreshing it when the TTL has expired.
        Inputs/Outputs: No inputs; returns a KnowledgeSnapshot.
        Side Effects / State: May start the single shared refresh task.
        Dependencies: Uses _refresh through one asyncio.Task shared by all callers.
        Failure Modes: Never raises for record-store failures; those yield the fallback.
        If Removed: No component can read the catalog.
        Testing Notes: Two calls inside the TTL return the same object; concurrent
            calls during a refresh trigger a single read.
        """
        state = self._state
        if state is not None and self._clock() - state.fetched_at < self._ttl:
            return state.snapshot

        # A task started before clear_cache() belongs to the old generation.
        task = self._refresh_task
        if task is None or self._refresh_generation != self._generation:
            task = asyncio.ensure_future(self._refresh(self._generation))
            self._refresh_task = task
            self._refresh_generation = self._generation
        # Shield so one cancelled caller does not cancel the refresh the others await.
        return await asyncio.shield(task)

    async def _refresh(self, generation: int) -> KnowledgeSnapshot:
        """Purpose: Run one catalog read and publish it unless the cache was cleared meanwhile.
        Inputs/Outputs: Input is the cache generation the task was started for; returns the snapshot.
        Side Effects / State: Sets _state for its own generation only. Releases _refresh_task
            only while it is still the current task.
        Dependencies: _load.
        Failure Modes: Record-store failures arrive as Fallback, not as exceptions.
        If Removed: get_knowledge has nothing to await.
        Testing Notes: A clear_cache() during the read leaves the cache empty.
        """
        this_task = asyncio.current_task()
        try:
            outcome = await self._load()
            fetched_at = self._clock()
            if isinstance(outcome, Fresh):
                source = "fresh"
                logger.info(
                    "knowledge refreshed products=%d categories=%d faqs=%d",
                    len(outcome.snapshot.products),
                    len(outcome.snapshot.categories),
                    len(outcome.snapshot.faqs),
                )
            else:
                source = "fallback"
                logger.error("knowledge refresh failed, serving fallback dataset: %s", outcome.error)
            # A clear_cache() during the read discards this result for later callers.
            if generation == self._generation:
                self._state = CacheState(snapshot=outcome.snapshot, fetched_at=fetched_at, source=source)
            return outcome.snapshot
        finally:
            if self._refresh_task is this_task:
                self._refresh_task = None

    async def _load(self) -> RefreshOutcome:
        """Read the catalog rows; only a failed read turns into a Fallback."""
        now = datetime.fromtimestamp(self._clock(), tz=timezone.utc)
        try:
            rows = await self._records.fetch_catalog()
        except Exception as exc:
            return Fallback(snapshot=build_fallback_snapshot(now), error=exc)

        # Mapping errors are bugs, not outages.
        result = load_catalog(rows.products, rows.faqs)

        if result.rejected:
            logger.warning("knowledge refresh rejected %d malformed rows", result.rejected)
        faqs = result.faqs
        if not faqs:
            faqs = load_catalog([], DEFAULT_FAQ_ROWS).faqs
        return Fresh(snapshot=KnowledgeSnapshot.build(result.products, faqs, now))

    async def search_products(self, query: str) -> List[Product]:
        return (await self.get_knowledge()).search_products(query)

    async def get_products_by_category(self, category: str) -> List[Product]:
        return (await self.get_knowledge()).get_products_by_category(category)

    async def get_product_by_sku(self, code: str) -> Optional[Product]:
        return (await self.get_knowledge()).get_product_by_sku(code)

    async def get_related_products(self, code: str, limit: int = 3) -> List[Product]:
        return (await self.get_knowledge()).get_related_products(code, limit)

    async def get_relevant_faqs(self, query: str) -> List[FAQ]:
        return (await self.get_knowledge()).get_relevant_faqs(query)

    async def get_products_summary(self) -> str:
        return (await self.get_knowledge()).products_summary()

    def get_stats(self) -> Dict[str, object]:
        """Purpose: Report catalog counts and cache age without forcing a refresh.
        Inputs/Outputs: No inputs; returns a stats dict.
        Side Effects / State: None.
        Dependencies: Reads the current CacheState only.
        Failure Modes: With an empty cache all counts are 0 and ages are None.
        If Removed: Operators cannot see whether the bot runs on fallback data.
        Testing Notes: cacheAge grows with the injected clock.
        """
        state = self._state
        if state is None:
            return {
                "totalProducts": 0,
                "totalCategories": 0,
                "totalFAQs": 0,
                "inStock": 0,
                "lastUpdated": None,
                "cacheAge": None,
                "source": None,
            }
        snapshot = state.snapshot
        return {
            "totalProducts": len(snapshot.products),
            "totalCategories": len(snapshot.categories),
            "totalFAQs": len(snapshot.faqs),
            "inStock": sum(1 for product in snapshot.products if product.stock > 0),
            "lastUpdated": snapshot.last_updated.isoformat(),
            "cacheAge": int(self._clock() - state.fetched_at),
            "source": state.source,
        }

    def clear_cache(self) -> None:
        self._state = None
        self._generation += 1
        logger.info("knowledge cache cleared")


def build_fallback_snapshot(now: datetime) -> KnowledgeSnapshot:
    result = load_catalog(FALLBACK_PRODUCT_ROWS, DEFAULT_FAQ_ROWS)
    return KnowledgeSnapshot.build(result.products, result.faqs, now)
