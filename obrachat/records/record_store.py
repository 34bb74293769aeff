from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List


@dataclass
class CatalogRows:
    """Raw product and FAQ rows returned by one catalog read."""
    products: List[Dict[str, Any]] = field(default_factory=list)
    faqs: List[Dict[str, Any]] = field(default_factory=list)


class RecordStore(ABC):
    """Backing store holding the catalog and the session transcripts.

    Session records are plain dicts keyed like ConversationSession fields
    (session_id, messages, collected_context, status, created_at, last_activity).
    Every method raises RecordStoreError on connectivity or API failures.
    """

    @abstractmethod
    async def fetch_catalog(self) -> CatalogRows:
        """Return all web-visible products and the FAQ rows."""

    @abstractmethod
    async def fetch_session(self, session_id: str) -> Dict[str, Any]:
        """Return the session record; raise RecordNotFoundError when there is none."""

    @abstractmethod
    async def create_session(self, record: Dict[str, Any]) -> Dict[str, Any]:
        """Insert a new session record; raise RecordExistsError on a duplicate id."""

    @abstractmethod
    async def append_to_session(
        self,
        session_id: str,
        messages: List[Dict[str, Any]],
        context_updates: Dict[str, str],
        last_activity: float,
    ) -> Dict[str, Any]:
        """Append messages and merge context in one update; return the stored record."""
