from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

BASE_DIR = Path(__file__).resolve().parent

RECORD_BACKENDS = ("json", "supabase")


@dataclass(frozen=True)
class Settings:
    """Configuration container for the knowledge cache, record store, and replies."""
    knowledge_ttl_seconds: float
    record_backend: str
    catalog_path: Path
    sessions_path: Optional[Path]
    supabase_url: str
    supabase_key: str
    supabase_products_table: str
    supabase_faqs_table: str
    supabase_sessions_table: str
    supabase_append_rpc: str
    related_products_limit: int
    max_listed_products: int
    contact_whatsapp: str
    contact_email: str
    log_level: str


def load_settings() -> Settings:
    """Purpose: Load configuration from environment variables and defaults.
    Inputs/Outputs: No inputs; returns a Settings instance.
    Side Effects / State: Reads environment variables and filesystem paths.
    Dependencies: Uses os.getenv and BASE_DIR for default paths.
    Failure Modes: Invalid numeric env values or an unknown RECORD_BACKEND raise ValueError.
    If Removed: The app cannot build its record store or knowledge cache at startup.
    Testing Notes: Verify defaults and overrides via environment variables.
    """
    # Resolve data paths, then build Settings.
    catalog_path = os.getenv("CATALOG_PATH")
    catalog_file = Path(catalog_path) if catalog_path else (BASE_DIR / "data" / "catalog.json").resolve()

    # An empty SESSIONS_PATH keeps sessions in memory only.
    sessions_env = os.getenv("SESSIONS_PATH")
    if sessions_env is None:
        sessions_file: Optional[Path] = (BASE_DIR / "data" / "sessions.json").resolve()
    elif sessions_env.strip():
        sessions_file = Path(sessions_env)
    else:
        sessions_file = None

    record_backend = os.getenv("RECORD_BACKEND", "json").strip().lower()
    if record_backend not in RECORD_BACKENDS:
        raise ValueError(f"RECORD_BACKEND must be one of {RECORD_BACKENDS}, got {record_backend!r}")

    return Settings(
        knowledge_ttl_seconds=float(os.getenv("KNOWLEDGE_TTL_SECONDS", "300")),
        record_backend=record_backend,
        catalog_path=catalog_file,
        sessions_path=sessions_file,
        supabase_url=os.getenv("SUPABASE_URL", ""),
        supabase_key=os.getenv("SUPABASE_SERVICE_KEY") or os.getenv("SUPABASE_KEY", ""),
        supabase_products_table=os.getenv("SUPABASE_PRODUCTS_TABLE", "productos"),
        supabase_faqs_table=os.getenv("SUPABASE_FAQS_TABLE", "faqs_chatbot"),
        supabase_sessions_table=os.getenv("SUPABASE_SESSIONS_TABLE", "conversaciones_chatbot"),
        supabase_append_rpc=os.getenv("SUPABASE_APPEND_RPC", ""),
        related_products_limit=int(os.getenv("RELATED_PRODUCTS_LIMIT", "3")),
        max_listed_products=int(os.getenv("MAX_LISTED_PRODUCTS", "5")),
        contact_whatsapp=os.getenv("CONTACT_WHATSAPP", "+56 9 xxxx xxxx"),
        contact_email=os.getenv("CONTACT_EMAIL", "ventas@obraexpress.cl"),
        log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
    )
