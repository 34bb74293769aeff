import re
import unicodedata
from typing import List

WORD_RE = re.compile(r"\w+", re.UNICODE)


def normalize_text(text: str) -> str:
    """Purpose: Normalize free-form Spanish text for stable phrase matching.
    Inputs/Outputs: Input is a raw string; output is a lowercase ASCII-only string with
        accents and tildes removed and whitespace collapsed.
    Side Effects / State: None; pure function.
    Dependencies: Uses unicodedata and regex; called by intent classification and
        catalog field mapping.
    Failure Modes: Returns an empty string when input is falsy; punctuation such as
        "¿" and "¡" is dropped, which is intended for matching.
    If Removed: "cuánto" and "cuanto" stop matching the same intent phrase.
    Testing Notes: Validate "¿Cuánto cuesta?" normalizes to "cuanto cuesta".
    """
    # Normalize to lowercase and strip diacritics for consistent matching.
    if not text:
        return ""
    lowered = text.lower()
    decomposed = unicodedata.normalize("NFD", lowered)
    stripped = "".join(ch for ch in decomposed if unicodedata.category(ch) != "Mn")
    cleaned = re.sub(r"[^a-z0-9\s\-_/.]+", " ", stripped)
    return re.sub(r"\s+", " ", cleaned).strip()


def normalize_key(text: str) -> str:
    """Purpose: Produce a compact normalization key without spaces.
    Inputs/Outputs: Input is a raw string; output is normalized string with spaces removed.
    Side Effects / State: None; pure function.
    Dependencies: Calls normalize_text; used to match catalog column names.
    Failure Modes: Returns empty string for falsy input; otherwise deterministic.
    If Removed: Column synonyms such as "precio_con_iva" and "Precio con IVA" diverge.
    Testing Notes: Ensure spaces are removed after normalization.
    """
    # Collapse normalization output into a compact key.
    return normalize_text(text).replace(" ", "").replace("_", "")


def tokenize_words(text: str) -> List[str]:
    """Split raw text into lowercase word tokens, keeping accents."""
    return WORD_RE.findall((text or "").lower())


def format_price(value: float) -> str:
    """Format an amount as Chilean pesos, e.g. 85000 -> "$85.000"."""
    amount = int(round(value or 0))
    return "$" + f"{amount:,}".replace(",", ".")
