"""Ingestion boundary between raw record-store rows and catalog value types.

Rows coming from the record store are loosely shaped (Spanish column names from
the products table, English keys from JSON exports, string-typed numbers from
spreadsheet syncs). This module maps them onto Product and FAQ through a table of
field synonyms and rejects rows that cannot form a valid record.
"""

from __future__ import annotations

import logging
import math
import re
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional

from ..models import FAQ, Product
from ..utils import normalize_key

logger = logging.getLogger("obrachat.catalog")

CODE_KEYS = ["codigo", "sku", "code", "codigo producto", "product code"]
NAME_KEYS = ["nombre", "name", "nombre producto", "product name"]
CATEGORY_KEYS = ["categoria", "category", "product category"]
PRICE_KEYS = ["precio_con_iva", "precio con iva", "price", "precio"]
STOCK_KEYS = ["stock", "cantidad", "inventario"]
VISIBLE_KEYS = ["disponible_en_web", "visible", "publicado", "published"]
ATTRIBUTE_KEYS = {
    "type": ["tipo", "type"],
    "thickness": ["espesor", "thickness"],
    "width": ["ancho", "width"],
    "length": ["largo", "length"],
    "color": ["color"],
    "use": ["uso", "use"],
    "description": ["descripcion", "description"],
}

QUESTION_KEYS = ["pregunta", "question"]
ANSWER_KEYS = ["respuesta", "answer"]
FAQ_CATEGORY_KEYS = ["categoria", "category"]

THOUSANDS_RE = re.compile(r"^\d{1,3}(\.\d{3})+$")
TRUE_VALUES = {"true", "1", "si", "yes", "t"}
FALSE_VALUES = {"false", "0", "no", "f"}


@dataclass
class CatalogLoadResult:
    """Products and FAQs accepted from one read, with the rejected row count."""
    products: List[Product] = field(default_factory=list)
    faqs: List[FAQ] = field(default_factory=list)
    rejected: int = 0


def load_catalog(product_rows: Iterable[Any], faq_rows: Iterable[Any]) -> CatalogLoadResult:
    """Purpose: Map raw product and FAQ rows into catalog value types.
    Inputs/Outputs: Inputs are iterables of row dicts; returns a CatalogLoadResult.
    Side Effects / State: Logs a warning per rejected row.
    Dependencies: Uses product_from_row and faq_from_row.
    Failure Modes: Malformed rows are skipped and counted, never raised.
    If Removed: Knowledge refresh would pass ambiguous row shapes downstream.
    Testing Notes: Mix valid, invisible, and malformed rows and check the counts.
    """
    result = CatalogLoadResult()
    seen_codes = set()
    for row in product_rows or []:
        product = product_from_row(row)
        if product is None:
            result.rejected += 1
            continue
        if not product.visible:
            continue
        code_key = product.code.lower()
        if code_key in seen_codes:
            logger.warning("catalog duplicate code=%s skipped", product.code)
            result.rejected += 1
            continue
        seen_codes.add(code_key)
        result.products.append(product)
    for row in faq_rows or []:
        faq = faq_from_row(row)
        if faq is None:
            result.rejected += 1
            continue
        result.faqs.append(faq)
    return result


def product_from_row(row: Any) -> Optional[Product]:
    """Purpose: Build a Product from one raw row, or None when the row is unusable.
    Inputs/Outputs: Input is a row dict; output is a Product or None.
    Side Effects / State: Logs the rejection reason.
    Dependencies: Uses _get_first_value and the coercion helpers.
    Failure Modes: A missing code or name rejects the row, and so does a price that is
        not a finite non-negative number; unparseable stock is coerced to 0.
    If Removed: load_catalog cannot accept any product rows.
    Testing Notes: Feed Spanish and English column names and string prices.
    """
    if not isinstance(row, dict):
        logger.warning("catalog row rejected reason=not_a_mapping")
        return None
    code = _clean_str(_get_first_value(row, CODE_KEYS))
    name = _clean_str(_get_first_value(row, NAME_KEYS))
    if not code or not name:
        logger.warning("catalog row rejected reason=missing_code_or_name code=%s", code)
        return None
    price = _coerce_price(_get_first_value(row, PRICE_KEYS))
    if price is None or price < 0:
        logger.warning("catalog row rejected reason=invalid_price code=%s", code)
        return None

    attributes = {
        attr: _clean_str(_get_first_value(row, keys)) or None for attr, keys in ATTRIBUTE_KEYS.items()
    }
    return Product(
        code=code,
        name=name,
        category=_clean_str(_get_first_value(row, CATEGORY_KEYS)),
        price=price,
        stock=_coerce_stock(_get_first_value(row, STOCK_KEYS)),
        visible=_coerce_bool(_get_first_value(row, VISIBLE_KEYS), default=True),
        **attributes,
    )


def faq_from_row(row: Any) -> Optional[FAQ]:
    """Map one FAQ row; None when the question or answer is missing."""
    if not isinstance(row, dict):
        return None
    question = _clean_str(_get_first_value(row, QUESTION_KEYS))
    answer = _clean_str(_get_first_value(row, ANSWER_KEYS))
    if not question or not answer:
        logger.warning("faq row rejected reason=missing_question_or_answer")
        return None
    category = _clean_str(_get_first_value(row, FAQ_CATEGORY_KEYS)) or "general"
    return FAQ(question=question, answer=answer, category=category)


def _get_first_value(item: Dict[str, Any], keys: List[str]) -> Optional[Any]:
    """Find the first populated field in a row by key synonyms, exact before partial."""
    normalized_map = {normalize_key(str(k)): k for k in item.keys()}
    for key in keys:
        normalized = normalize_key(key)
        if normalized in normalized_map:
            value = item.get(normalized_map[normalized])
            if _has_value(value):
                return value
    for key in keys:
        normalized = normalize_key(key)
        for item_key, actual_key in normalized_map.items():
            if normalized in item_key:
                value = item.get(actual_key)
                if _has_value(value):
                    return value
    return None


def _has_value(value: Any) -> bool:
    """Purpose: Determine whether a cell is present and non-empty.
    Inputs/Outputs: Input is any value; output is True if usable.
    """
    if value is None:
        return False
    if isinstance(value, str):
        return bool(value.strip())
    return True


def _clean_str(value: Any) -> str:
    """Stringify and strip a cell; None becomes an empty string."""
    if value is None:
        return ""
    return str(value).strip()


def _coerce_price(value: Any) -> Optional[float]:
    """Purpose: Parse a price cell such as 85000, "85000", "$85.000" or "12,5".
    Inputs/Outputs: Input is a raw cell value; output is a finite float or None.
    Side Effects / State: None.
    Dependencies: THOUSANDS_RE for Chilean thousands separators.
    Failure Modes: Booleans, text, NaN and infinities return None so the row is rejected.
    If Removed: String-typed prices from spreadsheet syncs are lost.
    Testing Notes: "nan" and "1e999" must not produce a Product.
    """
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, (int, float)):
        raw = value
    else:
        text = str(value).replace("$", "").replace(" ", "").strip()
        if THOUSANDS_RE.match(text):
            text = text.replace(".", "")
        raw = text.replace(",", ".")
    try:
        price = float(raw)
    except (ValueError, OverflowError):
        return None
    return price if math.isfinite(price) else None


def _coerce_stock(value: Any) -> int:
    """Parse a stock cell; anything unusable (text, NaN, infinity) counts as 0."""
    if value is None or isinstance(value, bool):
        return 0
    try:
        stock = float(value)
    except (TypeError, ValueError, OverflowError):
        return 0
    if not math.isfinite(stock):
        return 0
    return int(stock)


def _coerce_bool(value: Any, default: bool) -> bool:
    """Purpose: Read a visibility flag such as true, "si", "1" or "no".
    Inputs/Outputs: Inputs are the cell and the default for empty cells; returns a bool.
    """
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in TRUE_VALUES:
        return True
    if text in FALSE_VALUES:
        return False
    return default
