from __future__ import annotations

import re
from enum import Enum
from typing import Dict, FrozenSet, List, Pattern

from .utils import normalize_text


class Intent(str, Enum):
    GREETING = "greeting"
    BROWSE_PRODUCTS = "browse-products"
    ASK_PRICE = "ask-price"
    REQUEST_CONTACT = "request-contact"
    ASK_SHIPPING = "ask-shipping"
    ASK_FAQ = "ask-faq"


# Phrases are matched on normalized text (lowercase, no accents) at the start of a word,
# so "precio" also covers "precios" and "cuanto" covers "¿Cuánto?".
INTENT_PHRASES: Dict[Intent, List[str]] = {
    Intent.BROWSE_PRODUCTS: [
        "ver productos",
        "ver todos los productos",
        "productos",
        "catalogo",
        "que venden",
        "busco",
        "tienen",
        "policarbonato",
        "alveolar",
        "compacto",
        "ondulado",
        "perfil",
        "accesorio",
        "plancha",
        "lamina",
    ],
    Intent.ASK_PRICE: [
        "precio",
        "costo",
        "cuesta",
        "cuanto sale",
        "cuanto vale",
        "cuanto",
        "valor",
        "cotizacion",
        "cotizar",
        "presupuesto",
    ],
    Intent.REQUEST_CONTACT: [
        "whatsapp",
        "hablar con alguien",
        "hablar con una persona",
        "hablar con un asesor",
        "asesor",
        "ejecutivo",
        "contacto",
        "contactar",
        "telefono",
        "llamar",
    ],
    Intent.ASK_SHIPPING: [
        "envio",
        "despacho",
        "despachan",
        "enviar",
        "entrega",
        "delivery",
    ],
    Intent.ASK_FAQ: [
        "horario",
        "atienden",
        "garantia",
        "forma de pago",
        "formas de pago",
        "pagar",
        "transbank",
        "instalacion",
        "instalan",
        "descuento",
        "retirar",
        "retiro en tienda",
    ],
}

GREETING_RE = re.compile(r"^(hola|hi|hello|buenos dias|buenas tardes|buenas noches|buenos|buenas|saludos)(\s|$)")


def _compile(phrases: List[str]) -> Pattern[str]:
    """Build one word-start regex; longer phrases are tried first."""
    alternatives = "|".join(re.escape(phrase) for phrase in sorted(phrases, key=len, reverse=True))
    return re.compile(rf"(?<![a-z0-9])(?:{alternatives})")


INTENT_PATTERNS: Dict[Intent, Pattern[str]] = {
    intent: _compile(phrases) for intent, phrases in INTENT_PHRASES.items()
}


class IntentClassifier:
    """Stateless keyword/phrase matcher from a raw utterance to a set of intents."""

    def classify(self, utterance: str) -> FrozenSet[Intent]:
        """Purpose: Detect every intent whose phrase table matches the utterance.
        Inputs/Outputs: Input is the raw user message; output is a frozenset of Intent.
        Side Effects / State: None; pure function.
        Dependencies: Uses normalize_text, GREETING_RE and INTENT_PATTERNS.
        Failure Modes: No match returns an empty set, which callers treat as small talk.
        If Removed: Replies cannot tell a price question from a contact request.
        Testing Notes: "¿Cuánto cuesta el policarbonato?" yields ask-price and browse-products.
        """
        normalized = normalize_text(utterance)
        if not normalized:
            return frozenset()
        intents = {intent for intent, pattern in INTENT_PATTERNS.items() if pattern.search(normalized)}
        if GREETING_RE.match(normalized):
            intents.add(Intent.GREETING)
        return frozenset(intents)


def ordered_intents(intents: FrozenSet[Intent]) -> List[str]:
    """Return intent values in declaration order for stable API output."""
    return [intent.value for intent in Intent if intent in intents]
