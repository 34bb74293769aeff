"""Deterministic reply composition from a knowledge snapshot, intents, and session context.

Sections are added in priority order (welcome, products, prices, contact,
shipping, FAQs) and joined into one reply; the generic reply is used only when no
section applies. Replies embed [ACTION:...] markers that the frontend turns into
buttons.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Dict, FrozenSet, List, Optional

from .intent_classifier import Intent
from .knowledge.knowledge_store import KnowledgeSnapshot
from .models import FAQ, ConversationSession, Product
from .utils import format_price, normalize_text, tokenize_words

ACTION_REDIRECT_PRODUCTS = "[ACTION:REDIRECT_PRODUCTS]"
ACTION_OPEN_WHATSAPP = "[ACTION:OPEN_WHATSAPP]"
ACTION_OPEN_SHIPPING_CALCULATOR = "[ACTION:OPEN_SHIPPING_CALCULATOR]"
ACTION_SHOW_PRODUCT = "[ACTION:SHOW_PRODUCT:{code}]"

FEATURED_PRICE_COUNT = 3
MAX_FAQ_ANSWERS = 2
PRODUCT_CODE_RE = re.compile(r"\b[A-Za-z]{2,}-[A-Za-z0-9]+(?:-[A-Za-z0-9]+)*\b")

# Normalized words that never identify a product on their own.
STOPWORDS = frozenset(
    """
    a al algo alguien alguno busco buscando cada como con cual cuales cuanto cuanta cuesta
    costo de del dame donde el ella en es esta este esto favor gracias hay hola informacion
    la las le lo los mas me mi mis muy necesito necesitamos o otra otro para pero podria por
    precio precios producto productos puedes que quiero quisiera sale saber se sobre su sus
    tambien te tiene tienen tienes todo todos tu un una uno unos unas valor vale ver y ya
    disponible disponibles catalogo cotizar cotizacion hablar whatsapp despacho envio
    buenas buenos dias tardes noches nombre llamo terraza casa proyecto
    """.split()
)

# (normalized trigger, FAQ search term)
FAQ_TOPICS = [
    ("horario", "horario"),
    ("atienden", "horario"),
    ("garantia", "garantía"),
    ("forma de pago", "pago"),
    ("formas de pago", "pago"),
    ("pagar", "pago"),
    ("transbank", "transbank"),
    ("instala", "instala"),
    ("descuento", "descuento"),
    ("retir", "retir"),
]


@dataclass(frozen=True)
class ContactInfo:
    whatsapp: str = "+56 9 xxxx xxxx"
    email: str = "ventas@obraexpress.cl"
    hours: str = "Lunes a Viernes 9:00 - 18:00"


class ResponseGenerator:
    """Pure reply composer; holds only formatting limits and contact details."""

    def __init__(
        self,
        max_listed_products: int = 5,
        related_limit: int = 3,
        contact: Optional[ContactInfo] = None,
    ) -> None:
        self._max_listed = max(1, max_listed_products)
        self._related_limit = related_limit
        self._contact = contact or ContactInfo()

    def compose(
        self,
        snapshot: KnowledgeSnapshot,
        intents: FrozenSet[Intent],
        session: ConversationSession,
        raw_message: str,
        is_first_message: bool = False,
    ) -> str:
        """Purpose: Build the assistant reply for one user message.
        Inputs/Outputs: Inputs are the snapshot, detected intents, the session (with the
            context known so far), the raw message, and the first-message flag; output
            is the reply text.
        Side Effects / State: None; deterministic for equal inputs.
        Dependencies: Uses snapshot search/lookup methods and the section builders.
        Failure Modes: None expected; unknown products simply produce catalog summaries.
        If Removed: The conversation handler has nothing to answer with.
        Testing Notes: Multiple intents must produce all their sections in one reply.
        """
        name = session.collected_context.get("name", "")
        sections: List[str] = []

        if not session.messages and (is_first_message or Intent.GREETING in intents):
            sections.append(self._welcome(name))
        elif Intent.GREETING in intents:
            sections.append(f"¡Hola de nuevo{', ' + name if name else ''}! 👋")

        matches = find_mentioned_products(snapshot, raw_message)
        if Intent.BROWSE_PRODUCTS in intents:
            sections.append(self._products_section(snapshot, matches))
        if Intent.ASK_PRICE in intents:
            sections.append(self._price_section(snapshot, matches, Intent.BROWSE_PRODUCTS in intents))
        if Intent.REQUEST_CONTACT in intents:
            sections.append(self._contact_section(name))
        if Intent.ASK_SHIPPING in intents:
            sections.append(self._shipping_section())
        if Intent.ASK_FAQ in intents:
            faqs = find_topic_faqs(snapshot, raw_message)
            if faqs:
                sections.append(self._faq_section(faqs))

        if not sections:
            sections.append(self._default_section(name))
        return "\n\n".join(section.strip() for section in sections if section.strip())

    def _welcome(self, name: str) -> str:
        greeting = f"¡Hola {name}!" if name else "¡Hola!"
        return (
            f"{greeting} 👋 Soy María Elena, tu asesora en ObraExpress.\n\n"
            "Estoy aquí para ayudarte con:\n"
            "• 🏗️ Policarbonato alveolar, compacto y ondulado\n"
            "• 📐 Perfiles y accesorios de instalación\n"
            "• 💰 Cotizaciones instantáneas\n"
            "• 🚚 Información de despacho\n\n"
            "¿En qué puedo ayudarte hoy?"
        )

    def _products_section(self, snapshot: KnowledgeSnapshot, matches: List[Product]) -> str:
        if not matches:
            if not snapshot.products:
                return "Por ahora no tengo productos publicados. Un asesor puede ayudarte. " + ACTION_OPEN_WHATSAPP
            return f"{snapshot.products_summary()}\n\n{ACTION_REDIRECT_PRODUCTS}"

        top = matches[0]
        lines = [f"Te puedo ayudar con {top.name}.", "", product_details(top)]
        others = matches[1 : self._max_listed]
        if others:
            lines.extend(["", "**Otras opciones:**"])
            lines.extend(f"• {product.name}: {format_price(product.price)}" for product in others)
        else:
            related = snapshot.get_related_products(top.code, self._related_limit)
            if related:
                lines.extend(["", "**También te puede interesar:**"])
                lines.extend(f"• {product.name}: {format_price(product.price)}" for product in related)
        lines.extend(
            [
                "",
                "¿Te gustaría agregar este producto al carrito o necesitas más información?",
                ACTION_SHOW_PRODUCT.format(code=top.code),
            ]
        )
        return "\n".join(lines)

    def _price_section(self, snapshot: KnowledgeSnapshot, matches: List[Product], listed: bool) -> str:
        if matches and listed:
            return "📞 Para cotizaciones por volumen, contáctanos directamente."
        if matches:
            lines = ["💰 **Precios (IVA incluido):**", ""]
            lines.extend(f"• {product.name}: {format_price(product.price)}" for product in matches[: self._max_listed])
            lines.extend(["", "📞 Para cotizaciones por volumen, contáctanos directamente."])
            return "\n".join(lines)
        featured = list(snapshot.products[:FEATURED_PRICE_COUNT])
        if not featured:
            return "Para conocer precios actualizados, contáctanos directamente. " + ACTION_OPEN_WHATSAPP
        lines = ["💰 **Nuestros precios más competitivos:**", ""]
        lines.extend(f"• {product.name}: {format_price(product.price)}" for product in featured)
        lines.extend(["", "📞 Para cotizaciones por volumen, contáctanos directamente.", ACTION_REDIRECT_PRODUCTS])
        return "\n".join(lines)

    def _contact_section(self, name: str) -> str:
        handoff = f"Perfecto{', ' + name if name else ''}, te pongo en contacto con un asesor."
        return (
            f"{handoff}\n\n"
            "📞 **Contacto Directo:**\n\n"
            f"• WhatsApp: {self._contact.whatsapp}\n"
            f"• Email: {self._contact.email}\n"
            f"• Horario: {self._contact.hours}\n\n"
            "💬 También puedes continuar hablando conmigo aquí.\n"
            f"{ACTION_OPEN_WHATSAPP}"
        )

    def _shipping_section(self) -> str:
        return (
            "🚚 **Información de Despacho:**\n\n"
            "• Despacho a todo Chile\n"
            "• Santiago: 24-48 horas\n"
            "• Regiones: 3-5 días hábiles\n"
            "• Envío GRATIS en compras sobre $150.000\n\n"
            "📅 Puedes agendar tu despacho en la fecha que prefieras.\n\n"
            "¿Necesitas calcular el costo de envío a tu comuna?\n"
            f"{ACTION_OPEN_SHIPPING_CALCULATOR}"
        )

    def _faq_section(self, faqs: List[FAQ]) -> str:
        return "\n\n".join(f"**{faq.question}**\n{faq.answer}" for faq in faqs)

    def _default_section(self, name: str) -> str:
        opening = f"Entiendo tu consulta, {name}." if name else "Entiendo tu consulta."
        return (
            f"{opening} Te puedo ayudar con:\n\n"
            f"• Ver nuestro catálogo de productos {ACTION_REDIRECT_PRODUCTS}\n"
            "• Calcular precios para tu proyecto\n"
            "• Información sobre despachos\n"
            f"• Contactar con un asesor {ACTION_OPEN_WHATSAPP}\n\n"
            "¿Qué te gustaría saber específicamente?"
        )


def product_details(product: Product) -> str:
    availability = "✅ Disponible para entrega inmediata" if product.stock > 0 else "⏳ Disponible bajo pedido"
    return (
        "📋 **Especificaciones:**\n"
        f"• Espesor: {product.thickness or 'Variable'}\n"
        f"• Dimensiones: {product.width or '2.10m'} x {product.length or '5.80m'}\n"
        f"• Color: {product.color or 'Cristal'}\n"
        f"• Uso: {product.use or 'Techos y coberturas'}\n\n"
        f"💰 **Precio:** {format_price(product.price)} (IVA incluido)\n\n"
        f"{availability}"
    )


def extract_keywords(raw_message: str) -> List[str]:
    """Return the message words that can identify a product, in message order."""
    keywords: List[str] = []
    for token in tokenize_words(raw_message):
        if len(token) < 3 and not any(ch.isdigit() for ch in token):
            continue
        if normalize_text(token) in STOPWORDS:
            continue
        if token not in keywords:
            keywords.append(token)
    return keywords


def find_mentioned_products(snapshot: KnowledgeSnapshot, raw_message: str) -> List[Product]:
    """Purpose: Rank the products a message refers to.
    Inputs/Outputs: Inputs are the snapshot and the raw message; output is a ranked list.
    Side Effects / State: None.
    Dependencies: Uses extract_keywords, KnowledgeSnapshot.search_products and
        get_product_by_sku.
    Failure Modes: No usable keyword returns an empty list.
    If Removed: Product and price replies cannot name concrete products.
    Testing Notes: "policarbonato 6mm" ranks the 6mm sheet before other polycarbonates.
    """
    for candidate in PRODUCT_CODE_RE.findall(raw_message or ""):
        product = snapshot.get_product_by_sku(candidate)
        if product is not None:
            return [product]

    hits: Dict[str, int] = {}
    for keyword in extract_keywords(raw_message):
        found = snapshot.search_products(keyword)
        if not found and len(keyword) > 4 and keyword.endswith("s"):
            found = snapshot.search_products(keyword[:-1])
        for product in found:
            hits[product.code] = hits.get(product.code, 0) + 1
    if not hits:
        return []
    ordered = [product for product in snapshot.products if product.code in hits]
    # Stable sort: more keyword hits first, snapshot order within ties.
    return sorted(ordered, key=lambda product: -hits[product.code])


def find_topic_faqs(snapshot: KnowledgeSnapshot, raw_message: str) -> List[FAQ]:
    """Purpose: Pick the FAQs whose topic trigger appears in the message.
    Inputs/Outputs: Inputs are the snapshot and the raw message; returns at most
        MAX_FAQ_ANSWERS FAQs without duplicates.
    Dependencies: FAQ_TOPICS and KnowledgeSnapshot.get_relevant_faqs.
    Testing Notes: "garantía" should surface the warranty FAQ once.
    """
    # Triggers are matched on accent-free text.
    normalized = normalize_text(raw_message)
    found: List[FAQ] = []
    for trigger, term in FAQ_TOPICS:
        if trigger not in normalized:
            continue
        for faq in snapshot.get_relevant_faqs(term):
            if faq not in found:
                found.append(faq)
    return found[:MAX_FAQ_ANSWERS]
