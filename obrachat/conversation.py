"""Conversation handling: the composition root of the chatbot core.

Flow per message:
    validate -> resume or create session -> classify intents -> knowledge snapshot
    -> compose reply -> append the user/assistant exchange -> reply payload.

Validation happens before any I/O. Record-store failures during resume or append
surface as ServiceUnavailable; knowledge failures never surface because the
knowledge store degrades to its fallback dataset.
"""

from __future__ import annotations

import logging
import re
import time
import uuid
from datetime import datetime, timezone
from typing import Callable, Dict, Optional

from .errors import InvalidInput, NotFound, RecordStoreError, ServiceUnavailable
from .intent_classifier import IntentClassifier, ordered_intents
from .knowledge.knowledge_store import KnowledgeStore
from .models import ChatActions, ChatMessage, ChatRequest, ChatResponse, HistoryResponse, Sender
from .response_generator import ResponseGenerator
from .session_store import SessionStore

logger = logging.getLogger("obrachat.conversation")

ACTION_RE = re.compile(r"\[ACTION:([A-Z_]+)(?::([^\]]+))?\]")
NAME_RE = re.compile(
    r"\b(?i:me llamo|mi nombre es|soy)\s+([A-Za-zÁÉÍÓÚÑáéíóúñ]+(?:\s+[A-ZÁÉÍÓÚÑ][a-záéíóúñ]+)?)"
)
# Words that follow "soy" without being a name ("soy de Santiago", "soy nuevo").
NOT_A_NAME = {"de", "del", "el", "la", "un", "una", "nuevo", "nueva", "cliente", "maestro", "arquitecto"}

HISTORY_REQUIRED_MESSAGE = "SessionId es requerido"


def new_message_id() -> str:
    return f"msg_{int(time.time() * 1000)}_{uuid.uuid4().hex[:9]}"


def extract_name(message: str) -> Optional[str]:
    """Pick up a self-introduction such as "Hola, mi nombre es Ana"."""
    match = NAME_RE.search(message or "")
    if not match:
        return None
    candidate = match.group(1).strip()
    if candidate.split()[0].lower() in NOT_A_NAME:
        return None
    return candidate.title()


def decode_actions(reply: str) -> ChatActions:
    """Turn the [ACTION:...] markers of a reply into the UI action flags."""
    actions = ChatActions()
    for name, argument in ACTION_RE.findall(reply or ""):
        if name == "REDIRECT_PRODUCTS":
            actions.redirect_to_products = True
        elif name == "OPEN_WHATSAPP":
            actions.open_whatsapp = True
        elif name == "OPEN_CART":
            actions.open_cart = True
        elif name == "OPEN_SHIPPING_CALCULATOR":
            actions.open_shipping_calculator = True
        elif name == "SHOW_PRODUCT" and argument and actions.show_product is None:
            actions.show_product = argument
    return actions


class ConversationHandler:
    """Orchestrate one chatbot exchange over the knowledge and session stores."""

    def __init__(
        self,
        knowledge: KnowledgeStore,
        sessions: SessionStore,
        classifier: Optional[IntentClassifier] = None,
        generator: Optional[ResponseGenerator] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._knowledge = knowledge
        self._sessions = sessions
        self._classifier = classifier or IntentClassifier()
        self._generator = generator or ResponseGenerator()
        self._clock = clock

    async def handle_message(self, request: ChatRequest) -> ChatResponse:
        """Purpose: Answer one inbound chat message and record the exchange.
        Inputs/Outputs: Input is a ChatRequest; output is a ChatResponse with the reply,
            detected intentions, and decoded UI actions.
        Side Effects / State: May create the session; appends two messages to it.
        Dependencies: SessionStore, IntentClassifier, KnowledgeStore, ResponseGenerator.
        Failure Modes: InvalidInput for a missing session id or blank message (before
            any I/O); ServiceUnavailable when the session store cannot be reached.
        If Removed: The message endpoint has nothing to call.
        Testing Notes: A first "Hola" with userName greets the user by name.
        """
        session_id = (request.session_id or "").strip()
        message = (request.message or "").strip()
        if not session_id or not message:
            raise InvalidInput()

        try:
            session = await self._sessions.resume_or_create(session_id)
        except RecordStoreError as exc:
            logger.error("session=%s resume failed: %s", session_id, exc)
            raise ServiceUnavailable() from exc

        intents = self._classifier.classify(message)
        logger.info("session=%s intents=%s", session_id, ",".join(ordered_intents(intents)) or "-")

        context_updates = self._context_updates(request, message, session.collected_context)
        known_context = dict(session.collected_context)
        known_context.update(context_updates)
        view = session.model_copy(update={"collected_context": known_context})

        snapshot = await self._knowledge.get_knowledge()
        reply = self._generator.compose(
            snapshot,
            intents,
            view,
            message,
            is_first_message=bool(request.is_first_message),
        )

        user_message = ChatMessage(id=new_message_id(), text=message, sender=Sender.USER, timestamp=self._clock())
        assistant_message = ChatMessage(
            id=new_message_id(), text=reply, sender=Sender.ASSISTANT, timestamp=self._clock()
        )
        try:
            await self._sessions.append_exchange(session_id, user_message, assistant_message, context_updates)
        except RecordStoreError as exc:
            logger.error("session=%s append failed: %s", session_id, exc)
            raise ServiceUnavailable() from exc

        return ChatResponse(
            session_id=session_id,
            response=reply,
            intentions=ordered_intents(intents),
            actions=decode_actions(reply),
            timestamp=datetime.now(timezone.utc).isoformat(),
        )

    async def get_history(self, session_id: Optional[str]) -> HistoryResponse:
        """Return the stored session or raise NotFound / InvalidInput."""
        session_id = (session_id or "").strip()
        if not session_id:
            raise InvalidInput(HISTORY_REQUIRED_MESSAGE)
        try:
            session = await self._sessions.get_history(session_id)
        except RecordStoreError as exc:
            logger.error("session=%s history lookup failed: %s", session_id, exc)
            raise ServiceUnavailable("Error obteniendo sesión") from exc
        if session is None:
            raise NotFound()
        return HistoryResponse(session=session, messages_count=len(session.messages))

    def _context_updates(self, request: ChatRequest, message: str, known: Dict[str, str]) -> Dict[str, str]:
        """Collect the customer facts this message adds; an explicit userName wins over extraction."""
        updates: Dict[str, str] = {}
        if request.user_name and request.user_name.strip():
            updates["name"] = request.user_name.strip()
        elif "name" not in known:
            name = extract_name(message)
            if name:
                updates["name"] = name
        if request.user_email and request.user_email.strip():
            updates["email"] = request.user_email.strip()
        if request.user_phone and request.user_phone.strip():
            updates["phone"] = request.user_phone.strip()
        return updates
