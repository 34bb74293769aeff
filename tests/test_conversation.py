import pytest

from obrachat.conversation import ConversationHandler, decode_actions, extract_name
from obrachat.errors import InvalidInput, NotFound, ServiceUnavailable
from obrachat.knowledge.knowledge_store import KnowledgeStore
from obrachat.models import ChatRequest
from obrachat.session_store import SessionStore


@pytest.fixture
def handler(records, clock):
    return ConversationHandler(KnowledgeStore(records, clock=clock), SessionStore(records, clock=clock))


@pytest.mark.asyncio
async def test_first_greeting_uses_the_customer_name(handler):
    response = await handler.handle_message(
        ChatRequest(sessionId="s1", message="Hola", userName="Ana", isFirstMessage=True)
    )

    assert response.success is True
    assert response.session_id == "s1"
    assert "Ana" in response.response
    assert response.intentions == ["greeting"]


@pytest.mark.asyncio
async def test_blank_message_is_rejected_before_any_io(records, clock):
    handler = ConversationHandler(KnowledgeStore(records, clock=clock), SessionStore(records, clock=clock))

    with pytest.raises(InvalidInput):
        await handler.handle_message(ChatRequest(sessionId="s1", message="  "))
    with pytest.raises(InvalidInput):
        await handler.handle_message(ChatRequest(message="Hola"))

    assert records.catalog_reads == 0
    assert await SessionStore(records).get_history("s1") is None


@pytest.mark.asyncio
async def test_product_question_is_classified_and_answered(handler):
    response = await handler.handle_message(ChatRequest(sessionId="s2", message="Necesito policarbonato 6mm"))

    assert "browse-products" in response.intentions
    assert "policarbonato" in response.response.lower()
    assert response.actions.show_product == "PAL-6MM-CR"


@pytest.mark.asyncio
async def test_unknown_session_history_is_not_found(handler):
    with pytest.raises(NotFound):
        await handler.get_history("nope")


@pytest.mark.asyncio
async def test_missing_history_id_is_invalid(handler):
    with pytest.raises(InvalidInput) as excinfo:
        await handler.get_history("")

    assert excinfo.value.message == "SessionId es requerido"


@pytest.mark.asyncio
async def test_exchange_is_recorded_with_context(handler):
    await handler.handle_message(
        ChatRequest(sessionId="s3", message="Hola", userName="Ana", userEmail="ana@example.cl", isFirstMessage=True)
    )
    await handler.handle_message(ChatRequest(sessionId="s3", message="¿Hacen despacho a regiones?"))

    history = await handler.get_history("s3")

    assert history.messages_count == 4
    assert [m.sender.value for m in history.session.messages] == ["user", "assistant", "user", "assistant"]
    assert history.session.collected_context == {"name": "Ana", "email": "ana@example.cl"}
    assert history.session.messages[2].text == "¿Hacen despacho a regiones?"


@pytest.mark.asyncio
async def test_name_from_a_self_introduction_is_remembered(handler):
    await handler.handle_message(ChatRequest(sessionId="s4", message="Hola, me llamo pedro"))
    response = await handler.handle_message(ChatRequest(sessionId="s4", message="Hola"))

    assert response.response.startswith("¡Hola de nuevo, Pedro!")


@pytest.mark.asyncio
async def test_unreachable_session_store_surfaces_as_service_unavailable(unreachable, clock):
    handler = ConversationHandler(KnowledgeStore(unreachable, clock=clock), SessionStore(unreachable, clock=clock))

    with pytest.raises(ServiceUnavailable):
        await handler.handle_message(ChatRequest(sessionId="s1", message="Hola"))


def test_extract_name_ignores_non_names():
    assert extract_name("Mi nombre es Ana María") == "Ana María"
    assert extract_name("me llamo pedro y quiero precios") == "Pedro"
    assert extract_name("soy de Santiago") is None
    assert extract_name("quiero precios") is None


def test_decode_actions_reads_every_marker():
    actions = decode_actions(
        "Mira esto [ACTION:SHOW_PRODUCT:PAL-6MM-CR] o escríbenos [ACTION:OPEN_WHATSAPP] [ACTION:REDIRECT_PRODUCTS]"
    )

    assert actions.show_product == "PAL-6MM-CR"
    assert actions.open_whatsapp is True
    assert actions.redirect_to_products is True
    assert actions.open_cart is False
