import pytest

from obrachat.intent_classifier import Intent, IntentClassifier, ordered_intents


@pytest.fixture
def classifier():
    return IntentClassifier()


@pytest.mark.parametrize(
    "utterance, expected",
    [
        ("Hola", {Intent.GREETING}),
        ("Buenas tardes", {Intent.GREETING}),
        ("Quiero ver productos", {Intent.BROWSE_PRODUCTS}),
        ("¿Cuánto cuesta?", {Intent.ASK_PRICE}),
        ("Necesito hablar con alguien por WhatsApp", {Intent.REQUEST_CONTACT}),
        ("¿Hacen despacho a regiones?", {Intent.ASK_SHIPPING}),
        ("¿Cuál es el horario de atención?", {Intent.ASK_FAQ}),
    ],
)
def test_single_intents(classifier, utterance, expected):
    assert classifier.classify(utterance) == expected


def test_multiple_intents_in_one_message(classifier):
    intents = classifier.classify("Hola, ¿cuánto cuesta el policarbonato alveolar?")

    assert intents == {Intent.GREETING, Intent.ASK_PRICE, Intent.BROWSE_PRODUCTS}
    assert ordered_intents(intents) == ["greeting", "browse-products", "ask-price"]


def test_greeting_must_open_the_message(classifier):
    assert Intent.GREETING not in classifier.classify("Solo quería decir hola")


def test_phrases_match_at_word_start_only(classifier):
    # "aprecio" contains "precio" but is not a price question.
    assert Intent.ASK_PRICE not in classifier.classify("aprecio la ayuda")


def test_empty_and_unmatched_messages(classifier):
    assert classifier.classify("") == frozenset()
    assert classifier.classify("   ") == frozenset()
    assert classifier.classify("gracias") == frozenset()
