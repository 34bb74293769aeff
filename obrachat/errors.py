from __future__ import annotations


class ChatbotError(Exception):
    """Base error for failures surfaced to chatbot callers."""

    status_code = 500
    default_message = "Error procesando mensaje"

    def __init__(self, message: str = "") -> None:
        super().__init__(message or self.default_message)
        self.message = message or self.default_message


class InvalidInput(ChatbotError):
    """The caller sent an incomplete request."""

    status_code = 400
    default_message = "SessionId y mensaje son requeridos"


class NotFound(ChatbotError):
    status_code = 404
    default_message = "Sesión no encontrada"


class ServiceUnavailable(ChatbotError):
    """The session store could not be reached."""

    status_code = 500
    default_message = "Error procesando mensaje"


class RecordStoreError(Exception):
    """The backing record store failed to answer (connectivity or API error)."""


class RecordNotFoundError(RecordStoreError):
    """The requested row does not exist."""


class RecordExistsError(RecordStoreError):
    """A row with the same key already exists."""
