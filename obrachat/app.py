from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv
from fastapi import Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from .config import Settings, load_settings
from .conversation import ConversationHandler
from .errors import ChatbotError, InvalidInput
from .intent_classifier import IntentClassifier
from .knowledge.knowledge_store import KnowledgeStore
from .models import ChatRequest
from .records.json_store import JsonFileRecordStore
from .records.record_store import RecordStore
from .response_generator import ContactInfo, ResponseGenerator
from .session_store import SessionStore

BASE_DIR = Path(__file__).resolve().parent

ENV_PATH = BASE_DIR / ".env"
if ENV_PATH.exists():
    load_dotenv(ENV_PATH, override=True)

log_level_name = os.getenv("LOG_LEVEL", "INFO").upper()
log_level = getattr(logging, log_level_name, logging.INFO)
if not logging.getLogger().handlers:
    logging.basicConfig(
        level=log_level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

logging.getLogger("obrachat").setLevel(log_level)
logger = logging.getLogger("obrachat.app")


def build_record_store(settings: Settings) -> RecordStore:
    """Purpose: Select the record store backend named by RECORD_BACKEND.
    Inputs/Outputs: Input is Settings; returns a RecordStore.
    Side Effects / State: The JSON backend hydrates sessions from disk.
    Dependencies: JsonFileRecordStore, or SupabaseRecordStore imported on demand.
    Failure Modes: Missing Supabase credentials raise ValueError at startup.
    If Removed: The app cannot choose where catalog and sessions live.
    Testing Notes: Default settings yield a JsonFileRecordStore.
    """
    if settings.record_backend == "supabase":
        from .records.supabase_store import SupabaseRecordStore

        return SupabaseRecordStore.from_settings(settings)
    return JsonFileRecordStore(catalog_path=settings.catalog_path, sessions_path=settings.sessions_path)


def get_handler(request: Request) -> ConversationHandler:
    return request.app.state.handler


def get_knowledge(request: Request) -> KnowledgeStore:
    return request.app.state.knowledge


def create_app(settings: Optional[Settings] = None, records: Optional[RecordStore] = None) -> FastAPI:
    """Purpose: Build the FastAPI application with its chatbot components.
    Inputs/Outputs: Optional Settings and RecordStore overrides; returns the FastAPI app.
    Side Effects / State: The lifespan warms the knowledge cache and stores the
        components on app.state.
    Dependencies: KnowledgeStore, SessionStore, ConversationHandler.
    Failure Modes: Configuration errors surface when the lifespan starts.
    If Removed: There is no HTTP surface for the chatbot.
    Testing Notes: Pass a RecordStore fake and use TestClient as a context manager.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        app_settings = settings or load_settings()
        record_store = records or build_record_store(app_settings)
        knowledge = KnowledgeStore(record_store, ttl_seconds=app_settings.knowledge_ttl_seconds)
        sessions = SessionStore(record_store)
        generator = ResponseGenerator(
            max_listed_products=app_settings.max_listed_products,
            related_limit=app_settings.related_products_limit,
            contact=ContactInfo(whatsapp=app_settings.contact_whatsapp, email=app_settings.contact_email),
        )
        app.state.settings = app_settings
        app.state.knowledge = knowledge
        app.state.sessions = sessions
        app.state.handler = ConversationHandler(knowledge, sessions, IntentClassifier(), generator)

        # Warm the cache so the first customer does not pay for the catalog read.
        await knowledge.get_knowledge()
        logger.info("chatbot ready backend=%s stats=%s", app_settings.record_backend, knowledge.get_stats())
        yield

    app = FastAPI(title="ObraExpress Chatbot", lifespan=lifespan)

    @app.exception_handler(ChatbotError)
    async def chatbot_error_handler(request: Request, exc: ChatbotError) -> JSONResponse:
        return JSONResponse({"error": exc.message}, status_code=exc.status_code)

    # Wrongly typed fields get the same 400 body as missing ones.
    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        logger.info("rejected request path=%s errors=%d", request.url.path, len(exc.errors()))
        return JSONResponse({"error": InvalidInput.default_message}, status_code=InvalidInput.status_code)

    @app.exception_handler(Exception)
    async def unexpected_error_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("unhandled error path=%s", request.url.path)
        return JSONResponse({"error": ChatbotError.default_message}, status_code=500)

    @app.post("/api/chatbot")
    async def chat(payload: ChatRequest, handler: ConversationHandler = Depends(get_handler)) -> JSONResponse:
        """Purpose: Answer one chat message.
        Inputs/Outputs: Input is a ChatRequest body; output is the ChatResponse JSON.
        Side Effects / State: Creates or extends the session transcript.
        Dependencies: ConversationHandler.handle_message.
        Failure Modes: 400 for a missing sessionId or message; 500 when the session
            store is unreachable.
        If Removed: The storefront widget has nothing to talk to.
        Testing Notes: Post {"sessionId": "s1", "message": "Hola"} and expect a greeting.
        """
        response = await handler.handle_message(payload)
        return JSONResponse(response.model_dump(by_alias=True, mode="json"))

    @app.get("/api/chatbot")
    async def history(
        sessionId: Optional[str] = None, handler: ConversationHandler = Depends(get_handler)
    ) -> JSONResponse:
        response = await handler.get_history(sessionId)
        return JSONResponse(response.model_dump(by_alias=True, mode="json"))

    @app.get("/api/chatbot/stats")
    async def stats(knowledge: KnowledgeStore = Depends(get_knowledge)) -> JSONResponse:
        return JSONResponse({"success": True, "stats": knowledge.get_stats()})

    @app.post("/api/chatbot/cache/clear")
    async def clear_cache(knowledge: KnowledgeStore = Depends(get_knowledge)) -> JSONResponse:
        knowledge.clear_cache()
        return JSONResponse({"success": True})

    @app.get("/api/health")
    async def health() -> dict:
        return {"status": "ok"}

    return app


app = create_app()


def main() -> None:
    """Run the API with uvicorn; HOST and PORT come from the environment."""
    import uvicorn

    host = os.getenv("HOST", "0.0.0.0")
    port = int(os.getenv("PORT", "8000"))
    uvicorn.run("obrachat.app:app", host=host, port=port)


if __name__ == "__main__":
    main()
