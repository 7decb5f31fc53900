from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from functools import partial
from pathlib import Path
from typing import AsyncIterator, Callable, List, Optional

import uvicorn
from dotenv import load_dotenv
from fastapi import Body, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse
from sqlalchemy.engine import Engine

from .catalog import FeedbackRepository, ProductCatalog, build_engine, create_schema
from .chat_pipeline import ChatPipeline, Completion
from .config import Settings, load_settings
from .errors import CatalogError
from .finalizer import ResponseFinalizer
from .gemini_client import GeminiClient
from .interaction_log import InteractionLog
from .knowledge.cache_refresher import CacheRefresher
from .knowledge.site_cache import SiteCache
from .knowledge.site_fetcher import fetch_text
from .models import ChatRequest, ChatResponse, ClearRequest, FeedbackRecord, FeedbackRequest
from .prompt_loader import build_seed_messages
from .session_store import SessionStore

BASE_DIR = Path(__file__).resolve().parent

ENV_PATH = BASE_DIR / ".env"
if ENV_PATH.exists():
    load_dotenv(ENV_PATH, override=True)

logger = logging.getLogger("support_chat")

GENERIC_ERROR_TEXT = "Something went wrong."
CLEARED_TEXT = "Conversation history cleared."


def configure_logging(level_name: str) -> None:
    """Purpose: Configure process logging once with the shared line format.
    Inputs/Outputs: Input is a level name; no return value.
    Side Effects / State: Installs a root handler if none exists; sets package level.
    Dependencies: logging.basicConfig.
    Failure Modes: Unknown level names fall back to INFO.
    If Removed: Route and cache logs are not emitted under uvicorn defaults.
    Testing Notes: Calling twice does not add a second handler.
    """
    # Keep an existing handler (pytest, uvicorn) and only set levels.
    level = getattr(logging, level_name.upper(), logging.INFO)
    if not logging.getLogger().handlers:
        logging.basicConfig(
            level=level,
            format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        )
    logging.getLogger("support_chat").setLevel(level)


def create_app(
    settings: Optional[Settings] = None,
    completion: Optional[Completion] = None,
    fetcher: Optional[Callable[[str], str]] = None,
    engine: Optional[Engine] = None,
    start_refresher: bool = True,
) -> FastAPI:
    """Purpose: Build the FastAPI app with all collaborators wired.
    Inputs/Outputs: Optional settings, completion callable, page fetcher, DB engine,
        and refresher switch; returns the FastAPI instance.
    Side Effects / State: Creates data files/tables; the lifespan starts the refresher.
    Dependencies: Every module of the package.
    Failure Modes: Missing GEMINI_API_KEY raises ValueError when no completion is given.
    If Removed: The service cannot be served or tested end to end.
    Testing Notes: Pass fakes for completion/fetcher and engine=build_engine("sqlite://").
    """
    # Resolve configuration and collaborators, defaulting to the real ones.
    settings = settings or load_settings()
    configure_logging(settings.log_level)
    settings.data_dir.mkdir(parents=True, exist_ok=True)

    if completion is None:
        completion = GeminiClient(settings).complete
    if fetcher is None:
        fetcher = partial(fetch_text, timeout=settings.fetch_timeout)
    if engine is None:
        engine = build_engine(settings.database_url)
    create_schema(engine)

    site_cache = SiteCache(settings.content_urls, fetcher, snippet_chars=settings.snippet_chars)
    refresher = CacheRefresher(site_cache, interval_hours=settings.cache_refresh_hours)
    sessions = SessionStore(
        build_seed_messages(settings),
        path=settings.sessions_path,
        max_sessions=settings.max_sessions,
        max_messages=settings.max_history_messages,
    )
    feedback = FeedbackRepository(engine)
    pipeline = ChatPipeline(
        sessions=sessions,
        site_cache=site_cache,
        catalog=ProductCatalog(engine),
        finalizer=ResponseFinalizer(settings.brand_names),
        completion=completion,
        interaction_log=InteractionLog(
            settings.data_dir / "interactions.jsonl",
            settings.data_dir / "errors.log",
        ),
        rollback_failed_turns=settings.rollback_failed_turns,
    )

    @asynccontextmanager
    async def lifespan(_: FastAPI) -> AsyncIterator[None]:
        if start_refresher:
            refresher.start()
        try:
            yield
        finally:
            refresher.shutdown()

    app = FastAPI(title="Support Chat Backend", lifespan=lifespan)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(settings.cors_origins),
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.state.settings = settings
    app.state.site_cache = site_cache
    app.state.refresher = refresher
    app.state.sessions = sessions
    app.state.pipeline = pipeline

    @app.exception_handler(RequestValidationError)
    async def invalid_request(_: Request, exc: RequestValidationError) -> PlainTextResponse:
        fields = sorted({".".join(str(part) for part in err.get("loc", ())[1:]) or "body" for err in exc.errors()})
        return PlainTextResponse(f"Invalid request: check {', '.join(fields)}", status_code=400)

    @app.post("/chat", response_model=ChatResponse)
    def chat(request: ChatRequest):
        """Purpose: Handle chat requests and run the chat pipeline.
        Inputs/Outputs: Input is ChatRequest; output is ChatResponse or an error body.
        Side Effects / State: Updates session history and the interaction log.
        Dependencies: ChatPipeline.handle_message.
        Failure Modes: Blank message -> 400 text; any pipeline failure -> 500 text.
        If Removed: Core chat functionality is unavailable.
        Testing Notes: Post a recommendation message and check the questions.
        """
        # Reject blank input, then run the pipeline and map failures to 500.
        if not request.message.strip():
            return PlainTextResponse("Invalid request: message is required", status_code=400)
        try:
            turn = pipeline.handle_message(request.user_id, request.message, request.attributes)
        except Exception:
            logger.exception("chat failed session=%s", request.user_id)
            return PlainTextResponse(GENERIC_ERROR_TEXT, status_code=500)
        return ChatResponse(response=turn.answer_text, session_id=turn.session_id)

    @app.post("/feedback", response_model=FeedbackRecord, response_model_by_alias=True)
    def submit_feedback(request: FeedbackRequest):
        """Purpose: Persist a corrected reply submitted by staff or users.
        Inputs/Outputs: Input is FeedbackRequest; output is the stored FeedbackRecord.
        Side Effects / State: Inserts one feedback row.
        Dependencies: FeedbackRepository.save.
        Failure Modes: Storage failures return 500 with a JSON error body.
        If Removed: Corrections cannot be collected.
        Testing Notes: Response echoes the camelCase fields plus id and createdAt.
        """
        # Store and echo the record; DB errors become a JSON 500.
        try:
            return feedback.save(request)
        except CatalogError:
            return JSONResponse({"error": "Failed to save feedback."}, status_code=500)

    @app.post("/clear", response_class=PlainTextResponse)
    def clear(request: Optional[ClearRequest] = Body(default=None)) -> str:
        """Reset the caller's conversation (or the default one) to the seed messages."""
        pipeline.reset(request.user_id if request else None)
        return CLEARED_TEXT

    @app.get("/sessions")
    def list_sessions() -> List[dict]:
        return [summary.model_dump() for summary in sessions.list_sessions()]

    @app.get("/sessions/{session_id}")
    def get_session(session_id: str) -> dict:
        """Return the stored messages of one session, oldest first."""
        return {
            "session_id": session_id,
            "messages": [message.model_dump() for message in sessions.get_messages(session_id)],
        }

    return app


def main() -> None:
    settings = load_settings()
    uvicorn.run(create_app(settings), host="0.0.0.0", port=settings.port)


if __name__ == "__main__":
    main()
