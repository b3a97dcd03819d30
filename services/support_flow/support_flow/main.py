from __future__ import annotations

import logging
import time
from uuid import uuid4

from fastapi import BackgroundTasks, Depends, FastAPI, Header, HTTPException, Request
from pydantic import BaseModel

from .catalog import CATEGORIES
from .classification import LLMClassifier
from .config import Settings, load_settings
from .engine import ConversationEngine
from .errors import ConversationClosed, SessionNotFound, UnknownCategory
from .helpdesk import HelpdeskClient
from .models import ConversationMode, ConversationSession, Progress, TurnResult
from .openai_client import OpenAIClient
from .questions import QuestionTreeRegistry
from .responses import ResponsePhraser
from .sessions import InMemorySessionStore, SessionSweeper

logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s %(message)s")
logger = logging.getLogger("support_flow")

app = FastAPI(title="Support Flow Service", version="0.1.0")


class StartRequest(BaseModel):
    mode: ConversationMode = ConversationMode.SYSTEM_INITIATED
    category: str | None = None
    initial_message: str | None = None


class MessageRequest(BaseModel):
    session_id: str
    message: str


class CategoryOut(BaseModel):
    category: str
    display_name: str
    description: str


def build_engine(settings: Settings) -> ConversationEngine:
    store = InMemorySessionStore(
        ttl_seconds=settings.session_ttl_seconds,
        max_sessions=settings.max_sessions,
        max_history=settings.max_history,
        history_window=settings.history_window,
    )
    client = OpenAIClient(
        api_key=settings.openai_api_key,
        chat_model=settings.openai_chat_model,
        timeout_seconds=settings.llm_timeout_seconds,
    )
    return ConversationEngine(
        store=store,
        registry=QuestionTreeRegistry(),
        classifier=LLMClassifier(client),
        phraser=ResponsePhraser(client, enabled=settings.use_llm_phrasing),
        helpdesk=HelpdeskClient(url=settings.helpdesk_url, api_key=settings.helpdesk_api_key),
        settings=settings,
    )


@app.on_event("startup")
def on_startup() -> None:
    settings = load_settings()
    engine = build_engine(settings)
    app.state.settings = settings
    app.state.engine = engine
    app.state.sweeper = SessionSweeper(engine.store, settings.sweep_interval_seconds)
    app.state.sweeper.start()
    logger.info("Support flow service started")


@app.on_event("shutdown")
def on_shutdown() -> None:
    sweeper = getattr(app.state, "sweeper", None)
    if sweeper is not None:
        sweeper.stop()


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_engine(request: Request) -> ConversationEngine:
    return request.app.state.engine


def require_api_key(
    settings: Settings = Depends(get_settings),
    x_api_key: str | None = Header(default=None, alias="x-api-key"),
) -> None:
    if not settings.flow_api_key:
        return
    if not x_api_key or x_api_key != settings.flow_api_key:
        raise HTTPException(status_code=401, detail="Unauthorized")


@app.middleware("http")
async def add_request_id(request: Request, call_next):
    request_id = request.headers.get("x-request-id", str(uuid4()))
    request.state.request_id = request_id
    start = time.perf_counter()
    response = await call_next(request)
    duration_ms = (time.perf_counter() - start) * 1000
    response.headers["x-request-id"] = request_id
    logger.info(
        "request_id=%s method=%s path=%s status=%s latency_ms=%.1f",
        request_id,
        request.method,
        request.url.path,
        response.status_code,
        duration_ms,
    )
    return response


@app.get("/health")
def health(engine: ConversationEngine = Depends(get_engine)):
    return {"status": "ok", "active_sessions": engine.store.count()}


@app.get("/categories", response_model=list[CategoryOut])
def categories():
    return [
        CategoryOut(category=info.category.value, display_name=info.display_name, description=info.description)
        for info in CATEGORIES.values()
    ]


@app.post("/chat/start", response_model=TurnResult, dependencies=[Depends(require_api_key)])
def start_chat(payload: StartRequest, engine: ConversationEngine = Depends(get_engine)):
    try:
        return engine.start(payload.mode, category=payload.category, initial_message=payload.initial_message)
    except UnknownCategory as exc:
        raise HTTPException(status_code=400, detail=str(exc))


@app.post("/chat/message", response_model=TurnResult, dependencies=[Depends(require_api_key)])
def send_message(
    payload: MessageRequest,
    background_tasks: BackgroundTasks,
    engine: ConversationEngine = Depends(get_engine),
):
    try:
        return engine.handle_message(payload.session_id, payload.message, defer=background_tasks.add_task)
    except SessionNotFound:
        raise HTTPException(status_code=404, detail="Session not found or expired")
    except ConversationClosed:
        raise HTTPException(status_code=409, detail="Conversation already resolved")


@app.get("/chat/session/{session_id}", response_model=ConversationSession, dependencies=[Depends(require_api_key)])
def get_session(session_id: str, engine: ConversationEngine = Depends(get_engine)):
    try:
        return engine.session(session_id)
    except SessionNotFound:
        raise HTTPException(status_code=404, detail="Session not found or expired")


@app.get("/chat/session/{session_id}/progress", response_model=Progress, dependencies=[Depends(require_api_key)])
def get_progress(session_id: str, engine: ConversationEngine = Depends(get_engine)):
    try:
        return engine.progress(session_id)
    except SessionNotFound:
        raise HTTPException(status_code=404, detail="Session not found or expired")


@app.delete("/chat/session/{session_id}", dependencies=[Depends(require_api_key)])
def delete_session(session_id: str, engine: ConversationEngine = Depends(get_engine)):
    return {"deleted": engine.end(session_id)}
