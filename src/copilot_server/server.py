"""FastAPI application exposing the grounded chat copilot."""
from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Any, Dict, List, Optional

from fastapi import FastAPI, File, HTTPException, Request, Response, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from . import __version__
from .acquisition import UrlFetcher, fetch_failure_message
from .config import configure_logging, load_config
from .constants import INITIAL_SYSTEM_PROMPT
from .errors import AcquisitionError, StorageUnavailableError
from .ingest import DEFAULT_MAX_FILE_MB, KnowledgeIngestor
from .llm import ChatModel, create_from_config, model_settings
from .orchestrator import DEFAULT_CONVERSATION, ChatOrchestrator, SystemPolicy
from .store import KnowledgeStore

logger = logging.getLogger(__name__)


# -----------------------------
# Pydantic request/response
# -----------------------------
class ChatRequestBody(BaseModel):
    conversation: str = Field(default=DEFAULT_CONVERSATION, description="Conversation key.")
    message: str = Field(..., description="User message text.")


class MessageOut(BaseModel):
    id: str
    role: str
    text: str
    timestamp: int


class ChatResponse(BaseModel):
    response: str
    message: MessageOut


class NoteRequest(BaseModel):
    text: str


class UrlRequest(BaseModel):
    url: str = Field(..., min_length=1)


class PolicyBody(BaseModel):
    system_prompt: str


class DocumentOut(BaseModel):
    id: str
    title: str
    content: str
    kind: str


class UploadResponse(BaseModel):
    added: List[DocumentOut]
    failed: List[Dict[str, str]]


# -----------------------------
# Utilities
# -----------------------------
def _initial_policy(cfg: Dict[str, Any]) -> str:
    prompt = (cfg.get("policy", {}) or {}).get("system_prompt") or INITIAL_SYSTEM_PROMPT
    return str(prompt)


def _make_store(cfg: Dict[str, Any]) -> KnowledgeStore:
    k_cfg = cfg.get("knowledge", {}) or {}
    return KnowledgeStore(str(k_cfg.get("data_dir") or "data"))


# -----------------------------
# App factory
# -----------------------------
def create_app(
    config_path: Optional[str] = None,
    model: Optional[ChatModel] = None,
    store: Optional[KnowledgeStore] = None,
    fetcher: Optional[UrlFetcher] = None,
) -> FastAPI:
    cfg = load_config(config_path)
    configure_logging(cfg)

    # Services
    model = model or create_from_config(cfg)
    store = store or _make_store(cfg)
    fetcher = fetcher or UrlFetcher.from_config(cfg)
    settings = model_settings(cfg)
    seed = bool((cfg.get("knowledge", {}) or {}).get("seed_sample", True))
    max_file_mb = float((cfg.get("acquisition", {}) or {}).get("max_file_mb", DEFAULT_MAX_FILE_MB))

    policy = SystemPolicy(_initial_policy(cfg))
    orchestrator = ChatOrchestrator(
        model,
        store,
        policy,
        model_name=settings["name"],
        temperature=settings["temperature"],
    )
    ingestor = KnowledgeIngestor(store, fetcher, max_file_mb=max_file_mb)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        await store.bootstrap(seed=seed)
        yield

    app = FastAPI(title="Knowledge Copilot", version=__version__, lifespan=lifespan)
    app.state.orchestrator = orchestrator
    app.state.ingestor = ingestor
    app.state.store = store

    cors_origins = (cfg.get("server", {}) or {}).get("cors_origins", ["*"])
    app.add_middleware(
        CORSMiddleware,
        allow_origins=cors_origins or ["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(StorageUnavailableError)
    async def storage_unavailable(request: Request, exc: StorageUnavailableError) -> JSONResponse:
        logger.error("Storage unavailable: %s", exc)
        return JSONResponse(status_code=503, content={"detail": str(exc)})

    @app.get("/health")
    async def health() -> Dict[str, Any]:
        items = await store.list_all()
        return {
            "ok": True,
            "model": settings["name"],
            "knowledge_items": len(items),
            "store_path": str(store.path),
        }

    # --------- knowledge ----------
    @app.get("/documents", response_model=List[DocumentOut])
    async def list_documents():
        return [it.to_dict() for it in await store.list_all()]

    @app.post("/documents/notes", response_model=DocumentOut, status_code=201)
    async def add_note(req: NoteRequest):
        item = await ingestor.add_note(req.text)
        if item is None:
            raise HTTPException(status_code=400, detail="Note cannot be empty.")
        return item.to_dict()

    @app.post("/documents/files", response_model=UploadResponse)
    async def add_files(files: List[UploadFile] = File(...)):
        report = await ingestor.add_files(files)
        return {
            "added": [it.to_dict() for it in report.added],
            "failed": [f.to_dict() for f in report.failed],
        }

    @app.post("/documents/url", response_model=DocumentOut, status_code=201)
    async def add_url(req: UrlRequest):
        if not req.url.strip():
            raise HTTPException(status_code=400, detail="URL cannot be empty.")
        try:
            item = await ingestor.add_url(req.url)
        except AcquisitionError as e:
            logger.warning("URL fetch failed for %s: %s", req.url, e)
            raise HTTPException(status_code=422, detail=fetch_failure_message(e)) from e
        return item.to_dict()

    @app.delete("/documents/{item_id}", status_code=204)
    async def remove_document(item_id: str) -> Response:
        await store.remove(item_id)
        return Response(status_code=204)

    # --------- policy ----------
    @app.get("/policy", response_model=PolicyBody)
    async def get_policy():
        return {"system_prompt": policy.text}

    @app.put("/policy", response_model=PolicyBody)
    async def set_policy(body: PolicyBody):
        policy.text = body.system_prompt
        return {"system_prompt": policy.text}

    # --------- chat ----------
    @app.post("/chat", response_model=ChatResponse)
    async def chat(req: ChatRequestBody):
        if not req.message.strip():
            raise HTTPException(status_code=400, detail="Message cannot be empty.")
        if orchestrator.conversation(req.conversation).busy:
            raise HTTPException(status_code=409, detail="A reply is already in progress.")

        reply = await orchestrator.submit(req.message, req.conversation)
        if reply is None:
            raise HTTPException(status_code=409, detail="A reply is already in progress.")
        return {"response": reply.text, "message": reply.to_dict()}

    @app.get("/conversations/{conversation_id}/messages", response_model=List[MessageOut])
    async def get_messages(conversation_id: str):
        conv = orchestrator.get_conversation(conversation_id)
        if conv is None:
            return []
        return [m.to_dict() for m in conv.messages]

    return app
