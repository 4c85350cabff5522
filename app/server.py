"""
CRM Context RAG - Web API Server
---------------------------------
FastAPI server exposing document context retrieval and structured CRM
queries for the chat layer.

Endpoints:
  GET  /api/health       -> service status and active configuration
  POST /api/ai/context   -> build a document context block for a query
  GET  /api/ai/context   -> document / chunk / embedding counts for a team
  POST /api/crm/query    -> structured CRM record query
  POST /api/ai/ask       -> grounded answer (context + generation)

Run from the project root:
    uvicorn app.server:app --reload --port 8000
"""
from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from functools import partial
from typing import Optional

from dotenv import load_dotenv
from fastapi import APIRouter, Depends, FastAPI, HTTPException, Query, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from loguru import logger
from pydantic import BaseModel, Field, field_validator

from crm_rag.errors import CRMRagError
from crm_rag.utils.helpers import truncate_text

load_dotenv()


# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Build the assistant once at startup unless one was injected."""
    if getattr(app.state, "assistant", None) is None:
        from crm_rag.config import load_config
        from crm_rag.serving.pipeline import CRMAssistant
        from crm_rag.utils.logger import setup_logger

        cfg = load_config()
        setup_logger(log_level=cfg.logging.level, log_file=cfg.logging.file, json_file=cfg.logging.json_file)
        logger.info("[Server] Building CRM assistant...")
        app.state.assistant = CRMAssistant(cfg)
    yield
    logger.info("[Server] Shutting down.")


def create_app(assistant=None) -> FastAPI:
    """Application factory; tests pass a pre-built CRMAssistant."""
    api = FastAPI(
        title="CRM Context RAG API",
        description="Document-context retrieval and structured CRM queries",
        version="1.0.0",
        lifespan=lifespan,
    )
    api.state.assistant = assistant
    api.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    api.add_exception_handler(RequestValidationError, _validation_error)
    api.include_router(_router)
    return api


async def _validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
    logger.warning(f"[API] Invalid request to {request.url.path}: {exc.errors()}")
    return JSONResponse(status_code=400, content={"detail": jsonable_encoder(exc.errors())})


def get_assistant(request: Request):
    assistant = getattr(request.app.state, "assistant", None)
    if assistant is None:
        raise HTTPException(status_code=503, detail="Assistant not ready")
    return assistant


# ---------------------------------------------------------------------------
# Request / Response models
# ---------------------------------------------------------------------------

class ContextRequest(BaseModel):
    query: str
    team_id: str
    max_results: int = Field(default=3, ge=1, le=20)

    @field_validator("query", "team_id")
    @classmethod
    def not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("must not be empty")
        return v.strip()


class CRMQueryRequest(BaseModel):
    message: str
    team_id: str

    @field_validator("message", "team_id")
    @classmethod
    def not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("must not be empty")
        return v.strip()


class AskRequest(BaseModel):
    query: str
    team_id: str
    session_id: Optional[str] = None

    @field_validator("query", "team_id")
    @classmethod
    def not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("must not be empty")
        return v.strip()


# ---------------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------------

_router = APIRouter()


async def _run_blocking(func, *args, **kwargs):
    loop = asyncio.get_running_loop()
    return await loop.run_in_executor(None, partial(func, *args, **kwargs))


@_router.get("/api/health")
async def health(assistant=Depends(get_assistant)):
    cfg = assistant.config
    return {
        "status": "ok",
        "embedding_model": cfg.embedding.model,
        "generation_model": cfg.generation.model,
        "max_context_tokens": cfg.context.max_tokens,
        "max_results": cfg.retrieval.max_results,
    }


@_router.post("/api/ai/context")
async def create_context(request: ContextRequest, assistant=Depends(get_assistant)):
    """
    Build the document context for a query.

    Embedding or store failures degrade to an empty context (has_relevant_documents
    false) rather than an error, so the chat can continue.
    """
    logger.info(f"[API] Context | team={request.team_id} | query={truncate_text(request.query)!r}")
    try:
        result = await _run_blocking(
            assistant.create_context, request.query, request.team_id, request.max_results
        )
    except CRMRagError as exc:
        logger.error(f"[API] Context failed: {exc}")
        raise HTTPException(status_code=500, detail="Failed to create document context")
    return result.to_dict()


@_router.get("/api/ai/context")
async def document_stats(
    team_id: str = Query(..., min_length=1),
    assistant=Depends(get_assistant),
):
    stats = assistant.context_service.get_team_document_stats(team_id)
    return {"team_id": team_id, **stats.to_dict()}


@_router.post("/api/crm/query")
async def crm_query(request: CRMQueryRequest, assistant=Depends(get_assistant)):
    logger.info(f"[API] CRM query | team={request.team_id} | message={truncate_text(request.message)!r}")
    response = await _run_blocking(assistant.crm_query, request.message, request.team_id)
    return response.to_dict()


@_router.post("/api/ai/ask")
async def ask(request: AskRequest, assistant=Depends(get_assistant)):
    logger.info(f"[API] Ask | team={request.team_id} | query={truncate_text(request.query)!r}")
    try:
        result = await _run_blocking(
            assistant.ask, request.query, request.team_id, session_id=request.session_id
        )
    except Exception as exc:
        logger.exception(f"[API] Generation failed: {exc}")
        raise HTTPException(status_code=500, detail="Failed to generate an answer")
    return result.to_dict()


app = create_app()
