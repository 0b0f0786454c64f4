"""FastAPI application main entry point and composition root."""

from __future__ import annotations

import atexit
import logging
from contextlib import asynccontextmanager
from typing import Optional

from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

load_dotenv()

from .middleware import register_error_handlers
from .routes import chat
from ..services.chat_orchestrator import ChatOrchestrator
from ..services.config import AppConfig, get_config
from ..services.database import DatabaseService
from ..services.history_persistence import SqliteHistoryPersistence
from ..services.history_store import ModeHistoryStore
from ..services.llm_transport import OpenRouterTransport
from ..services.prompt_loader import PromptLoader
from ..services.retrieval_preamble import RetrievalPreambleBuilder
from ..services.semantic_search import LLMSemanticSearch
from ..services.tool_registry import ToolRegistry
from ..services.vault import VaultNoteStore

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


def build_orchestrator(config: Optional[AppConfig] = None) -> ChatOrchestrator:
    """Wire every chat collaborator from configuration."""
    config = config or get_config()

    store = VaultNoteStore(config)
    seeded = store.seed_default_templates()
    if seeded:
        logger.info(f"Seeded {len(seeded)} default templates")

    persistence = SqliteHistoryPersistence(DatabaseService(config.database_path))
    history = ModeHistoryStore(persistence, limit=config.history_limit)
    history.load()

    transport = OpenRouterTransport(config)
    prompt_loader = PromptLoader()
    return ChatOrchestrator(
        store=store,
        history=history,
        transport=transport,
        search=LLMSemanticSearch(transport, config),
        registry=ToolRegistry(store),
        preamble=RetrievalPreambleBuilder(prompt_loader, excerpt_chars=config.excerpt_chars),
        prompt_loader=prompt_loader,
        config=config,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Build the orchestrator on startup and flush history on shutdown."""
    logger.info("Running startup: building chat orchestrator and loading history...")
    orchestrator = build_orchestrator()
    app.state.orchestrator = orchestrator
    # Covers interpreter exit paths that skip the lifespan shutdown.
    atexit.register(orchestrator.history.flush)
    logger.info("Startup complete: chat orchestrator ready")
    try:
        yield
    finally:
        orchestrator.shutdown()
        atexit.unregister(orchestrator.history.flush)
        app.state.orchestrator = None


app = FastAPI(
    title="Notes Copilot API",
    description="Personal knowledge base with retrieval-grounded chat and a tool-calling copilot",
    version="0.1.0",
    lifespan=lifespan,
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        "http://localhost:5173",
        "http://localhost:3000",
    ],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_error_handlers(app)

app.include_router(chat.router, tags=["chat"])


@app.get("/health")
async def health():
    """Health check endpoint."""
    return {"status": "healthy"}


__all__ = ["app", "build_orchestrator", "lifespan"]
