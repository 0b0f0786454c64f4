"""Service layer for the chat core and its collaborators."""

from .chat_orchestrator import ChatOrchestrator, ToolLoopLimitError
from .config import AppConfig, get_config, reload_config
from .database import DatabaseService
from .history_persistence import HistoryPersistenceError, SqliteHistoryPersistence
from .history_store import ModeHistoryStore
from .interfaces import NoteNotFoundError, NoteStoreError
from .llm_transport import OpenRouterChatSession, OpenRouterTransport, TransportError
from .prompt_loader import PromptLoader, PromptLoaderError
from .retrieval_preamble import RetrievalPreambleBuilder
from .semantic_search import LLMSemanticSearch
from .stream_session import SessionChannel, SessionChunk, StreamSessionController
from .tool_registry import ToolError, ToolRegistry
from .vault import VaultNoteStore

__all__ = [
    "AppConfig",
    "get_config",
    "reload_config",
    "DatabaseService",
    "ChatOrchestrator",
    "ToolLoopLimitError",
    "ModeHistoryStore",
    "SqliteHistoryPersistence",
    "HistoryPersistenceError",
    "OpenRouterTransport",
    "OpenRouterChatSession",
    "TransportError",
    "PromptLoader",
    "PromptLoaderError",
    "RetrievalPreambleBuilder",
    "LLMSemanticSearch",
    "StreamSessionController",
    "SessionChannel",
    "SessionChunk",
    "ToolRegistry",
    "ToolError",
    "VaultNoteStore",
    "NoteStoreError",
    "NoteNotFoundError",
]
