"""Pydantic models for data validation and serialization."""

from .chat import (
    ActiveModeRequest,
    ChatHistoryResponse,
    ChatMessage,
    ChatMode,
    ChatStateEvent,
    ChatStatus,
    ChatStatusResponse,
    FeedbackRequest,
    MessageFeedback,
    MessageRole,
    MessageStatus,
    SendMessageRequest,
    ToolExecutionStatus,
    ToolMessageContent,
)
from .note import Folder, Note, NoteSummary, Template
from .tools import ModelResponse, ToolInvocation, ToolResult, parse_tool_call

__all__ = [
    "ChatMode",
    "ChatStatus",
    "ChatMessage",
    "ChatStateEvent",
    "ChatHistoryResponse",
    "ChatStatusResponse",
    "ActiveModeRequest",
    "MessageRole",
    "MessageStatus",
    "MessageFeedback",
    "ToolExecutionStatus",
    "ToolMessageContent",
    "SendMessageRequest",
    "FeedbackRequest",
    "Note",
    "Folder",
    "Template",
    "NoteSummary",
    "ToolInvocation",
    "ToolResult",
    "ModelResponse",
    "parse_tool_call",
]
