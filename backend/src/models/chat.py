"""Pydantic models for chat conversations across modes."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, Field, model_validator

from .note import NoteSummary


class ChatMode(str, Enum):
    """Independent conversation modes, each with its own message log."""

    ASSISTANT = "ASSISTANT"
    RESPONDER = "RESPONDER"
    COPILOT = "COPILOT"
    LISTING_COPY = "LISTING_COPY"


class MessageRole(str, Enum):
    """Author of a chat message."""

    USER = "user"
    ASSISTANT = "assistant"
    TOOL = "tool"


class MessageStatus(str, Enum):
    """Lifecycle of a message while a turn is in flight."""

    PROCESSING = "processing"
    COMPLETE = "complete"


class ToolExecutionStatus(str, Enum):
    """Status of a tool invocation recorded in the log."""

    PENDING = "pending"
    COMPLETE = "complete"
    ERROR = "error"


class ChatStatus(str, Enum):
    """What the orchestrator is currently waiting on."""

    IDLE = "idle"
    SEARCHING = "searching"
    REPLYING = "replying"
    USING_TOOL = "using_tool"


class ToolMessageContent(BaseModel):
    """Structured payload of a tool-role message."""

    tool_name: str = Field(..., description="Registered tool name requested by the model")
    arguments: Dict[str, Any] = Field(default_factory=dict, description="Arguments as sent by the model")
    raw_arguments: Optional[str] = Field(
        None, description="Argument text as sent when it was not valid JSON"
    )
    status: ToolExecutionStatus = Field(
        default=ToolExecutionStatus.PENDING, description="Execution status"
    )
    result: Optional[Dict[str, Any]] = Field(None, description="Tool result payload once resolved")


class MessageFeedback(BaseModel):
    """User rating of an assistant message."""

    rating: Literal["up", "down"]
    tags: List[str] = Field(default_factory=list, description="Reason tags, e.g. 'Incorrect'")


def _new_message_id() -> str:
    return str(uuid.uuid4())


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ChatMessage(BaseModel):
    """A single message in a mode's conversation log."""

    id: str = Field(default_factory=_new_message_id, description="Unique message id")
    role: MessageRole = Field(..., description="Message author")
    content: Union[ToolMessageContent, str] = Field(
        "", description="Plain text, or a tool payload for role=tool"
    )
    image: Optional[str] = Field(None, description="Base64 JPEG attached by the user")
    sources: Optional[List[NoteSummary]] = Field(
        None, description="Notes used to ground the reply"
    )
    status: MessageStatus = Field(default=MessageStatus.COMPLETE, description="Lifecycle status")
    feedback: Optional[MessageFeedback] = Field(None, description="User feedback")
    note_id: Optional[str] = Field(
        None, description="Note last touched by tools during the turn"
    )
    created: datetime = Field(default_factory=_utcnow, description="Creation timestamp")

    @model_validator(mode="before")
    @classmethod
    def _upgrade_legacy(cls, data: Any) -> Any:
        """Accept logs saved with the old 'ai' role and {name, args} tool payloads."""
        if not isinstance(data, dict):
            return data
        data = dict(data)
        if data.get("role") == "ai":
            data["role"] = MessageRole.ASSISTANT.value
        content = data.get("content")
        if isinstance(content, dict) and "name" in content and "tool_name" not in content:
            data["content"] = {
                "tool_name": content["name"],
                "arguments": content.get("args") or {},
                "status": content.get("status", ToolExecutionStatus.PENDING.value),
                "result": content.get("result"),
            }
        if data.get("feedback") in ("up", "down"):
            data["feedback"] = {"rating": data["feedback"], "tags": []}
        return data

    @property
    def text(self) -> str:
        """Plain-text content, or an empty string for tool messages."""
        return self.content if isinstance(self.content, str) else ""

    @property
    def tool(self) -> Optional[ToolMessageContent]:
        return self.content if isinstance(self.content, ToolMessageContent) else None


class ChatStateEvent(BaseModel):
    """Notification pushed to orchestrator subscribers."""

    type: Literal["history", "status"] = Field(..., description="What changed")
    mode: Optional[ChatMode] = Field(None, description="Mode whose log changed")
    status: ChatStatus = Field(..., description="Orchestrator status after the change")
    active_tool_name: Optional[str] = Field(None, description="Tool currently executing")
    error: Optional[str] = Field(None, description="Last error recorded for the mode")


class SendMessageRequest(BaseModel):
    """Request payload to send a chat message."""

    text: str = Field(..., min_length=1, max_length=20_000)
    image: Optional[str] = Field(None, description="Base64 JPEG data without a data: prefix")


class FeedbackRequest(BaseModel):
    """Request payload to rate a message."""

    rating: Literal["up", "down"]
    tags: List[str] = Field(default_factory=list)


class ChatHistoryResponse(BaseModel):
    """Response payload for a mode's conversation log."""

    mode: ChatMode
    messages: List[ChatMessage] = Field(default_factory=list)
    status: ChatStatus = ChatStatus.IDLE
    error: Optional[str] = None


class ChatStatusResponse(BaseModel):
    """Response payload for the orchestrator status."""

    status: ChatStatus
    active_mode: ChatMode
    active_tool_name: Optional[str] = None
    errors: Dict[ChatMode, Optional[str]] = Field(default_factory=dict)


class ActiveModeRequest(BaseModel):
    """Request payload to switch the visible mode."""

    mode: ChatMode


__all__ = [
    "ChatMode",
    "MessageRole",
    "MessageStatus",
    "ToolExecutionStatus",
    "ChatStatus",
    "ToolMessageContent",
    "MessageFeedback",
    "ChatMessage",
    "ChatStateEvent",
    "SendMessageRequest",
    "FeedbackRequest",
    "ChatHistoryResponse",
    "ChatStatusResponse",
    "ActiveModeRequest",
]
