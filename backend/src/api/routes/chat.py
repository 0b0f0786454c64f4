"""Chat API endpoints - conversation modes, history, and live state events."""

from __future__ import annotations

import asyncio
import json
import logging
from typing import AsyncGenerator

from fastapi import APIRouter, Depends, Request, status
from sse_starlette.sse import EventSourceResponse

from ..middleware.error_handlers import MessageNotFoundError, ServiceNotReadyError
from ...models.chat import (
    ActiveModeRequest,
    ChatHistoryResponse,
    ChatMessage,
    ChatMode,
    ChatStateEvent,
    ChatStatusResponse,
    FeedbackRequest,
    SendMessageRequest,
)
from ...services.chat_orchestrator import ChatOrchestrator

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/chat", tags=["chat"])

# Seconds between disconnect checks while no events arrive.
EVENT_POLL_SECONDS = 15.0


def get_orchestrator(request: Request) -> ChatOrchestrator:
    """Return the orchestrator built by the application lifespan."""
    orchestrator = getattr(request.app.state, "orchestrator", None)
    if orchestrator is None:
        raise ServiceNotReadyError()
    return orchestrator


def _history(orchestrator: ChatOrchestrator, mode: ChatMode) -> ChatHistoryResponse:
    return ChatHistoryResponse(
        mode=mode,
        messages=list(orchestrator.messages(mode)),
        status=orchestrator.status,
        error=orchestrator.errors[mode],
    )


@router.get("/status", response_model=ChatStatusResponse)
async def get_status(orchestrator: ChatOrchestrator = Depends(get_orchestrator)):
    """Current orchestrator status, running tool, and per-mode errors."""
    return ChatStatusResponse(
        status=orchestrator.status,
        active_mode=orchestrator.active_mode,
        active_tool_name=orchestrator.active_tool_name,
        errors=dict(orchestrator.errors),
    )


@router.post("/active-mode", response_model=ChatStatusResponse)
async def set_active_mode(
    request: ActiveModeRequest,
    orchestrator: ChatOrchestrator = Depends(get_orchestrator),
):
    """Switch the visible mode, cancelling any in-flight request."""
    orchestrator.set_active_mode(request.mode)
    return await get_status(orchestrator)


@router.get("/events")
async def stream_events(
    request: Request,
    orchestrator: ChatOrchestrator = Depends(get_orchestrator),
):
    """
    Stream orchestrator state changes as Server-Sent Events.

    Each event is a JSON ``ChatStateEvent``: ``history`` when a mode's log
    changed, ``status`` when the orchestrator status changed.
    """
    queue: asyncio.Queue[ChatStateEvent] = asyncio.Queue()
    unsubscribe = orchestrator.subscribe(queue.put_nowait)

    async def event_generator() -> AsyncGenerator[str, None]:
        try:
            while not await request.is_disconnected():
                try:
                    event = await asyncio.wait_for(queue.get(), timeout=EVENT_POLL_SECONDS)
                except asyncio.TimeoutError:
                    continue
                yield json.dumps(event.model_dump(mode="json", exclude_none=True))
        finally:
            unsubscribe()

    return EventSourceResponse(event_generator())


@router.get("/{mode}/messages", response_model=ChatHistoryResponse)
async def get_messages(
    mode: ChatMode,
    orchestrator: ChatOrchestrator = Depends(get_orchestrator),
):
    """Return a mode's conversation log, oldest first."""
    return _history(orchestrator, mode)


@router.post("/{mode}/messages", response_model=ChatHistoryResponse)
async def send_message(
    mode: ChatMode,
    request: SendMessageRequest,
    orchestrator: ChatOrchestrator = Depends(get_orchestrator),
):
    """
    Run one user turn in ``mode`` and return the updated log.

    Model and tool failures do not produce an HTTP error; they appear as an
    assistant error message in the log and in ``error``.
    """
    logger.info(f"Chat message for {mode.value}: {request.text[:100]}")
    await orchestrator.send(mode, request.text, request.image)
    return _history(orchestrator, mode)


@router.delete("/{mode}", status_code=status.HTTP_204_NO_CONTENT)
async def clear_mode(
    mode: ChatMode,
    orchestrator: ChatOrchestrator = Depends(get_orchestrator),
):
    """Clear a mode's conversation and cancel its in-flight request."""
    orchestrator.clear(mode)


@router.delete("/{mode}/messages/{message_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_message(
    mode: ChatMode,
    message_id: str,
    orchestrator: ChatOrchestrator = Depends(get_orchestrator),
):
    """Delete a single message by id."""
    if not orchestrator.delete_message(mode, message_id):
        raise MessageNotFoundError(message_id)


@router.post("/{mode}/messages/{message_id}/feedback", response_model=ChatMessage)
async def set_feedback(
    mode: ChatMode,
    message_id: str,
    request: FeedbackRequest,
    orchestrator: ChatOrchestrator = Depends(get_orchestrator),
):
    """Rate a message up or down with optional reason tags."""
    message = orchestrator.set_feedback(mode, message_id, request.rating, request.tags)
    if message is None:
        raise MessageNotFoundError(message_id)
    return message


__all__ = ["router", "get_orchestrator"]
