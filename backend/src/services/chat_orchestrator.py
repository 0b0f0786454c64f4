"""Chat Orchestrator - Coordinates every conversation mode.

Streamed modes (assistant, responder, listing copy) retrieve source notes,
build a grounded system instruction and stream the reply into the mode's log.
Copilot drives a multi-turn tool-calling loop against a live model session:

    user message -> model -> [tool calls -> ToolRegistry -> results -> model]* -> answer

Every asynchronous write-back is guarded by a session token. Starting a new
send, clearing a mode or switching modes supersedes the token, and the
superseded work drops whatever it produces afterwards. Messages it had already
written are settled by whoever superseded it (see ``_supersede``), so the log
never keeps half-written output from an abandoned request.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Tuple

from ..models.chat import (
    ChatMessage,
    ChatMode,
    ChatStateEvent,
    ChatStatus,
    MessageFeedback,
    MessageRole,
    MessageStatus,
    ToolExecutionStatus,
    ToolMessageContent,
)
from ..models.note import Note, NoteSummary
from ..models.tools import ModelResponse, ToolInvocation, ToolResult
from .config import AppConfig, get_config
from .history_store import ModeHistoryStore
from .interfaces import IChatSession, IChatTransport, INoteStore, ISemanticSearch
from .llm_transport import TransportError
from .prompt_loader import PromptLoader
from .retrieval_preamble import RetrievalPreambleBuilder
from .stream_session import StreamSessionController
from .tool_registry import ToolError, ToolRegistry

logger = logging.getLogger(__name__)

ERROR_MESSAGE_PREFIX = "Sorry, I ran into an error: "

COPILOT_PROMPT = "copilot/system.md"

# Tools whose successful result names the note the user should be taken to.
NOTE_TOUCHING_TOOLS = frozenset({"createNote", "updateNote", "applyTemplate"})

INTERRUPTED_TOOL_RESULT = {
    "success": False,
    "error": "Interrupted by a newer request before a result was recorded.",
}

StateListener = Callable[[ChatStateEvent], None]


class ToolLoopLimitError(Exception):
    """Raised when the model keeps requesting tools past the configured limit."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


@dataclass
class _InFlight:
    """Messages the current request has written but not yet finalized."""

    mode: ChatMode
    reply_id: Optional[str] = None
    user_message_id: Optional[str] = None
    pending_tool_ids: List[str] = field(default_factory=list)
    session: Optional[IChatSession] = None


class ChatOrchestrator:
    """
    Top-level coordinator for all chat modes.

    One instance is built by the composition root and shared by every caller.
    Observers follow state through ``subscribe()`` rather than reading globals.
    """

    def __init__(
        self,
        store: INoteStore,
        history: ModeHistoryStore,
        transport: IChatTransport,
        search: ISemanticSearch,
        registry: Optional[ToolRegistry] = None,
        preamble: Optional[RetrievalPreambleBuilder] = None,
        sessions: Optional[StreamSessionController] = None,
        prompt_loader: Optional[PromptLoader] = None,
        config: Optional[AppConfig] = None,
    ) -> None:
        self.config = config or get_config()
        self.store = store
        self.history = history
        self.transport = transport
        self.search = search
        self.registry = registry or ToolRegistry(store)
        self.prompt_loader = prompt_loader or PromptLoader()
        self.preamble = preamble or RetrievalPreambleBuilder(
            self.prompt_loader, excerpt_chars=self.config.excerpt_chars
        )
        self.sessions = sessions or StreamSessionController()

        self.status = ChatStatus.IDLE
        self.active_tool_name: Optional[str] = None
        self.active_mode = ChatMode.ASSISTANT
        self.errors: Dict[ChatMode, Optional[str]] = {mode: None for mode in ChatMode}

        self._copilot_session: Optional[IChatSession] = None
        self._in_flight: Optional[_InFlight] = None
        self._listeners: List[StateListener] = []
        self._remove_history_listener = self.history.add_listener(self._on_history_changed)

    # =========================================================================
    # Observation
    # =========================================================================

    def subscribe(self, listener: StateListener) -> Callable[[], None]:
        """Register a state listener; returns a function that unsubscribes it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _emit(self, event: ChatStateEvent) -> None:
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception:
                logger.exception("Chat state listener failed")

    def _on_history_changed(self, mode: ChatMode) -> None:
        self._emit(
            ChatStateEvent(
                type="history",
                mode=mode,
                status=self.status,
                active_tool_name=self.active_tool_name,
                error=self.errors[mode],
            )
        )

    def _set_status(
        self, mode: ChatMode, status: ChatStatus, active_tool_name: Optional[str] = None
    ) -> None:
        self.status = status
        self.active_tool_name = active_tool_name
        self._emit(
            ChatStateEvent(
                type="status",
                mode=mode,
                status=status,
                active_tool_name=active_tool_name,
                error=self.errors[mode],
            )
        )

    # =========================================================================
    # Sessions
    # =========================================================================

    def _supersede(self) -> None:
        """Settle what the in-flight request left unfinished in its log.

        A partial streamed reply is removed, tool messages still pending are
        marked interrupted and a Copilot user message is marked complete. The
        Copilot model session is dropped because the abandoned turn may leave
        tool calls in it that will never be answered.
        """
        work, self._in_flight = self._in_flight, None
        if work is None:
            return
        if work.reply_id is not None:
            self.history.delete(work.mode, work.reply_id)
        for message_id in work.pending_tool_ids:
            self._resolve_tool_message(message_id, INTERRUPTED_TOOL_RESULT, ToolExecutionStatus.ERROR)
        if work.user_message_id is not None:
            self._complete(work.mode, work.user_message_id)
        if work.session is not None and work.session is self._copilot_session:
            self._copilot_session = None
            logger.info("Dropped Copilot model session of an abandoned turn")
        logger.debug(f"Settled superseded {work.mode.value} request")

    def _begin(self, work: _InFlight) -> int:
        self._supersede()
        self._in_flight = work
        return self.sessions.begin_session()

    def _invalidate(self) -> None:
        self._supersede()
        self.sessions.invalidate()

    def _complete(self, mode: ChatMode, message_id: str) -> None:
        self.history.replace(
            mode, message_id, lambda m: m.model_copy(update={"status": MessageStatus.COMPLETE})
        )

    # =========================================================================
    # Log access and user actions
    # =========================================================================

    def messages(self, mode: ChatMode) -> Tuple[ChatMessage, ...]:
        return self.history.all(mode)

    def delete_message(self, mode: ChatMode, message_id: str) -> bool:
        return self.history.delete(mode, message_id)

    def set_feedback(
        self,
        mode: ChatMode,
        message_id: str,
        rating: str,
        tags: Optional[List[str]] = None,
    ) -> Optional[ChatMessage]:
        """Attach a rating and reason tags to a message; None if it is gone."""
        feedback = MessageFeedback(rating=rating, tags=tags or [])
        return self.history.replace(
            mode, message_id, lambda m: m.model_copy(update={"feedback": feedback})
        )

    def clear(self, mode: ChatMode) -> None:
        """Empty a mode's log and cancel any in-flight request."""
        self._invalidate()
        if mode == ChatMode.COPILOT:
            self._copilot_session = None
        self.errors[mode] = None
        self.history.clear(mode)
        self._set_status(mode, ChatStatus.IDLE)
        logger.info(f"Cleared {mode.value} chat")

    def set_active_mode(self, mode: ChatMode) -> None:
        """Switch the visible mode; leaving Copilot drops its model session."""
        if mode == self.active_mode:
            return
        if self.active_mode == ChatMode.COPILOT:
            self._copilot_session = None
        self._invalidate()
        self.active_mode = mode
        self._set_status(mode, ChatStatus.IDLE)

    def shutdown(self) -> None:
        """Eager teardown flush of every mode's history."""
        self.history.flush()
        self._remove_history_listener()
        logger.info("Chat orchestrator shut down")

    # =========================================================================
    # Sending
    # =========================================================================

    async def send(self, mode: ChatMode, text: str, image: Optional[str] = None) -> None:
        """Run one user turn in ``mode``. Never raises transport or tool errors."""
        if mode == ChatMode.COPILOT:
            await self.send_copilot_message(text, image)
        else:
            await self._stream_reply(mode, text, image)

    async def send_message(self, text: str, image: Optional[str] = None) -> None:
        await self._stream_reply(ChatMode.ASSISTANT, text, image)

    async def generate_service_response(self, text: str, image: Optional[str] = None) -> None:
        await self._stream_reply(ChatMode.RESPONDER, text, image)

    async def generate_listing_copy(self, text: str, image: Optional[str] = None) -> None:
        await self._stream_reply(ChatMode.LISTING_COPY, text, image)

    def _fail(self, mode: ChatMode, token: int, message: str) -> None:
        if not self.sessions.is_current(token):
            return
        self.errors[mode] = message
        self.history.append(
            mode,
            ChatMessage(role=MessageRole.ASSISTANT, content=f"{ERROR_MESSAGE_PREFIX}{message}"),
        )

    async def _retrieve(self, query: str) -> List[Note]:
        notes = self.store.list_notes()
        ids = await self.search.search(query, notes, self.config.retrieval_limit)
        by_id = {note.id: note for note in notes}
        return [by_id[note_id] for note_id in ids if note_id in by_id]

    async def _stream_reply(self, mode: ChatMode, query: str, image: Optional[str]) -> None:
        work = _InFlight(mode)
        token = self._begin(work)
        self.errors[mode] = None
        self.history.append(mode, ChatMessage(role=MessageRole.USER, content=query, image=image))
        self._set_status(mode, ChatStatus.SEARCHING)

        try:
            sources = await self._retrieve(query)
            if not self.sessions.is_current(token):
                logger.debug(f"Dropping stale {mode.value} search results")
                return

            self._set_status(mode, ChatStatus.REPLYING)
            system_instruction = self.preamble.build(query, sources, mode)
            prompt = self.preamble.user_prompt(query, mode)
            summaries = [NoteSummary.from_note(note) for note in sources] or None

            stream = self.transport.stream(prompt, system_instruction, image)
            async with self.sessions.open_channel(token, stream) as channel:
                async for chunk in channel:
                    if not self.sessions.is_current(chunk.token):
                        logger.debug(f"Abandoning stale {mode.value} stream")
                        break
                    if work.reply_id is None:
                        reply = self.history.append(
                            mode,
                            ChatMessage(
                                role=MessageRole.ASSISTANT,
                                content="",
                                sources=summaries,
                                status=MessageStatus.PROCESSING,
                            ),
                        )
                        work.reply_id = reply.id
                    self.history.replace(
                        mode,
                        work.reply_id,
                        lambda m, text=chunk.text: m.model_copy(update={"content": m.text + text}),
                    )
        except TransportError as e:
            logger.warning(f"{mode.value} reply failed: {e.message}")
            self._fail(mode, token, e.message)
        except Exception as e:
            logger.exception(f"{mode.value} reply failed: {e}")
            self._fail(mode, token, str(e))
        finally:
            if self.sessions.is_current(token):
                self._in_flight = None
                if work.reply_id is not None:
                    self._complete(mode, work.reply_id)
                self._set_status(mode, ChatStatus.IDLE)

    # =========================================================================
    # Copilot tool loop
    # =========================================================================

    def _get_copilot_session(self) -> IChatSession:
        if self._copilot_session is None:
            system_instruction = self.prompt_loader.load(COPILOT_PROMPT)
            self._copilot_session = self.transport.start_chat(
                system_instruction, self.registry.get_tool_schemas()
            )
            logger.info("Started Copilot model session")
        return self._copilot_session

    async def _run_tool(self, call: ToolInvocation) -> Tuple[Dict[str, Any], ToolExecutionStatus]:
        if call.raw_arguments is not None:
            logger.warning(f"Tool {call.name} arguments were not valid JSON")
            return (
                {"success": False, "error": "Invalid arguments: could not parse JSON"},
                ToolExecutionStatus.ERROR,
            )
        try:
            result = await self.registry.execute(call.name, call.arguments)
            return result, ToolExecutionStatus.COMPLETE
        except ToolError as e:
            return {"success": False, "error": e.message}, ToolExecutionStatus.ERROR

    def _resolve_tool_message(
        self, message_id: str, result: Dict[str, Any], status: ToolExecutionStatus
    ) -> None:
        self.history.replace(
            ChatMode.COPILOT,
            message_id,
            lambda m: m.model_copy(
                update={"content": m.tool.model_copy(update={"status": status, "result": result})}
            ),
        )

    async def _run_tool_batch(
        self, token: int, work: _InFlight, response: ModelResponse
    ) -> Tuple[Optional[List[ToolResult]], Optional[str]]:
        """Execute one batch of tool calls in order.

        Returns the results for the model and the last note a tool touched, or
        ``(None, None)`` once the session has been superseded.
        """
        mode = ChatMode.COPILOT
        pending = [
            ChatMessage(
                role=MessageRole.TOOL,
                content=ToolMessageContent(
                    tool_name=call.name,
                    arguments=call.arguments,
                    raw_arguments=call.raw_arguments,
                ),
            )
            for call in response.tool_calls
        ]
        self.history.extend(mode, pending)
        work.pending_tool_ids = [message.id for message in pending]

        results: List[ToolResult] = []
        touched_note_id: Optional[str] = None
        for call, message in zip(response.tool_calls, pending):
            if not self.sessions.is_current(token):
                return None, None
            self._set_status(mode, ChatStatus.USING_TOOL, call.name)
            result, status = await self._run_tool(call)
            if not self.sessions.is_current(token):
                return None, None

            self._resolve_tool_message(message.id, result, status)
            work.pending_tool_ids.remove(message.id)
            if status == ToolExecutionStatus.COMPLETE and call.name in NOTE_TOUCHING_TOOLS:
                touched_note_id = result.get("noteId") or touched_note_id
            results.append(ToolResult(call_id=call.id, name=call.name, result=result))

        return results, touched_note_id

    async def send_copilot_message(self, text: str, image: Optional[str] = None) -> None:
        """Run a Copilot turn until the model stops calling tools."""
        mode = ChatMode.COPILOT
        work = _InFlight(mode)
        token = self._begin(work)
        self.errors[mode] = None
        user_message = self.history.append(
            mode,
            ChatMessage(
                role=MessageRole.USER,
                content=text,
                image=image,
                status=MessageStatus.PROCESSING,
            ),
        )
        work.user_message_id = user_message.id
        self._set_status(mode, ChatStatus.REPLYING)

        last_note_id: Optional[str] = None
        answered = False
        try:
            session = self._get_copilot_session()
            work.session = session
            response = await session.send_message(text)

            rounds = 0
            while response.tool_calls:
                if not self.sessions.is_current(token):
                    return
                rounds += 1
                if rounds > self.config.max_tool_iterations:
                    raise ToolLoopLimitError(
                        f"Stopped after {self.config.max_tool_iterations} rounds of tool calls "
                        "without a final answer.",
                        {"max_tool_iterations": self.config.max_tool_iterations},
                    )

                logger.info(
                    f"Copilot round {rounds}: {len(response.tool_calls)} tool call(s)",
                    extra={"tools": [call.name for call in response.tool_calls]},
                )
                results, touched = await self._run_tool_batch(token, work, response)
                if results is None:
                    return
                last_note_id = touched or last_note_id

                self._set_status(mode, ChatStatus.REPLYING)
                response = await session.send_message(results)

            answered = True
            if not self.sessions.is_current(token):
                return
            if response.text:
                self.history.append(
                    mode,
                    ChatMessage(
                        role=MessageRole.ASSISTANT,
                        content=response.text,
                        note_id=last_note_id,
                    ),
                )
        except ToolLoopLimitError as e:
            logger.error(f"Copilot tool loop aborted: {e.message}")
            self._fail(mode, token, e.message)
        except TransportError as e:
            logger.warning(f"Copilot turn failed: {e.message}")
            self._fail(mode, token, e.message)
        except Exception as e:
            logger.exception(f"Copilot turn failed: {e}")
            self._fail(mode, token, str(e))
        finally:
            if self.sessions.is_current(token):
                self._in_flight = None
                if not answered:
                    # A failed turn can leave unanswered tool calls in the model context.
                    self._copilot_session = None
                self._complete(mode, user_message.id)
                self._set_status(mode, ChatStatus.IDLE)


__all__ = [
    "ChatOrchestrator",
    "ToolLoopLimitError",
    "ERROR_MESSAGE_PREFIX",
    "NOTE_TOUCHING_TOOLS",
]
