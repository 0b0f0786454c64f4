"""Mode-partitioned chat history with capped write-through persistence."""

from __future__ import annotations

import logging
from typing import Callable, Dict, List, Optional, Tuple

from pydantic import ValidationError

from ..models.chat import ChatMessage, ChatMode, ToolExecutionStatus
from .interfaces import IHistoryPersistence

logger = logging.getLogger(__name__)

DEFAULT_HISTORY_LIMIT = 100

HistoryListener = Callable[[ChatMode], None]
MessageUpdater = Callable[[ChatMessage], ChatMessage]


def _check_tool_transition(old: ChatMessage, new: ChatMessage) -> None:
    old_tool, new_tool = old.tool, new.tool
    if old_tool is None or new_tool is None or old_tool.status == new_tool.status:
        return
    if old_tool.status != ToolExecutionStatus.PENDING:
        raise ValueError(
            f"Tool message {old.id} is already {old_tool.status.value}; "
            f"cannot move to {new_tool.status.value}"
        )


class ModeHistoryStore:
    """Ordered message log per ChatMode.

    Every mutation re-serializes the newest ``limit`` messages of every mode to
    the persistence backend. Persistence failures are logged and swallowed so
    the in-memory conversation keeps working without durable storage.
    """

    def __init__(
        self,
        persistence: Optional[IHistoryPersistence] = None,
        limit: int = DEFAULT_HISTORY_LIMIT,
    ) -> None:
        self.persistence = persistence
        self.limit = limit
        self._logs: Dict[ChatMode, List[ChatMessage]] = {mode: [] for mode in ChatMode}
        self._listeners: List[HistoryListener] = []

    # ------------------------------------------------------------------
    # Loading and persistence
    # ------------------------------------------------------------------

    def load(self) -> None:
        """Replace in-memory logs with what the persistence backend holds."""
        if self.persistence is None:
            return
        try:
            stored = self.persistence.load_history()
        except Exception as e:
            logger.error(f"Failed to load chat history: {e}")
            return

        for mode in ChatMode:
            messages: List[ChatMessage] = []
            for raw in stored.get(mode.value, []):
                try:
                    messages.append(ChatMessage.model_validate(raw))
                except ValidationError as e:
                    logger.warning(f"Dropping unreadable {mode.value} message: {e.error_count()} errors")
            self._logs[mode] = messages[-self.limit:]
        logger.info(
            "Loaded chat history",
            extra={"counts": {mode.value: len(msgs) for mode, msgs in self._logs.items()}},
        )

    def serialize(self) -> Dict[str, List[Dict]]:
        """JSON-ready logs, each truncated to the newest ``limit`` messages."""
        return {
            mode.value: [m.model_dump(mode="json") for m in messages[-self.limit:]]
            for mode, messages in self._logs.items()
        }

    def flush(self) -> None:
        """Best-effort synchronous save; used on shutdown."""
        if self.persistence is None:
            return
        try:
            self.persistence.save_history(self.serialize())
        except Exception as e:
            logger.error(f"Failed to save chat history: {e}")

    def _changed(self, mode: ChatMode) -> None:
        log = self._logs[mode]
        if len(log) > self.limit:
            del log[: len(log) - self.limit]
        self.flush()
        for listener in list(self._listeners):
            try:
                listener(mode)
            except Exception:
                logger.exception("History listener failed")

    def add_listener(self, listener: HistoryListener) -> Callable[[], None]:
        """Register a change callback; returns a function that removes it."""
        self._listeners.append(listener)

        def remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return remove

    # ------------------------------------------------------------------
    # Log operations
    # ------------------------------------------------------------------

    def append(self, mode: ChatMode, message: ChatMessage) -> ChatMessage:
        self._logs[mode].append(message)
        self._changed(mode)
        return message

    def extend(self, mode: ChatMode, messages: List[ChatMessage]) -> None:
        """Append several messages as a single change."""
        self._logs[mode].extend(messages)
        self._changed(mode)

    def replace(
        self, mode: ChatMode, message_id: str, updater: MessageUpdater
    ) -> Optional[ChatMessage]:
        """Swap a message for ``updater(message)``; no-op when the id is absent.

        Raises:
            ValueError: If the update would move a resolved tool message's status.
        """
        log = self._logs[mode]
        for index, message in enumerate(log):
            if message.id == message_id:
                updated = updater(message)
                _check_tool_transition(message, updated)
                log[index] = updated
                self._changed(mode)
                return updated
        return None

    def get(self, mode: ChatMode, message_id: str) -> Optional[ChatMessage]:
        return next((m for m in self._logs[mode] if m.id == message_id), None)

    def all(self, mode: ChatMode) -> Tuple[ChatMessage, ...]:
        """Messages of ``mode``, oldest first."""
        return tuple(self._logs[mode])

    def clear(self, mode: ChatMode) -> None:
        self._logs[mode] = []
        self._changed(mode)

    def delete(self, mode: ChatMode, message_id: str) -> bool:
        log = self._logs[mode]
        remaining = [m for m in log if m.id != message_id]
        if len(remaining) == len(log):
            return False
        self._logs[mode] = remaining
        self._changed(mode)
        return True


__all__ = ["ModeHistoryStore", "DEFAULT_HISTORY_LIMIT"]
