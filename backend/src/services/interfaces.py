"""Abstract interfaces for the collaborators the chat core depends on."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, AsyncIterator, Dict, List, Optional, Sequence, Union

from ..models.note import Folder, Note, Template
from ..models.tools import ModelResponse, ToolResult


class NoteStoreError(Exception):
    """Raised by any INoteStore implementation when an operation fails."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class NoteNotFoundError(NoteStoreError):
    """Raised when the target note, folder, or template does not exist."""


class INoteStore(ABC):
    """Note/folder/template store. Each call is independent and atomic."""

    @abstractmethod
    def find_by_id(self, item_id: str) -> Optional[Union[Note, Folder]]: ...

    @abstractmethod
    def create_note(self, title: str, content: str = "", parent_id: Optional[str] = None) -> Note: ...

    @abstractmethod
    def create_folder(self, name: str, parent_id: Optional[str] = None) -> Folder: ...

    @abstractmethod
    def update_note(
        self, note_id: str, *, title: Optional[str] = None, content: Optional[str] = None
    ) -> Note: ...

    @abstractmethod
    def delete(self, item_id: str) -> None: ...

    @abstractmethod
    def list_notes(self) -> List[Note]: ...

    @abstractmethod
    def list_folders(self) -> List[Folder]: ...

    @abstractmethod
    def move(self, item_id: str, new_parent_id: Optional[str]) -> None: ...

    @abstractmethod
    def list_templates(self) -> List[Template]: ...

    @abstractmethod
    def get_template(self, template_id: str) -> Optional[Template]: ...

    @abstractmethod
    def create_template(self, title: str, content: str = "") -> Template: ...


class ISemanticSearch(ABC):
    """Ranks notes by relevance to a query."""

    @abstractmethod
    async def search(self, query: str, notes: Sequence[Note], limit: int = 5) -> List[str]:
        """Return note ids, most relevant first."""


class IChatSession(ABC):
    """A live multi-turn model session with tool calling."""

    @abstractmethod
    async def send_message(self, content: Union[str, List[ToolResult]]) -> ModelResponse: ...


class IChatTransport(ABC):
    """Raw LLM transport primitives."""

    @abstractmethod
    def stream(
        self, query: str, system_instruction: str, image: Optional[str] = None
    ) -> AsyncIterator[str]: ...

    @abstractmethod
    async def complete(self, prompt: str, system_instruction: Optional[str] = None) -> str: ...

    @abstractmethod
    def start_chat(self, system_instruction: str, tools: List[Dict[str, Any]]) -> IChatSession: ...


class IHistoryPersistence(ABC):
    """Durable storage for per-mode serialized conversation logs."""

    @abstractmethod
    def save_history(self, histories: Dict[str, List[Dict[str, Any]]]) -> None: ...

    @abstractmethod
    def load_history(self) -> Dict[str, List[Dict[str, Any]]]: ...


__all__ = [
    "INoteStore",
    "ISemanticSearch",
    "IChatSession",
    "IChatTransport",
    "IHistoryPersistence",
    "NoteStoreError",
    "NoteNotFoundError",
]
