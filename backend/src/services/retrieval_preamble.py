"""System instructions that ground streamed replies in numbered source notes."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, Optional, Sequence

from ..models.chat import ChatMode
from ..models.note import Note
from .prompt_loader import PromptLoader

logger = logging.getLogger(__name__)

DEFAULT_EXCERPT_CHARS = 2000


@dataclass(frozen=True)
class Persona:
    """How one retrieval-grounded mode presents its sources to the model."""

    prompt_path: str
    heading: str
    label: str
    query_prefix: str = ""


PERSONAS: Dict[ChatMode, Persona] = {
    ChatMode.ASSISTANT: Persona("chat/assistant.md", "Source Notes", "SOURCE"),
    ChatMode.RESPONDER: Persona(
        "chat/responder.md", "Knowledge Base", "DOC", query_prefix="Customer Query: "
    ),
    ChatMode.LISTING_COPY: Persona(
        "chat/listing_copy.md", "Research Notes", "NOTE", query_prefix="Product Info: "
    ),
}


def excerpt(text: str, limit: int) -> str:
    if len(text) <= limit:
        return text
    return text[:limit].rstrip() + "..."


class RetrievalPreambleBuilder:
    """Builds the source-numbered system instruction for a streamed reply.

    Numbering is 1-based and follows the order of ``candidate_notes``, so the
    same input always yields the same block. An empty candidate set produces
    an explicit no-sources instruction instead of an empty list.
    """

    def __init__(
        self,
        prompt_loader: Optional[PromptLoader] = None,
        excerpt_chars: int = DEFAULT_EXCERPT_CHARS,
    ) -> None:
        self.prompt_loader = prompt_loader or PromptLoader()
        self.excerpt_chars = excerpt_chars

    def persona(self, mode: ChatMode) -> Persona:
        try:
            return PERSONAS[mode]
        except KeyError:
            raise ValueError(f"Mode {mode.value} does not use retrieval") from None

    def build(
        self,
        query: str,
        candidate_notes: Sequence[Note],
        mode: ChatMode = ChatMode.ASSISTANT,
    ) -> str:
        persona = self.persona(mode)
        instructions = self.prompt_loader.load(persona.prompt_path).rstrip()
        return f"{instructions}\n\n{persona.heading}:\n{self.sources_block(query, candidate_notes, persona)}"

    def sources_block(self, query: str, candidate_notes: Sequence[Note], persona: Persona) -> str:
        if not candidate_notes:
            return (
                f'No sources were found for "{query}". Do not cite sources or use '
                "bracketed reference numbers; answer from general knowledge and say "
                "that no matching notes were found."
            )
        parts = []
        for index, note in enumerate(candidate_notes, start=1):
            parts.append(
                f"--- {persona.label} [{index}]: {note.title} ---\n"
                f"{excerpt(note.content, self.excerpt_chars)}\n"
            )
        return "".join(parts)

    def user_prompt(self, query: str, mode: ChatMode) -> str:
        """The user's text as sent to the model, with the mode's prefix."""
        return f"{self.persona(mode).query_prefix}{query}"


__all__ = ["RetrievalPreambleBuilder", "Persona", "PERSONAS", "excerpt"]
