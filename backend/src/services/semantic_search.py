"""Model-ranked semantic search over the user's notes."""

from __future__ import annotations

import json
import logging
from typing import Any, List, Optional, Sequence

from ..models.note import Note
from .config import AppConfig, get_config
from .interfaces import ISemanticSearch
from .llm_transport import OpenRouterTransport, TransportError

logger = logging.getLogger(__name__)

SNIPPET_CHARS = 200

SEARCH_INSTRUCTION = (
    "You rank notes by relevance to a query. Reply with a JSON object of the form "
    '{"ids": ["<note id>", ...]} listing the most relevant note IDs first. '
    "Only use IDs that appear in the provided notes."
)


def _extract_ids(payload: Any) -> List[str]:
    if isinstance(payload, dict):
        payload = payload.get("ids", [])
    if not isinstance(payload, list):
        return []
    return [str(item) for item in payload if isinstance(item, (str, int))]


class LLMSemanticSearch(ISemanticSearch):
    """Asks the search model to pick the most relevant notes."""

    def __init__(
        self,
        transport: OpenRouterTransport,
        config: Optional[AppConfig] = None,
    ) -> None:
        self.transport = transport
        self.config = config or get_config()

    async def search(self, query: str, notes: Sequence[Note], limit: int = 5) -> List[str]:
        """Return up to ``limit`` ids of ``notes``, most relevant first.

        Raises:
            TransportError: If the model call fails or returns unusable output.
        """
        if not notes:
            return []

        notes_context = "\n---\n".join(
            f"ID: {note.id}\nTITLE: {note.title}\nCONTENT: {note.content[:SNIPPET_CHARS]}..."
            for note in notes
        )
        prompt = (
            f"Based on the user's query, which of the following notes are the most relevant? "
            f"List the top {limit} most relevant note IDs.\n"
            f'QUERY: "{query}"\n\nNOTES:\n{notes_context}'
        )

        try:
            reply = await self.transport.complete(
                prompt,
                SEARCH_INSTRUCTION,
                model=self.config.search_model,
                json_mode=True,
            )
            ids = _extract_ids(json.loads(reply.strip() or "[]"))
        except (TransportError, json.JSONDecodeError) as e:
            logger.error(f"Error in semantic search: {e}")
            raise TransportError(
                "AI search failed. Please check your API key and try again."
            ) from e

        known = {note.id for note in notes}
        ranked: List[str] = []
        for note_id in ids:
            if note_id in known and note_id not in ranked:
                ranked.append(note_id)
        logger.debug(f"Semantic search matched {len(ranked)} of {len(notes)} notes")
        return ranked[:limit]


__all__ = ["LLMSemanticSearch"]
