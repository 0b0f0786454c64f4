"""Jinja2-based prompt template loader for the chat modes.

Templates live in backend/prompts/ and are reloaded on every call, so prompts
can be edited without restarting the server. Inline fallbacks cover every
template so the app still works when the prompts directory is missing.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

import jinja2

logger = logging.getLogger(__name__)

# backend/src/services/prompt_loader.py -> backend/prompts/
DEFAULT_PROMPTS_DIR = Path(__file__).resolve().parent.parent.parent / "prompts"

INLINE_PROMPTS: Dict[str, str] = {
    "chat/assistant.md": """You are a helpful AI assistant integrated into a note-taking app. Use the provided "Source Notes" to answer the user's query.
- When you use information from a source, you MUST cite it by number, like this: [1].
- Place citations at the end of the sentence or clause they support.
- If the sources are not relevant, ignore them and answer from your general knowledge without citing any sources.
- Be concise and helpful.
""",
    "chat/responder.md": """You are a professional and empathetic customer service agent. Your goal is to resolve the customer's issue using the provided knowledge base.
- When you use information from the knowledge base, you MUST cite it by number, like this: [1].
- Place citations at the end of the sentence or clause they support.
- If the knowledge base doesn't have the answer, apologize and explain that you will escalate the issue, without citing any sources.
""",
    "chat/listing_copy.md": """You are an expert marketplace copywriter. Create a compelling, search-optimized product listing based on the provided information.
- Use information from the provided research notes if available. When you do, you MUST cite it by number, like this: [1].
- Place citations where appropriate within the text.
- The output should be well-structured Markdown, including a title, bullet points, and a product description.
""",
    "copilot/system.md": """You are a helpful assistant with access to the user's notes. You can create, find, read, update, move, and delete notes and folders, work with templates, and run find-and-replace across all notes.
- You MUST use the provided tools to interact with the notes; never claim a change you did not make with a tool.
- Look up ids with findNotes, findCollections, or findTemplates before acting on an existing item.
- When a tool reports an error, explain it to the user or try a different approach.
- After changing notes, briefly confirm what you did and mention the affected note ids.
""",
}


class PromptLoaderError(Exception):
    """Raised when a prompt cannot be loaded."""

    pass


class PromptLoader:
    """Load and render Jinja2 prompt templates.

    Example:
        >>> loader = PromptLoader()
        >>> system_prompt = loader.load("copilot/system.md")
    """

    def __init__(self, prompts_dir: Optional[Path] = None) -> None:
        self.prompts_dir = prompts_dir or DEFAULT_PROMPTS_DIR

        if self.prompts_dir.is_dir():
            self.env = jinja2.Environment(
                loader=jinja2.FileSystemLoader(str(self.prompts_dir)),
                autoescape=False,  # Prompts are markdown, not HTML
                auto_reload=True,
                keep_trailing_newline=True,
            )
            logger.debug(
                "PromptLoader initialized with filesystem templates",
                extra={"prompts_dir": str(self.prompts_dir)},
            )
        else:
            self.env = None
            logger.warning(
                "Prompts directory not found, using inline fallbacks",
                extra={"prompts_dir": str(self.prompts_dir)},
            )

    def load(self, path: str, context: Optional[Dict[str, Any]] = None) -> str:
        """Load and render a prompt template.

        Raises:
            PromptLoaderError: If the template cannot be loaded or rendered.
        """
        context = context or {}

        if self.env is not None:
            try:
                template = self.env.get_template(path)
                return template.render(**context)
            except jinja2.TemplateNotFound:
                logger.debug(
                    "Template not found in filesystem, trying inline fallback",
                    extra={"path": path},
                )
            except jinja2.TemplateError as e:
                logger.error(
                    "Failed to render template",
                    extra={"path": path, "error": str(e)},
                )
                raise PromptLoaderError(f"Failed to render template {path}: {e}") from e

        return self._get_inline_prompt(path, context)

    def _get_inline_prompt(self, path: str, context: Dict[str, Any]) -> str:
        template_str = INLINE_PROMPTS.get(path)
        if template_str is None:
            logger.warning(
                "No inline fallback for prompt path",
                extra={"path": path, "available": list(INLINE_PROMPTS.keys())},
            )
            raise PromptLoaderError(
                f"Prompt not found: {path}. Available inline prompts: {list(INLINE_PROMPTS.keys())}"
            )
        try:
            return jinja2.Template(template_str, keep_trailing_newline=True).render(**context)
        except jinja2.TemplateError as e:
            raise PromptLoaderError(f"Failed to render inline template {path}: {e}") from e

    def list_available(self) -> Dict[str, List[str]]:
        """List template paths found on disk and available inline."""
        filesystem: List[str] = []
        if self.prompts_dir.is_dir():
            filesystem = sorted(
                path.relative_to(self.prompts_dir).as_posix()
                for path in self.prompts_dir.rglob("*.md")
            )
        return {"filesystem": filesystem, "inline": sorted(INLINE_PROMPTS)}


__all__ = ["PromptLoader", "PromptLoaderError", "DEFAULT_PROMPTS_DIR", "INLINE_PROMPTS"]
