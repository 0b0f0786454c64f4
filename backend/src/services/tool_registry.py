"""Tool Registry - Dispatches Copilot tool calls to the note store.

Raw calls from the model are validated against the tagged union in
``models.tools`` before any handler runs. Handlers return a
``{"success": True, ...}`` payload; every failure surfaces as ``ToolError``.
"""

from __future__ import annotations

import inspect
import logging
import re
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple

from pydantic import BaseModel, ValidationError

from ..models.note import Folder, Note
from ..models.tools import (
    KNOWN_TOOL_CALLS,
    ApplyTemplateArgs,
    CreateCollectionArgs,
    CreateNoteArgs,
    CreateTemplateArgs,
    DeleteNoteArgs,
    FindAndReplaceArgs,
    FindCollectionsArgs,
    FindNotesArgs,
    FindTemplatesArgs,
    GetNoteContentArgs,
    MoveNoteToCollectionArgs,
    UnknownToolCall,
    UpdateNoteArgs,
    parse_tool_call,
)
from .interfaces import INoteStore, NoteStoreError

logger = logging.getLogger(__name__)

ToolHandler = Callable[[Any], Awaitable[Dict[str, Any]]]


class ToolError(Exception):
    """Raised when a tool call cannot be carried out."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


def _describe_validation_error(error: ValidationError) -> str:
    parts = []
    for err in error.errors(include_url=False):
        # loc is (tool name, "arguments", field, ...)
        field = ".".join(str(part) for part in err["loc"][2:])
        parts.append(f"{field}: {err['msg']}" if field else err["msg"])
    return "; ".join(parts)


def _function_schema(call_model: type[BaseModel]) -> Dict[str, Any]:
    name = call_model.model_fields["name"].annotation.__args__[0]
    args_model = call_model.model_fields["arguments"].annotation
    parameters = args_model.model_json_schema(by_alias=True)
    parameters.pop("title", None)
    for prop in parameters.get("properties", {}).values():
        prop.pop("title", None)
    return {
        "type": "function",
        "function": {
            "name": name,
            "description": inspect.cleandoc(call_model.__doc__ or ""),
            "parameters": parameters,
        },
    }


class ToolRegistry:
    """
    Executes Copilot tool calls against an ``INoteStore``.

    Each tool is a single store operation (or, for findAndReplace, a batch
    that is rolled back on failure), so a tool either succeeds or leaves the
    store as it found it.
    """

    def __init__(self, store: INoteStore) -> None:
        self.store = store

        # Tool registry mapping tool names to handler methods
        self._tools: Dict[str, ToolHandler] = {
            # Notes
            "createNote": self._create_note,
            "findNotes": self._find_notes,
            "getNoteContent": self._get_note_content,
            "updateNote": self._update_note,
            "deleteNote": self._delete_note,
            # Folders
            "createCollection": self._create_collection,
            "findCollections": self._find_collections,
            "moveNoteToCollection": self._move_note_to_collection,
            # Templates
            "findTemplates": self._find_templates,
            "createTemplate": self._create_template,
            "applyTemplate": self._apply_template,
            # Bulk edits
            "findAndReplace": self._find_and_replace,
        }

        self._schema_cache: Optional[List[Dict[str, Any]]] = None

    @property
    def tool_names(self) -> Tuple[str, ...]:
        return tuple(self._tools)

    async def execute(self, name: str, arguments: Dict[str, Any]) -> Dict[str, Any]:
        """
        Validate and execute a tool call.

        Args:
            name: Tool name requested by the model
            arguments: Raw arguments dictionary (camelCase keys)

        Returns:
            Result payload, always with ``success: True``

        Raises:
            ToolError: For unknown tools, invalid arguments, or store failures
        """
        try:
            call = parse_tool_call(name, arguments)
        except ValidationError as e:
            logger.warning(f"Tool {name} validation error: {e.error_count()} errors")
            raise ToolError(
                f"Invalid arguments: {_describe_validation_error(e)}", {"tool": name}
            ) from e

        if isinstance(call, UnknownToolCall) or name not in self._tools:
            logger.warning(f"Unknown tool requested: {name}")
            raise ToolError(f"Unknown tool: {name}", {"tool": name})

        handler = self._tools[name]
        logger.info(
            f"Executing tool: {name}",
            extra={"tool": name, "args_keys": list(arguments.keys())},
        )
        try:
            return await handler(call.arguments)
        except ToolError:
            raise
        except NoteStoreError as e:
            logger.warning(f"Tool {name} store error: {e.message}")
            raise ToolError(e.message, {"tool": name, **e.details}) from e
        except Exception as e:
            logger.exception(f"Tool {name} execution failed: {e}")
            raise ToolError(f"Tool execution failed: {str(e)}", {"tool": name}) from e

    def get_tool_schemas(self) -> List[Dict[str, Any]]:
        """
        Get OpenRouter-compatible tool schemas for every registered tool.

        Returns:
            List of tool definitions in OpenAI function calling format
        """
        if self._schema_cache is None:
            self._schema_cache = [_function_schema(call) for call in KNOWN_TOOL_CALLS]
            logger.debug(f"Built {len(self._schema_cache)} tool schemas")
        return self._schema_cache

    # =========================================================================
    # Lookup helpers
    # =========================================================================

    def _require_note(self, note_id: str) -> Note:
        item = self.store.find_by_id(note_id)
        if not isinstance(item, Note):
            raise ToolError("Note not found.", {"noteId": note_id})
        return item

    def _require_folder(self, folder_id: str) -> Folder:
        item = self.store.find_by_id(folder_id)
        if not isinstance(item, Folder):
            raise ToolError("Folder not found.", {"collectionId": folder_id})
        return item

    # =========================================================================
    # Note Tools
    # =========================================================================

    async def _create_note(self, args: CreateNoteArgs) -> Dict[str, Any]:
        if args.parent_id is not None:
            self._require_folder(args.parent_id)
        note = self.store.create_note(args.title, args.content, args.parent_id)
        return {"success": True, "noteId": note.id, "title": note.title}

    async def _find_notes(self, args: FindNotesArgs) -> Dict[str, Any]:
        query = args.query.lower()
        notes = [
            {"id": note.id, "title": note.title}
            for note in self.store.list_notes()
            if query in note.title.lower()
        ]
        return {"success": True, "notes": notes}

    async def _get_note_content(self, args: GetNoteContentArgs) -> Dict[str, Any]:
        note = self._require_note(args.note_id)
        return {"success": True, "title": note.title, "content": note.content}

    async def _update_note(self, args: UpdateNoteArgs) -> Dict[str, Any]:
        self._require_note(args.note_id)
        self.store.update_note(args.note_id, title=args.title or None, content=args.content)
        return {"success": True, "noteId": args.note_id}

    async def _delete_note(self, args: DeleteNoteArgs) -> Dict[str, Any]:
        self._require_note(args.note_id)
        self.store.delete(args.note_id)
        return {"success": True, "noteId": args.note_id}

    # =========================================================================
    # Folder Tools
    # =========================================================================

    async def _create_collection(self, args: CreateCollectionArgs) -> Dict[str, Any]:
        if args.parent_id is not None:
            self._require_folder(args.parent_id)
        folder = self.store.create_folder(args.name, args.parent_id)
        return {"success": True, "collectionId": folder.id}

    async def _find_collections(self, args: FindCollectionsArgs) -> Dict[str, Any]:
        query = args.query.lower()
        collections = [
            {"id": folder.id, "name": folder.name}
            for folder in self.store.list_folders()
            if query in folder.name.lower()
        ]
        return {"success": True, "collections": collections}

    async def _move_note_to_collection(self, args: MoveNoteToCollectionArgs) -> Dict[str, Any]:
        note = self.store.find_by_id(args.note_id)
        folder = (
            self.store.find_by_id(args.collection_id) if args.collection_id is not None else None
        )
        if not isinstance(note, Note) or (
            args.collection_id is not None and not isinstance(folder, Folder)
        ):
            raise ToolError(
                "Note or destination folder not found.",
                {"noteId": args.note_id, "collectionId": args.collection_id},
            )
        self.store.move(args.note_id, args.collection_id)
        return {"success": True, "noteId": args.note_id, "collectionId": args.collection_id}

    # =========================================================================
    # Template Tools
    # =========================================================================

    async def _find_templates(self, args: FindTemplatesArgs) -> Dict[str, Any]:
        query = args.query.lower()
        templates = [
            {"id": template.id, "title": template.title}
            for template in self.store.list_templates()
            if query in template.title.lower()
        ]
        return {"success": True, "templates": templates}

    async def _create_template(self, args: CreateTemplateArgs) -> Dict[str, Any]:
        template = self.store.create_template(args.title, args.content)
        return {"success": True, "templateId": template.id}

    async def _apply_template(self, args: ApplyTemplateArgs) -> Dict[str, Any]:
        template = self.store.get_template(args.template_id)
        if template is None:
            raise ToolError("Template not found.", {"templateId": args.template_id})

        if args.note_id:
            self._require_note(args.note_id)
            self.store.update_note(args.note_id, content=template.content)
            return {"success": True, "noteId": args.note_id, "created": False}

        note = self.store.create_note(args.title or template.title, template.content)
        return {"success": True, "noteId": note.id, "created": True}

    # =========================================================================
    # Bulk Edit Tools
    # =========================================================================

    async def _find_and_replace(self, args: FindAndReplaceArgs) -> Dict[str, Any]:
        flags = 0 if args.case_sensitive else re.IGNORECASE
        try:
            pattern = re.compile(args.find, flags)
        except re.error as e:
            raise ToolError(f"Invalid regular expression: {e}", {"find": args.find}) from e

        # Compute every replacement before touching the store so a bad
        # replacement template fails without side effects.
        changes: List[Tuple[Note, str]] = []
        for note in self.store.list_notes():
            try:
                new_content = pattern.sub(args.replace, note.content)
            except re.error as e:
                raise ToolError(f"Invalid replacement: {e}", {"replace": args.replace}) from e
            if new_content != note.content:
                changes.append((note, new_content))

        applied: List[Note] = []
        for note, new_content in changes:
            try:
                self.store.update_note(note.id, content=new_content)
            except NoteStoreError as e:
                not_restored = self._roll_back(applied)
                message = f"Failed to update note {note.id}: {e.message}."
                if not_restored:
                    message += f" Could not restore notes: {', '.join(not_restored)}."
                else:
                    message += f" Rolled back {len(applied)} earlier update(s)."
                raise ToolError(
                    message,
                    {
                        "failedNoteId": note.id,
                        "updatedNoteIds": not_restored,
                    },
                ) from e
            applied.append(note)

        logger.info(f"findAndReplace updated {len(applied)} notes")
        return {"success": True, "notesUpdated": len(applied)}

    def _roll_back(self, applied: List[Note]) -> List[str]:
        """Restore original content; returns ids that could not be restored."""
        not_restored = []
        for note in reversed(applied):
            try:
                self.store.update_note(note.id, content=note.content)
            except NoteStoreError as e:
                logger.error(f"Failed to restore note {note.id} after findAndReplace: {e.message}")
                not_restored.append(note.id)
        return not_restored


__all__ = ["ToolRegistry", "ToolError"]
