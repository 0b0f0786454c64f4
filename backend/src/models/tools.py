"""Pydantic models for Copilot tool calls.

Every registered tool has an argument model and a call model tagged by the
tool name. The registry validates raw model output against the tagged union
before anything touches the note store; names outside the registry parse to
``UnknownToolCall``.
"""

from __future__ import annotations

from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, field_validator, model_validator
from pydantic.alias_generators import to_camel


class ToolArguments(BaseModel):
    """Base for tool argument models (camelCase on the wire)."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


class CreateNoteArgs(ToolArguments):
    title: str = Field("Untitled Note", description="Title of the new note")
    content: str = Field("", description="Markdown body of the new note")
    parent_id: Optional[str] = Field(None, description="Folder to create the note in")

    @field_validator("title", mode="before")
    @classmethod
    def _default_title(cls, value: Any) -> Any:
        return value or "Untitled Note"


class FindNotesArgs(ToolArguments):
    query: str = Field(..., description="Case-insensitive substring of the note title")


class GetNoteContentArgs(ToolArguments):
    note_id: str = Field(..., min_length=1, description="Id of the note to read")


class UpdateNoteArgs(ToolArguments):
    note_id: str = Field(..., min_length=1, description="Id of the note to update")
    title: Optional[str] = Field(None, description="New title")
    content: Optional[str] = Field(None, description="New Markdown body")

    @model_validator(mode="after")
    def _require_field(self) -> "UpdateNoteArgs":
        if not self.title and self.content is None:
            raise ValueError("No fields to update were provided.")
        return self


class DeleteNoteArgs(ToolArguments):
    note_id: str = Field(..., min_length=1, description="Id of the note to delete")


class CreateCollectionArgs(ToolArguments):
    name: str = Field("New Folder", description="Folder name")
    parent_id: Optional[str] = Field(None, description="Parent folder id (omit for root)")

    @field_validator("name", mode="before")
    @classmethod
    def _default_name(cls, value: Any) -> Any:
        return value or "New Folder"


class FindCollectionsArgs(ToolArguments):
    query: str = Field(..., description="Case-insensitive substring of the folder name")


class MoveNoteToCollectionArgs(ToolArguments):
    note_id: str = Field(..., min_length=1, description="Id of the note to move")
    collection_id: Optional[str] = Field(
        ..., description="Destination folder id, or null to move to the root"
    )

    @field_validator("collection_id", mode="before")
    @classmethod
    def _null_means_root(cls, value: Any) -> Any:
        if value in ("null", "", "root"):
            return None
        return value


class FindTemplatesArgs(ToolArguments):
    query: str = Field("", description="Case-insensitive substring of the template title")


class CreateTemplateArgs(ToolArguments):
    title: str = Field(..., min_length=1, description="Template title")
    content: str = Field("", description="Template Markdown body")


class ApplyTemplateArgs(ToolArguments):
    template_id: str = Field(..., min_length=1, description="Template to apply")
    note_id: Optional[str] = Field(
        None, description="Existing note whose content is replaced; omit to create a new note"
    )
    title: Optional[str] = Field(None, description="Title for a newly created note")


class FindAndReplaceArgs(ToolArguments):
    find: str = Field(..., min_length=1, description="Regular expression to search for")
    replace: str = Field(..., description="Replacement text (supports \\1 group references)")
    case_sensitive: bool = Field(False, description="Match case exactly")


class CreateNoteCall(BaseModel):
    """Create a new note."""

    name: Literal["createNote"]
    arguments: CreateNoteArgs


class FindNotesCall(BaseModel):
    """Find notes whose title contains a query."""

    name: Literal["findNotes"]
    arguments: FindNotesArgs


class GetNoteContentCall(BaseModel):
    """Read the title and content of a note."""

    name: Literal["getNoteContent"]
    arguments: GetNoteContentArgs


class UpdateNoteCall(BaseModel):
    """Update the title and/or content of a note."""

    name: Literal["updateNote"]
    arguments: UpdateNoteArgs


class DeleteNoteCall(BaseModel):
    """Delete a note."""

    name: Literal["deleteNote"]
    arguments: DeleteNoteArgs


class CreateCollectionCall(BaseModel):
    """Create a folder."""

    name: Literal["createCollection"]
    arguments: CreateCollectionArgs


class FindCollectionsCall(BaseModel):
    """Find folders whose name contains a query."""

    name: Literal["findCollections"]
    arguments: FindCollectionsArgs


class MoveNoteToCollectionCall(BaseModel):
    """Move a note into a folder, or to the root."""

    name: Literal["moveNoteToCollection"]
    arguments: MoveNoteToCollectionArgs


class FindTemplatesCall(BaseModel):
    """List templates whose title contains a query."""

    name: Literal["findTemplates"]
    arguments: FindTemplatesArgs


class CreateTemplateCall(BaseModel):
    """Save a new reusable template."""

    name: Literal["createTemplate"]
    arguments: CreateTemplateArgs


class ApplyTemplateCall(BaseModel):
    """Apply a template to a note, or create a note from it."""

    name: Literal["applyTemplate"]
    arguments: ApplyTemplateArgs


class FindAndReplaceCall(BaseModel):
    """Regex find-and-replace across the content of every note."""

    name: Literal["findAndReplace"]
    arguments: FindAndReplaceArgs


class UnknownToolCall(BaseModel):
    """A tool name the registry does not know."""

    name: str
    arguments: Dict[str, Any] = Field(default_factory=dict)


KNOWN_TOOL_CALLS: tuple[type[BaseModel], ...] = (
    CreateNoteCall,
    FindNotesCall,
    GetNoteContentCall,
    UpdateNoteCall,
    DeleteNoteCall,
    CreateCollectionCall,
    FindCollectionsCall,
    MoveNoteToCollectionCall,
    FindTemplatesCall,
    CreateTemplateCall,
    ApplyTemplateCall,
    FindAndReplaceCall,
)

KnownToolCall = Annotated[Union[KNOWN_TOOL_CALLS], Field(discriminator="name")]  # type: ignore[valid-type]

ToolCallRequest = Union[KnownToolCall, UnknownToolCall]

TOOL_NAMES: tuple[str, ...] = tuple(
    call.model_fields["name"].annotation.__args__[0] for call in KNOWN_TOOL_CALLS
)

_known_adapter: TypeAdapter = TypeAdapter(KnownToolCall)


def parse_tool_call(name: str, arguments: Dict[str, Any]) -> ToolCallRequest:
    """Validate a raw tool call from the model.

    Raises:
        pydantic.ValidationError: If a known tool's arguments are invalid.
    """
    if name not in TOOL_NAMES:
        return UnknownToolCall(name=name, arguments=arguments)
    return _known_adapter.validate_python({"name": name, "arguments": arguments})


class ToolInvocation(BaseModel):
    """A tool call emitted by the model (not persisted)."""

    id: str = Field(..., description="Provider tool_call_id")
    name: str
    arguments: Dict[str, Any] = Field(default_factory=dict)
    raw_arguments: Optional[str] = Field(
        None, description="Original argument string when it was not valid JSON"
    )


class ToolResult(BaseModel):
    """Result of one tool invocation, sent back to the model."""

    call_id: str
    name: str
    result: Dict[str, Any]


class ModelResponse(BaseModel):
    """One reply from a multi-turn model session."""

    text: Optional[str] = None
    tool_calls: List[ToolInvocation] = Field(default_factory=list)


__all__ = [
    "ToolArguments",
    "CreateNoteArgs",
    "FindNotesArgs",
    "GetNoteContentArgs",
    "UpdateNoteArgs",
    "DeleteNoteArgs",
    "CreateCollectionArgs",
    "FindCollectionsArgs",
    "MoveNoteToCollectionArgs",
    "FindTemplatesArgs",
    "CreateTemplateArgs",
    "ApplyTemplateArgs",
    "FindAndReplaceArgs",
    "KnownToolCall",
    "UnknownToolCall",
    "ToolCallRequest",
    "KNOWN_TOOL_CALLS",
    "TOOL_NAMES",
    "parse_tool_call",
    "ToolInvocation",
    "ToolResult",
    "ModelResponse",
]
