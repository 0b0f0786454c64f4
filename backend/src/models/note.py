"""Note, folder, and template Pydantic models."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class Note(BaseModel):
    """Complete note with content and metadata."""

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "id": "4f1c2a9e-8d7b-4c61-9a43-2f0b6f1d2e11",
                "title": "Groceries",
                "content": "- milk\n- eggs",
                "tags": ["home"],
                "parent_id": None,
                "is_favorite": False,
                "created_at": "2025-01-10T09:00:00Z",
                "updated_at": "2025-01-15T14:30:00Z",
            }
        }
    )

    id: str = Field(..., min_length=1, description="Stable note identifier")
    title: str = Field(..., description="Display title")
    content: str = Field("", description="Markdown content")
    tags: list[str] = Field(default_factory=list, description="Free-form tags")
    parent_id: Optional[str] = Field(None, description="Containing folder id (None = root)")
    is_favorite: bool = False
    created_at: datetime = Field(..., description="Creation timestamp")
    updated_at: datetime = Field(..., description="Last update timestamp")

    @field_validator("tags", mode="before")
    @classmethod
    def _coerce_tags(cls, value):
        if value is None:
            return []
        if not isinstance(value, list) or not all(isinstance(tag, str) for tag in value):
            raise ValueError("Field 'tags' must be an array of strings")
        return value


class Folder(BaseModel):
    """A folder (collection) that can contain notes and other folders."""

    id: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1)
    parent_id: Optional[str] = None


class Template(BaseModel):
    """Reusable note body."""

    id: str = Field(..., min_length=1)
    title: str = Field(..., min_length=1)
    content: str = ""


class NoteSummary(BaseModel):
    """Lightweight representation used for listings and grounding sources."""

    id: str
    title: str

    @classmethod
    def from_note(cls, note: Note) -> "NoteSummary":
        return cls(id=note.id, title=note.title)


__all__ = ["Note", "Folder", "Template", "NoteSummary"]
