"""Filesystem vault of notes, folders, and templates."""

from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path
import re
import uuid
from typing import Any, Dict, List, Optional, Union

import frontmatter

from ..models.note import Folder, Note, Template
from .config import AppConfig, get_config
from .interfaces import INoteStore, NoteNotFoundError, NoteStoreError

MAX_NOTE_BYTES = 1_048_576
ITEM_ID_PATTERN = re.compile(r"^[A-Za-z0-9][A-Za-z0-9_-]{0,127}$")

NOTES_DIR = "notes"
FOLDERS_DIR = "folders"
TEMPLATES_DIR = "templates"

DEFAULT_TEMPLATES: tuple[tuple[str, str], ...] = (
    (
        "Meeting Notes",
        "# Meeting Title\n\n**Date:** \n**Attendees:** \n\n## Agenda\n\n- \n\n"
        "## Discussion\n\n- \n\n## Action Items\n\n- ",
    ),
    (
        "Project Plan",
        "# Project: [Project Name]\n\n## Goals\n\n- \n\n## Timeline\n\n"
        "- **Phase 1:** \n- **Phase 2:** \n\n## Key Deliverables\n\n- ",
    ),
)


def validate_item_id(item_id: str) -> None:
    """Reject ids that could escape the vault directory."""
    if not isinstance(item_id, str) or not ITEM_ID_PATTERN.match(item_id):
        raise NoteStoreError(f"Invalid id: {item_id!r}", {"id": item_id})


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _validate_note_body(body: str) -> None:
    if len(body.encode("utf-8")) > MAX_NOTE_BYTES:
        raise NoteStoreError("Note exceeds 1 MiB limit")


def _as_datetime(value: Any) -> datetime:
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if isinstance(value, str) and value:
        return datetime.fromisoformat(value)
    return _utcnow()


class VaultNoteStore(INoteStore):
    """Markdown-with-frontmatter store, one file per item.

    Layout under the vault root::

        notes/<id>.md       frontmatter: title, tags, parent_id, created, updated
        folders/<id>.md     frontmatter: name, parent_id
        templates/<id>.md   frontmatter: title; body is the template content
    """

    def __init__(self, config: AppConfig | None = None, root: Path | None = None) -> None:
        self.config = config or get_config()
        self.root = (root or self.config.vault_path).resolve()
        for sub in (NOTES_DIR, FOLDERS_DIR, TEMPLATES_DIR):
            (self.root / sub).mkdir(parents=True, exist_ok=True)

    # ------------------------------------------------------------------
    # Paths and (de)serialization
    # ------------------------------------------------------------------

    def _path(self, kind: str, item_id: str) -> Path:
        validate_item_id(item_id)
        return self.root / kind / f"{item_id}.md"

    def _load_note(self, path: Path) -> Note:
        post = frontmatter.load(path)
        meta = dict(post.metadata or {})
        return Note(
            id=path.stem,
            title=str(meta.get("title") or path.stem),
            content=post.content or "",
            tags=meta.get("tags") or [],
            parent_id=meta.get("parent_id"),
            is_favorite=bool(meta.get("is_favorite", False)),
            created_at=_as_datetime(meta.get("created")),
            updated_at=_as_datetime(meta.get("updated")),
        )

    def _write_note(self, note: Note) -> None:
        _validate_note_body(note.content)
        post = frontmatter.Post(
            note.content,
            title=note.title,
            tags=list(note.tags),
            parent_id=note.parent_id,
            is_favorite=note.is_favorite,
            created=note.created_at.isoformat(timespec="seconds"),
            updated=note.updated_at.isoformat(timespec="seconds"),
        )
        self._path(NOTES_DIR, note.id).write_text(frontmatter.dumps(post), encoding="utf-8")

    def _load_folder(self, path: Path) -> Folder:
        meta = frontmatter.load(path).metadata or {}
        return Folder(id=path.stem, name=str(meta.get("name") or path.stem), parent_id=meta.get("parent_id"))

    def _write_folder(self, folder: Folder) -> None:
        post = frontmatter.Post("", name=folder.name, parent_id=folder.parent_id)
        self._path(FOLDERS_DIR, folder.id).write_text(frontmatter.dumps(post), encoding="utf-8")

    def _load_template(self, path: Path) -> Template:
        post = frontmatter.load(path)
        return Template(
            id=path.stem,
            title=str((post.metadata or {}).get("title") or path.stem),
            content=post.content or "",
        )

    # ------------------------------------------------------------------
    # Notes and folders
    # ------------------------------------------------------------------

    def find_by_id(self, item_id: str) -> Optional[Union[Note, Folder]]:
        """Return the note or folder with this id, or None."""
        note_path = self._path(NOTES_DIR, item_id)
        if note_path.exists():
            return self._load_note(note_path)
        folder_path = self._path(FOLDERS_DIR, item_id)
        if folder_path.exists():
            return self._load_folder(folder_path)
        return None

    def get_note(self, note_id: str) -> Note:
        item = self.find_by_id(note_id)
        if not isinstance(item, Note):
            raise NoteNotFoundError("Note not found.", {"id": note_id})
        return item

    def get_folder(self, folder_id: str) -> Folder:
        item = self.find_by_id(folder_id)
        if not isinstance(item, Folder):
            raise NoteNotFoundError("Folder not found.", {"id": folder_id})
        return item

    def create_note(self, title: str, content: str = "", parent_id: Optional[str] = None) -> Note:
        if parent_id is not None:
            self.get_folder(parent_id)
        now = _utcnow()
        note = Note(
            id=str(uuid.uuid4()),
            title=title,
            content=content,
            parent_id=parent_id,
            created_at=now,
            updated_at=now,
        )
        self._write_note(note)
        return note

    def create_folder(self, name: str, parent_id: Optional[str] = None) -> Folder:
        if parent_id is not None:
            self.get_folder(parent_id)
        folder = Folder(id=str(uuid.uuid4()), name=name, parent_id=parent_id)
        self._write_folder(folder)
        return folder

    def update_note(
        self, note_id: str, *, title: Optional[str] = None, content: Optional[str] = None
    ) -> Note:
        note = self.get_note(note_id)
        changes: Dict[str, Any] = {"updated_at": _utcnow()}
        if title is not None:
            changes["title"] = title
        if content is not None:
            changes["content"] = content
        updated = note.model_copy(update=changes)
        self._write_note(updated)
        return updated

    def delete(self, item_id: str) -> None:
        """Delete a note or an empty folder."""
        note_path = self._path(NOTES_DIR, item_id)
        if note_path.exists():
            note_path.unlink()
            return
        folder_path = self._path(FOLDERS_DIR, item_id)
        if not folder_path.exists():
            raise NoteNotFoundError("Item not found.", {"id": item_id})
        if any(n.parent_id == item_id for n in self.list_notes()) or any(
            f.parent_id == item_id for f in self.list_folders()
        ):
            raise NoteStoreError("Folder is not empty.", {"id": item_id})
        folder_path.unlink()

    def list_notes(self) -> List[Note]:
        notes = [self._load_note(p) for p in (self.root / NOTES_DIR).glob("*.md")]
        return sorted(notes, key=lambda n: (n.created_at, n.id))

    def list_folders(self) -> List[Folder]:
        folders = [self._load_folder(p) for p in (self.root / FOLDERS_DIR).glob("*.md")]
        return sorted(folders, key=lambda f: (f.name.lower(), f.id))

    def move(self, item_id: str, new_parent_id: Optional[str]) -> None:
        """Re-parent a note or folder; None moves it to the root."""
        item = self.find_by_id(item_id)
        if item is None:
            raise NoteNotFoundError("Item not found.", {"id": item_id})
        if new_parent_id is not None:
            self.get_folder(new_parent_id)
        if isinstance(item, Note):
            self._write_note(item.model_copy(update={"parent_id": new_parent_id, "updated_at": _utcnow()}))
            return
        # Refuse to move a folder into itself or one of its descendants.
        cursor = new_parent_id
        while cursor is not None:
            if cursor == item_id:
                raise NoteStoreError("Cannot move a folder into itself.", {"id": item_id})
            cursor = self.get_folder(cursor).parent_id
        self._write_folder(item.model_copy(update={"parent_id": new_parent_id}))

    # ------------------------------------------------------------------
    # Templates
    # ------------------------------------------------------------------

    def list_templates(self) -> List[Template]:
        templates = [self._load_template(p) for p in (self.root / TEMPLATES_DIR).glob("*.md")]
        return sorted(templates, key=lambda t: (t.title.lower(), t.id))

    def get_template(self, template_id: str) -> Optional[Template]:
        path = self._path(TEMPLATES_DIR, template_id)
        return self._load_template(path) if path.exists() else None

    def create_template(self, title: str, content: str = "") -> Template:
        template = Template(id=str(uuid.uuid4()), title=title, content=content)
        post = frontmatter.Post(template.content, title=template.title)
        self._path(TEMPLATES_DIR, template.id).write_text(frontmatter.dumps(post), encoding="utf-8")
        return template

    def seed_default_templates(self) -> List[Template]:
        """Create the default templates when the vault has none."""
        if self.list_templates():
            return []
        return [self.create_template(title, content) for title, content in DEFAULT_TEMPLATES]


__all__ = [
    "VaultNoteStore",
    "validate_item_id",
    "DEFAULT_TEMPLATES",
]
