"""Unit tests for ToolRegistry."""

from datetime import datetime, timezone
from pathlib import Path
from unittest.mock import MagicMock

import pytest

from backend.src.models.note import Note
from backend.src.models.tools import TOOL_NAMES
from backend.src.services.config import AppConfig
from backend.src.services.interfaces import INoteStore, NoteStoreError
from backend.src.services.tool_registry import ToolError, ToolRegistry
from backend.src.services.vault import VaultNoteStore


class FlakyStore(VaultNoteStore):
    """Vault whose update_note fails on chosen call numbers (1-based)."""

    def __init__(self, *args, fail_calls=(), **kwargs):
        super().__init__(*args, **kwargs)
        self.fail_calls = set(fail_calls)
        self.update_calls = 0

    def update_note(self, note_id, *, title=None, content=None):
        self.update_calls += 1
        if self.update_calls in self.fail_calls:
            raise NoteStoreError("disk full", {"id": note_id})
        return super().update_note(note_id, title=title, content=content)


@pytest.fixture
def config(tmp_path: Path) -> AppConfig:
    return AppConfig(data_dir=tmp_path / "data")


@pytest.fixture
def store(config: AppConfig) -> VaultNoteStore:
    return VaultNoteStore(config=config)


@pytest.fixture
def registry(store: VaultNoteStore) -> ToolRegistry:
    return ToolRegistry(store)


class TestToolRegistrySchemas:
    """Tests for get_tool_schemas()."""

    def test_every_tool_has_a_schema(self, registry: ToolRegistry) -> None:
        schemas = registry.get_tool_schemas()

        names = [schema["function"]["name"] for schema in schemas]
        assert names == list(TOOL_NAMES)
        assert set(names) == set(registry.tool_names)
        assert all(schema["type"] == "function" for schema in schemas)

    def test_schema_uses_camel_case_arguments(self, registry: ToolRegistry) -> None:
        schemas = {s["function"]["name"]: s["function"] for s in registry.get_tool_schemas()}

        move = schemas["moveNoteToCollection"]
        assert set(move["parameters"]["properties"]) == {"noteId", "collectionId"}
        assert "noteId" in move["parameters"]["required"]
        assert move["description"]


class TestToolRegistryExecute:
    """Tests for execute() dispatch and error mapping."""

    @pytest.mark.asyncio
    async def test_unknown_tool(self, registry: ToolRegistry) -> None:
        with pytest.raises(ToolError) as exc_info:
            await registry.execute("frobnicate", {})

        assert exc_info.value.message == "Unknown tool: frobnicate"

    @pytest.mark.asyncio
    async def test_invalid_arguments(self, registry: ToolRegistry) -> None:
        with pytest.raises(ToolError) as exc_info:
            await registry.execute("getNoteContent", {})

        assert exc_info.value.message.startswith("Invalid arguments")

    @pytest.mark.asyncio
    async def test_update_without_fields(self, registry: ToolRegistry, store) -> None:
        note = store.create_note("Draft")

        with pytest.raises(ToolError) as exc_info:
            await registry.execute("updateNote", {"noteId": note.id})

        assert "No fields to update were provided." in exc_info.value.message

    @pytest.mark.asyncio
    async def test_missing_parent_folder(self, registry: ToolRegistry) -> None:
        with pytest.raises(ToolError) as exc_info:
            await registry.execute("createNote", {"title": "x", "parentId": "missing"})

        assert exc_info.value.message == "Folder not found."

    @pytest.mark.asyncio
    async def test_store_error_becomes_tool_error(self, registry: ToolRegistry, store) -> None:
        note = store.create_note("Small")

        with pytest.raises(ToolError) as exc_info:
            await registry.execute(
                "updateNote", {"noteId": note.id, "content": "x" * (1_048_576 + 1)}
            )

        assert exc_info.value.message == "Note exceeds 1 MiB limit"
        assert exc_info.value.details["tool"] == "updateNote"

    @pytest.mark.asyncio
    async def test_any_store_error_becomes_tool_error(self) -> None:
        now = datetime(2025, 1, 1, tzinfo=timezone.utc)
        store = MagicMock(spec=INoteStore)
        store.find_by_id.return_value = Note(
            id="n1", title="Locked", content="", created_at=now, updated_at=now
        )
        store.delete.side_effect = NoteStoreError("Note is locked", {"id": "n1"})

        with pytest.raises(ToolError) as exc_info:
            await ToolRegistry(store).execute("deleteNote", {"noteId": "n1"})

        assert exc_info.value.message == "Note is locked"
        assert exc_info.value.details == {"tool": "deleteNote", "id": "n1"}


class TestNoteTools:
    @pytest.mark.asyncio
    async def test_create_note(self, registry: ToolRegistry, store) -> None:
        result = await registry.execute("createNote", {"title": "Groceries", "content": "- milk"})

        assert result["success"] is True
        note = store.find_by_id(result["noteId"])
        assert note.title == "Groceries"
        assert note.content == "- milk"

    @pytest.mark.asyncio
    async def test_create_note_default_title(self, registry: ToolRegistry, store) -> None:
        result = await registry.execute("createNote", {})

        assert store.find_by_id(result["noteId"]).title == "Untitled Note"

    @pytest.mark.asyncio
    async def test_find_notes_is_case_insensitive(self, registry: ToolRegistry, store) -> None:
        match = store.create_note("Weekly Groceries")
        store.create_note("Work Plan")

        result = await registry.execute("findNotes", {"query": "grocer"})

        assert result == {"success": True, "notes": [{"id": match.id, "title": "Weekly Groceries"}]}

    @pytest.mark.asyncio
    async def test_get_note_content(self, registry: ToolRegistry, store) -> None:
        note = store.create_note("Recipe", "Mix well.")

        result = await registry.execute("getNoteContent", {"noteId": note.id})

        assert result["title"] == "Recipe"
        assert result["content"] == "Mix well."

    @pytest.mark.asyncio
    async def test_get_missing_note(self, registry: ToolRegistry) -> None:
        with pytest.raises(ToolError, match="Note not found."):
            await registry.execute("getNoteContent", {"noteId": "missing"})

    @pytest.mark.asyncio
    async def test_update_note(self, registry: ToolRegistry, store) -> None:
        note = store.create_note("Draft", "old")

        result = await registry.execute("updateNote", {"noteId": note.id, "content": "new"})

        assert result == {"success": True, "noteId": note.id}
        assert store.find_by_id(note.id).content == "new"
        assert store.find_by_id(note.id).title == "Draft"

    @pytest.mark.asyncio
    async def test_delete_note(self, registry: ToolRegistry, store) -> None:
        note = store.create_note("Temp")

        result = await registry.execute("deleteNote", {"noteId": note.id})

        assert result == {"success": True, "noteId": note.id}
        assert store.find_by_id(note.id) is None


class TestFolderTools:
    @pytest.mark.asyncio
    async def test_create_and_find_collection(self, registry: ToolRegistry) -> None:
        created = await registry.execute("createCollection", {"name": "Recipes"})

        found = await registry.execute("findCollections", {"query": "recip"})

        assert found["collections"] == [{"id": created["collectionId"], "name": "Recipes"}]

    @pytest.mark.asyncio
    async def test_move_note_into_collection_and_back(self, registry: ToolRegistry, store) -> None:
        folder = store.create_folder("Work")
        note = store.create_note("Plan")

        await registry.execute("moveNoteToCollection", {"noteId": note.id, "collectionId": folder.id})
        assert store.find_by_id(note.id).parent_id == folder.id

        await registry.execute("moveNoteToCollection", {"noteId": note.id, "collectionId": "null"})
        assert store.find_by_id(note.id).parent_id is None

    @pytest.mark.asyncio
    async def test_move_to_missing_collection(self, registry: ToolRegistry, store) -> None:
        note = store.create_note("Plan")

        with pytest.raises(ToolError, match="Note or destination folder not found."):
            await registry.execute(
                "moveNoteToCollection", {"noteId": note.id, "collectionId": "missing"}
            )


class TestTemplateTools:
    @pytest.mark.asyncio
    async def test_create_and_find_template(self, registry: ToolRegistry) -> None:
        created = await registry.execute(
            "createTemplate", {"title": "Daily Log", "content": "## Today"}
        )

        found = await registry.execute("findTemplates", {"query": "daily"})

        assert found["templates"] == [{"id": created["templateId"], "title": "Daily Log"}]

    @pytest.mark.asyncio
    async def test_apply_template_to_existing_note(self, registry: ToolRegistry, store) -> None:
        template = store.create_template("Meeting", "## Agenda")
        note = store.create_note("Standup", "scratch")

        result = await registry.execute(
            "applyTemplate", {"templateId": template.id, "noteId": note.id}
        )

        assert result == {"success": True, "noteId": note.id, "created": False}
        assert store.find_by_id(note.id).content == "## Agenda"

    @pytest.mark.asyncio
    async def test_apply_template_creates_note(self, registry: ToolRegistry, store) -> None:
        template = store.create_template("Meeting", "## Agenda")

        result = await registry.execute("applyTemplate", {"templateId": template.id})

        note = store.find_by_id(result["noteId"])
        assert result["created"] is True
        assert note.title == "Meeting"
        assert note.content == "## Agenda"

    @pytest.mark.asyncio
    async def test_apply_missing_template(self, registry: ToolRegistry) -> None:
        with pytest.raises(ToolError, match="Template not found."):
            await registry.execute("applyTemplate", {"templateId": "missing"})


class TestFindAndReplace:
    @pytest.mark.asyncio
    async def test_updates_only_matching_notes(self, registry: ToolRegistry, store) -> None:
        matching = [store.create_note(f"M{i}", f"call ACME about order {i}") for i in range(3)]
        others = [store.create_note(f"O{i}", "nothing to see") for i in range(2)]

        result = await registry.execute("findAndReplace", {"find": "acme", "replace": "Globex"})

        assert result == {"success": True, "notesUpdated": 3}
        for note in matching:
            assert "Globex" in store.find_by_id(note.id).content
        for note in others:
            assert store.find_by_id(note.id).content == "nothing to see"

    @pytest.mark.asyncio
    async def test_case_sensitive(self, registry: ToolRegistry, store) -> None:
        note = store.create_note("N", "Cat cat")

        result = await registry.execute(
            "findAndReplace", {"find": "cat", "replace": "dog", "caseSensitive": True}
        )

        assert result["notesUpdated"] == 1
        assert store.find_by_id(note.id).content == "Cat dog"

    @pytest.mark.asyncio
    async def test_group_references(self, registry: ToolRegistry, store) -> None:
        note = store.create_note("N", "2024-01-31")

        await registry.execute(
            "findAndReplace", {"find": r"(\d+)-(\d+)-(\d+)", "replace": r"\3/\2/\1"}
        )

        assert store.find_by_id(note.id).content == "31/01/2024"

    @pytest.mark.asyncio
    async def test_invalid_regex(self, registry: ToolRegistry, store) -> None:
        store.create_note("N", "text")

        with pytest.raises(ToolError, match="Invalid regular expression"):
            await registry.execute("findAndReplace", {"find": "(", "replace": "x"})

    @pytest.mark.asyncio
    async def test_failure_rolls_back_earlier_updates(self, config: AppConfig) -> None:
        store = FlakyStore(config=config, fail_calls={3})
        notes = [store.create_note(f"N{i}", f"foo {i}") for i in range(3)]
        registry = ToolRegistry(store)

        with pytest.raises(ToolError) as exc_info:
            await registry.execute("findAndReplace", {"find": "foo", "replace": "bar"})

        assert "Rolled back 2" in exc_info.value.message
        for note in notes:
            assert store.find_by_id(note.id).content == note.content

    @pytest.mark.asyncio
    async def test_failure_reports_notes_not_restored(self, config: AppConfig) -> None:
        store = FlakyStore(config=config, fail_calls={3, 4})
        for i in range(3):
            store.create_note(f"N{i}", f"foo {i}")
        ordered = store.list_notes()
        registry = ToolRegistry(store)

        with pytest.raises(ToolError) as exc_info:
            await registry.execute("findAndReplace", {"find": "foo", "replace": "bar"})

        # Call 4 is the rollback of the second applied note.
        assert exc_info.value.details["updatedNoteIds"] == [ordered[1].id]
        assert ordered[1].id in exc_info.value.message
