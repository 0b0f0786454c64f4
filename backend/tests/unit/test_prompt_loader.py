"""Unit tests for PromptLoader service."""

from pathlib import Path

import pytest

from backend.src.services.prompt_loader import (
    DEFAULT_PROMPTS_DIR,
    INLINE_PROMPTS,
    PromptLoader,
    PromptLoaderError,
)


@pytest.fixture
def prompts_dir(tmp_path: Path) -> Path:
    """Create a temporary prompts directory with test templates."""
    prompts = tmp_path / "prompts"
    prompts.mkdir()

    chat_dir = prompts / "chat"
    chat_dir.mkdir()
    (chat_dir / "assistant.md").write_text("# Assistant\n\nTone: {{ tone or 'friendly' }}")

    copilot_dir = prompts / "copilot"
    copilot_dir.mkdir()
    (copilot_dir / "system.md").write_text("# Copilot\n\nUser: {{ user_name }}")

    return prompts


@pytest.fixture
def loader(prompts_dir: Path) -> PromptLoader:
    """Create a PromptLoader with the test prompts directory."""
    return PromptLoader(prompts_dir=prompts_dir)


class TestPromptLoaderInit:
    """Tests for PromptLoader initialization."""

    def test_init_with_existing_directory(self, prompts_dir: Path) -> None:
        loader = PromptLoader(prompts_dir=prompts_dir)

        assert loader.prompts_dir == prompts_dir
        assert loader.env is not None

    def test_init_with_nonexistent_directory(self, tmp_path: Path) -> None:
        """Loader falls back to inline prompts when directory doesn't exist."""
        nonexistent = tmp_path / "nonexistent"
        loader = PromptLoader(prompts_dir=nonexistent)

        assert loader.env is None

    def test_default_prompts_dir_is_backend_prompts(self) -> None:
        assert DEFAULT_PROMPTS_DIR.name == "prompts"
        assert DEFAULT_PROMPTS_DIR.parent.name == "backend"


class TestPromptLoaderLoad:
    """Tests for PromptLoader.load() method."""

    def test_load_template_from_filesystem(self, loader: PromptLoader) -> None:
        result = loader.load("copilot/system.md", {"user_name": "Ada"})

        assert "# Copilot" in result
        assert "User: Ada" in result

    def test_load_template_with_default_values(self, loader: PromptLoader) -> None:
        result = loader.load("chat/assistant.md")

        assert "Tone: friendly" in result

    def test_load_missing_template_uses_inline_fallback(self, loader: PromptLoader) -> None:
        """chat/responder.md is not in the fixture dir but has an inline fallback."""
        result = loader.load("chat/responder.md")

        assert "customer service agent" in result

    def test_shipped_templates_match_inline_fallbacks(self) -> None:
        """Every shipped prompt renders the same text as its fallback."""
        shipped = PromptLoader()
        fallback = PromptLoader(prompts_dir=Path("/nonexistent/prompts"))

        for path in INLINE_PROMPTS:
            assert shipped.load(path).strip() == fallback.load(path).strip()


class TestPromptLoaderInlineFallback:
    """Tests for inline prompt fallback behavior."""

    @pytest.mark.parametrize(
        "path, phrase",
        [
            ("chat/assistant.md", "cite it by number"),
            ("chat/listing_copy.md", "copywriter"),
            ("copilot/system.md", "tools"),
        ],
    )
    def test_inline_fallback_provides_prompt(self, tmp_path: Path, path: str, phrase: str) -> None:
        loader = PromptLoader(prompts_dir=tmp_path / "nonexistent")

        assert phrase in loader.load(path)

    def test_inline_fallback_raises_for_unknown_path(self, tmp_path: Path) -> None:
        loader = PromptLoader(prompts_dir=tmp_path / "nonexistent")

        with pytest.raises(PromptLoaderError) as exc_info:
            loader.load("unknown/prompt.md", {})

        assert "Prompt not found" in str(exc_info.value)
        assert "unknown/prompt.md" in str(exc_info.value)

    def test_broken_template_raises(self, prompts_dir: Path) -> None:
        (prompts_dir / "chat" / "broken.md").write_text("{% if %}")
        loader = PromptLoader(prompts_dir=prompts_dir)

        with pytest.raises(PromptLoaderError):
            loader.load("chat/broken.md")


class TestPromptLoaderListAvailable:
    """Tests for PromptLoader.list_available() method."""

    def test_list_available_includes_filesystem_and_inline(self, loader: PromptLoader) -> None:
        available = loader.list_available()

        assert available["filesystem"] == ["chat/assistant.md", "copilot/system.md"]
        assert "chat/responder.md" in available["inline"]
        assert "copilot/system.md" in available["inline"]

    def test_list_available_with_nonexistent_dir(self, tmp_path: Path) -> None:
        loader = PromptLoader(prompts_dir=tmp_path / "nonexistent")
        available = loader.list_available()

        assert available["filesystem"] == []
        assert len(available["inline"]) == len(INLINE_PROMPTS)


class TestPromptLoaderHotReload:
    """Tests for hot-reload behavior."""

    def test_template_changes_are_reflected_with_new_loader(self, prompts_dir: Path) -> None:
        loader1 = PromptLoader(prompts_dir=prompts_dir)
        assert "User: v1" in loader1.load("copilot/system.md", {"user_name": "v1"})

        (prompts_dir / "copilot" / "system.md").write_text("# Updated\n\nVersion: {{ user_name }}")

        loader2 = PromptLoader(prompts_dir=prompts_dir)
        result = loader2.load("copilot/system.md", {"user_name": "v2"})
        assert "Version: v2" in result
        assert "Updated" in result
