from pathlib import Path

import pytest

from backend.src.services import config as config_module


@pytest.fixture(autouse=True)
def restore_config_cache():
    """
    Ensure configuration cache is cleared between tests.
    """
    config_module.reload_config()
    yield
    config_module.reload_config()


def test_get_config_allows_missing_api_key(monkeypatch, tmp_path: Path) -> None:
    monkeypatch.delenv("OPENROUTER_API_KEY", raising=False)
    monkeypatch.setenv("DATA_DIR", str(tmp_path))

    cfg = config_module.reload_config()

    assert cfg.openrouter_api_key is None
    assert cfg.data_dir == tmp_path.resolve()
    assert cfg.vault_path == tmp_path.resolve() / "vault"
    assert cfg.database_path == tmp_path.resolve() / "chat.db"


def test_blank_api_key_is_treated_as_unset(monkeypatch, tmp_path: Path) -> None:
    monkeypatch.setenv("DATA_DIR", str(tmp_path))
    monkeypatch.setenv("OPENROUTER_API_KEY", "   ")

    cfg = config_module.reload_config()

    assert cfg.openrouter_api_key is None


def test_defaults(monkeypatch, tmp_path: Path) -> None:
    for key in ("CHAT_HISTORY_LIMIT", "MAX_TOOL_ITERATIONS", "RETRIEVAL_LIMIT", "EXCERPT_CHARS"):
        monkeypatch.delenv(key, raising=False)
    monkeypatch.setenv("DATA_DIR", str(tmp_path))

    cfg = config_module.reload_config()

    assert cfg.history_limit == 100
    assert cfg.max_tool_iterations == 10
    assert cfg.retrieval_limit == 5
    assert cfg.excerpt_chars == 2000


def test_numeric_settings_read_from_environment(monkeypatch, tmp_path: Path) -> None:
    monkeypatch.setenv("DATA_DIR", str(tmp_path))
    monkeypatch.setenv("MAX_TOOL_ITERATIONS", "3")
    monkeypatch.setenv("CHAT_HISTORY_LIMIT", "25")

    cfg = config_module.reload_config()

    assert cfg.max_tool_iterations == 3
    assert cfg.history_limit == 25


def test_get_config_rejects_zero_tool_iterations(monkeypatch, tmp_path: Path) -> None:
    monkeypatch.setenv("DATA_DIR", str(tmp_path))
    monkeypatch.setenv("MAX_TOOL_ITERATIONS", "0")

    with pytest.raises(ValueError):
        config_module.reload_config()


def test_data_dir_is_created(monkeypatch, tmp_path: Path) -> None:
    target = tmp_path / "nested" / "data"
    monkeypatch.setenv("DATA_DIR", str(target))

    cfg = config_module.reload_config()

    assert cfg.data_dir.is_dir()


def test_config_is_frozen(tmp_path: Path) -> None:
    cfg = config_module.AppConfig(data_dir=tmp_path)

    with pytest.raises(Exception):
        cfg.history_limit = 5
