from __future__ import annotations

from pathlib import Path

import pytest
from pydantic import ValidationError

from stint_mcp.config import StintSettings, get_settings


@pytest.fixture(autouse=True)
def clear_settings_cache():
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


def test_defaults(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.chdir(tmp_path)

    settings = StintSettings()

    assert settings.progress_path == Path(".stint/progress.json")
    assert settings.policy_path is None
    assert settings.executor_command == ()
    assert settings.commit_enabled is True
    assert settings.log_level == "INFO"
    assert settings.lock_path == Path(".stint/progress.json.lock")


def test_environment_overrides(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("STINT_PROGRESS_PATH", str(tmp_path / "state.json"))
    monkeypatch.setenv("STINT_EXECUTOR_CMD", "agent-run --model 'big model'")
    monkeypatch.setenv("STINT_VERIFY_CMD", "make check")
    monkeypatch.setenv("STINT_COMMIT_ENABLED", "false")
    monkeypatch.setenv("STINT_LOG_LEVEL", "debug")

    settings = StintSettings()

    assert settings.progress_path == tmp_path / "state.json"
    assert settings.executor_command == ("agent-run", "--model", "big model")
    assert settings.verify_command == ("make", "check")
    assert settings.commit_enabled is False
    assert settings.log_level == "DEBUG"


def test_invalid_log_level(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("STINT_LOG_LEVEL", "chatty")

    with pytest.raises(ValidationError):
        StintSettings()


def test_dotenv_file_is_read(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.chdir(tmp_path)
    (tmp_path / ".env").write_text("STINT_POLICY_PATH=policy.yaml\n", encoding="utf-8")

    assert StintSettings().policy_path == Path("policy.yaml")


def test_get_settings_resolves_paths(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("STINT_PROGRESS_PATH", "state/progress.json")

    settings = get_settings()

    assert settings.progress_path == (tmp_path / "state" / "progress.json").resolve()
    assert settings.repo_path == tmp_path.resolve()
    assert get_settings() is settings
