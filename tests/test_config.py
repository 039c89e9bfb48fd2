"""Tests for environment-driven settings."""

from __future__ import annotations

from pathlib import Path

import pytest

from framework.config import EngineSettings, RestartPolicy
from framework.errors import ConfigurationError


def test_defaults_match_the_standard_board(monkeypatch) -> None:
    for name in ("OMOK_BOARD_SIZE", "OMOK_WIN_LENGTH", "OMOK_RESTART_POLICY", "OMOK_STORE_PATH", "OMOK_LOG_LEVEL"):
        monkeypatch.delenv(name, raising=False)

    settings = EngineSettings.from_env()

    assert settings.board_size == 10
    assert settings.win_length == 5
    assert settings.room_code_length == 4
    assert settings.restart_policy is RestartPolicy.PARTICIPANTS
    assert settings.store_path is None
    assert settings.log_level == "INFO"


def test_environment_overrides(monkeypatch, tmp_path: Path) -> None:
    monkeypatch.setenv("OMOK_BOARD_SIZE", "15")
    monkeypatch.setenv("OMOK_WIN_LENGTH", "6")
    monkeypatch.setenv("OMOK_RESTART_POLICY", "HOST")
    monkeypatch.setenv("OMOK_STORE_PATH", str(tmp_path / "store.json"))
    monkeypatch.setenv("OMOK_EVENT_LOG_DIR", str(tmp_path / "events"))
    monkeypatch.setenv("OMOK_LOG_LEVEL", "debug")

    settings = EngineSettings.from_env()

    assert (settings.board_size, settings.win_length) == (15, 6)
    assert settings.restart_policy is RestartPolicy.HOST
    assert settings.store_path == tmp_path / "store.json"
    assert settings.event_log_dir == tmp_path / "events"
    assert settings.log_level == "DEBUG"


@pytest.mark.parametrize(
    ("name", "value"),
    [
        ("OMOK_BOARD_SIZE", "ten"),
        ("OMOK_ROOM_CODE_LENGTH", "0"),
        ("OMOK_RESTART_POLICY", "anyone"),
    ],
)
def test_invalid_values_raise_configuration_error(monkeypatch, name: str, value: str) -> None:
    monkeypatch.setenv(name, value)

    with pytest.raises(ConfigurationError):
        EngineSettings.from_env()


def test_win_length_cannot_exceed_board_size() -> None:
    with pytest.raises(ConfigurationError):
        EngineSettings(board_size=4, win_length=5)
