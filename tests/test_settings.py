from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

import pytest

from inkreader import ReaderSettings, ReplayPolicy, configure_logging
from inkreader.settings import normalise_log_level


def test_reader_settings_from_env(monkeypatch: Any, tmp_path: Path) -> None:
    story_path = tmp_path / "story.json"

    monkeypatch.setenv("INKREADER_LOG_LEVEL", "debug")
    monkeypatch.setenv("INKREADER_REPLAY_POLICY", "strict")
    monkeypatch.setenv("INKREADER_EDIT_DEBOUNCE_SECONDS", "1.5")
    monkeypatch.setenv("INKREADER_MAX_SESSIONS", "8")
    monkeypatch.setenv("INKREADER_STORY_PATH", str(story_path))

    settings = ReaderSettings.from_env()

    assert settings.log_level == "DEBUG"
    assert settings.replay_policy is ReplayPolicy.STRICT
    assert settings.edit_debounce_seconds == 1.5
    assert settings.max_sessions == 8
    assert settings.story_path == story_path


def test_reader_settings_ignore_blank_values() -> None:
    settings = ReaderSettings.from_env(
        {
            "INKREADER_LOG_LEVEL": "  ",
            "INKREADER_REPLAY_POLICY": "",
            "INKREADER_EDIT_DEBOUNCE_SECONDS": " ",
            "INKREADER_MAX_SESSIONS": "",
            "INKREADER_STORY_PATH": "   ",
        }
    )

    assert settings == ReaderSettings()


def test_reader_settings_expand_user_paths() -> None:
    settings = ReaderSettings.from_env({"INKREADER_STORY_PATH": "~/story.json"})

    assert settings.story_path == Path("~/story.json").expanduser()


@pytest.mark.parametrize(
    "name, value",
    [
        ("INKREADER_LOG_LEVEL", "chatty"),
        ("INKREADER_REPLAY_POLICY", "guess"),
        ("INKREADER_EDIT_DEBOUNCE_SECONDS", "soon"),
        ("INKREADER_EDIT_DEBOUNCE_SECONDS", "-1"),
        ("INKREADER_MAX_SESSIONS", "0"),
        ("INKREADER_MAX_SESSIONS", "many"),
    ],
)
def test_reader_settings_reject_invalid_values(name: str, value: str) -> None:
    with pytest.raises(ValueError):
        ReaderSettings.from_env({name: value})


def test_normalise_log_level() -> None:
    assert normalise_log_level(" info ") == "INFO"
    with pytest.raises(ValueError):
        normalise_log_level("verbose")


def test_configure_logging_sets_root_level() -> None:
    root = logging.getLogger()
    previous = root.level
    try:
        configure_logging(ReaderSettings(log_level="ERROR"))
        assert root.level == logging.ERROR
    finally:
        root.setLevel(previous)
