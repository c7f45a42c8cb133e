"""Environment-driven configuration for the reader, CLI and HTTP service."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping

from .navigation import ReplayPolicy

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def _normalise_path(value: str | None) -> Path | None:
    if value is None:
        return None

    trimmed = value.strip()
    if not trimmed:
        return None

    return Path(trimmed).expanduser()


def _normalise_string(value: str | None, *, default: str) -> str:
    if value is None:
        return default

    trimmed = value.strip()
    return trimmed or default


def normalise_log_level(value: str) -> str:
    """Return the canonical name of a ``logging`` level or raise ``ValueError``."""

    level = value.strip().upper()
    if not isinstance(logging.getLevelName(level), int):
        raise ValueError(f"Unknown log level '{value}'.")
    return level


@dataclass(frozen=True)
class ReaderSettings:
    """Settings shared by every entry point.

    Values are read from ``INKREADER_*`` environment variables. Empty strings
    are treated as if the variable was unset and paths are expanded to
    support ``~`` prefixes.
    """

    log_level: str = "WARNING"
    replay_policy: ReplayPolicy = ReplayPolicy.FIRST_CHOICE
    edit_debounce_seconds: float = 0.5
    max_sessions: int = 256
    story_path: Path | None = None

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "ReaderSettings":
        """Return settings populated from ``environ``.

        Args:
            environ: Optional mapping of environment variables. When omitted,
                :data:`os.environ` is used.

        Raises:
            ValueError: If a variable holds a value that cannot be used.
        """

        source = environ if environ is not None else os.environ

        log_level = normalise_log_level(
            _normalise_string(source.get("INKREADER_LOG_LEVEL"), default="WARNING")
        )
        replay_policy = ReplayPolicy.parse(
            _normalise_string(
                source.get("INKREADER_REPLAY_POLICY"),
                default=ReplayPolicy.FIRST_CHOICE.value,
            )
        )

        edit_debounce_seconds = 0.5
        debounce_raw = source.get("INKREADER_EDIT_DEBOUNCE_SECONDS")
        if debounce_raw is not None and debounce_raw.strip():
            try:
                edit_debounce_seconds = float(debounce_raw.strip())
            except ValueError as exc:
                raise ValueError(
                    "INKREADER_EDIT_DEBOUNCE_SECONDS must be a number of seconds."
                ) from exc
            if edit_debounce_seconds < 0:
                raise ValueError("INKREADER_EDIT_DEBOUNCE_SECONDS cannot be negative.")

        max_sessions = 256
        sessions_raw = source.get("INKREADER_MAX_SESSIONS")
        if sessions_raw is not None and sessions_raw.strip():
            try:
                max_sessions = int(sessions_raw.strip())
            except ValueError as exc:
                raise ValueError("INKREADER_MAX_SESSIONS must be a positive integer.") from exc
            if max_sessions < 1:
                raise ValueError("INKREADER_MAX_SESSIONS must be greater than zero.")

        return cls(
            log_level=log_level,
            replay_policy=replay_policy,
            edit_debounce_seconds=edit_debounce_seconds,
            max_sessions=max_sessions,
            story_path=_normalise_path(source.get("INKREADER_STORY_PATH")),
        )


def configure_logging(settings: ReaderSettings) -> None:
    """Apply ``settings.log_level`` to the root logger."""

    logging.basicConfig(level=settings.log_level, format=LOG_FORMAT)
    logging.getLogger().setLevel(settings.log_level)


__all__ = ["LOG_FORMAT", "ReaderSettings", "configure_logging", "normalise_log_level"]
