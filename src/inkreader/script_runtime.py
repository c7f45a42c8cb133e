"""Live script runtimes that step through a story one passage at a time."""

from __future__ import annotations

import json
import logging
from abc import ABC, abstractmethod
from typing import Any, Mapping, Tuple

from .story_graph import find_start_node
from .story_model import CustomStory, StoryChoice

logger = logging.getLogger(__name__)

STATE_VERSION = 1


class RuntimeStateError(ValueError):
    """Raised when a runtime cannot perform a step or restore a state token."""


class ChoiceUnavailableError(IndexError):
    """Raised when a choice index does not name a selectable choice."""


class ScriptRuntime(ABC):
    """Sequential story runtime that cannot seek to arbitrary positions.

    Callers alternate :meth:`continue_story` while :attr:`can_continue` is
    true with :meth:`choose_choice_index` at decision points. The whole
    position can be captured with :meth:`save_state` and restored later.
    """

    @property
    @abstractmethod
    def can_continue(self) -> bool:
        """Return ``True`` when another passage can be emitted without a choice."""

    @property
    @abstractmethod
    def current_text(self) -> str:
        """Text of the passage emitted last."""

    @property
    @abstractmethod
    def current_choices(self) -> Tuple[StoryChoice, ...]:
        """Choices offered at the current decision point."""

    @property
    @abstractmethod
    def current_node(self) -> str | None:
        """Identifier of the passage emitted last, if the runtime exposes one."""

    @abstractmethod
    def continue_story(self) -> str:
        """Emit the next passage and return its text."""

    @abstractmethod
    def choose_choice_index(self, index: int) -> None:
        """Commit to the choice at ``index``."""

    @abstractmethod
    def save_state(self) -> str:
        """Serialise the runtime position into an opaque token."""

    @abstractmethod
    def load_state(self, token: str) -> None:
        """Restore a position produced by :meth:`save_state`."""

    @abstractmethod
    def reset_state(self) -> None:
        """Rewind to the very beginning of the story."""


class CompiledStoryRuntime(ScriptRuntime):
    """Execute a normalised story passage by passage.

    A node whose only choice is the synthesised "Continue" keeps the runtime
    continuable; any other choices become a decision point.
    """

    def __init__(self, story: CustomStory, *, start_node: str | None = None) -> None:
        start = start_node or find_start_node(story)
        if start is None or start not in story:
            raise ValueError(f"Start node {start!r} is not part of the story.")
        self._story = story
        self._start = start
        self._current: str | None = None
        self._pending: str | None = start

    @property
    def start_node(self) -> str:
        return self._start

    @property
    def can_continue(self) -> bool:
        return self._pending is not None

    @property
    def current_text(self) -> str:
        if self._current is None:
            return ""
        return self._story[self._current].text

    @property
    def current_choices(self) -> Tuple[StoryChoice, ...]:
        if self._current is None or self._pending is not None:
            return ()
        node = self._story[self._current]
        if node.has_auto_continue:
            return ()
        return node.choices

    @property
    def current_node(self) -> str | None:
        return self._current

    def continue_story(self) -> str:
        if self._pending is None:
            raise RuntimeStateError("The story cannot continue from here.")

        node_id = self._pending
        node = self._story.get(node_id)
        if node is None:
            raise RuntimeStateError(f"Passage {node_id!r} does not exist.")

        self._current = node_id
        self._pending = None
        if node.has_auto_continue:
            target = node.choices[0].next_node
            if target in self._story:
                self._pending = target
            else:
                logger.debug("Passage %r continues into missing node %r", node_id, target)
        return node.text

    def choose_choice_index(self, index: int) -> None:
        choices = self.current_choices
        if not 0 <= index < len(choices):
            raise ChoiceUnavailableError(
                f"Choice {index} is unavailable; {len(choices)} choice(s) offered."
            )
        target = choices[index].next_node
        if target not in self._story:
            raise ChoiceUnavailableError(f"Choice {index} leads to missing node {target!r}.")
        self._pending = target

    def save_state(self) -> str:
        return json.dumps(
            {"version": STATE_VERSION, "current": self._current, "pending": self._pending},
            sort_keys=True,
        )

    def load_state(self, token: str) -> None:
        payload = self._decode_state(token)
        self._current = payload["current"]
        self._pending = payload["pending"]

    def reset_state(self) -> None:
        self._current = None
        self._pending = self._start

    def _decode_state(self, token: str) -> Mapping[str, Any]:
        try:
            payload = json.loads(token)
        except (TypeError, json.JSONDecodeError) as exc:
            raise RuntimeStateError(f"Runtime state token is not valid JSON: {exc}") from exc

        if not isinstance(payload, Mapping):
            raise RuntimeStateError("Runtime state token must encode an object.")
        if payload.get("version") != STATE_VERSION:
            raise RuntimeStateError(
                f"Unsupported runtime state version {payload.get('version')!r}."
            )
        for key in ("current", "pending"):
            if key not in payload:
                raise RuntimeStateError(f"Runtime state token is missing '{key}'.")
            value = payload[key]
            if value is not None and (not isinstance(value, str) or value not in self._story):
                raise RuntimeStateError(f"Runtime state refers to unknown passage {value!r}.")
        return payload


__all__ = [
    "ChoiceUnavailableError",
    "CompiledStoryRuntime",
    "RuntimeStateError",
    "STATE_VERSION",
    "ScriptRuntime",
]
