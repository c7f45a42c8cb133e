"""Shared navigation state and the strategy interface both backends implement."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, ClassVar, Dict, Generic, Tuple, TypeVar

from .story_model import CustomStory, NodeMappings, StoryChoice

logger = logging.getLogger(__name__)

STORY_BEGINS_PLACEHOLDER = "Story begins..."

SnapshotT = TypeVar("SnapshotT")


class ReplayPolicy(str, Enum):
    """How replay-based page jumps resolve decision points on the way."""

    FIRST_CHOICE = "first-choice"
    STRICT = "strict"

    @classmethod
    def parse(cls, value: str) -> "ReplayPolicy":
        normalised = value.strip().lower().replace("_", "-")
        for policy in cls:
            if policy.value == normalised:
                return policy
        allowed = ", ".join(policy.value for policy in cls)
        raise ValueError(f"Unknown replay policy '{value}'. Expected one of: {allowed}.")


@dataclass(frozen=True)
class NavigationState(Generic[SnapshotT]):
    """Everything the reader sees, replaced wholesale by each transition."""

    node: str | None
    page: int
    total_pages: int
    text: str = ""
    choices: Tuple[StoryChoice, ...] = ()
    can_continue: bool = False
    history: Tuple[SnapshotT, ...] = field(default_factory=tuple)

    @property
    def can_go_back(self) -> bool:
        return bool(self.history)

    def to_payload(self) -> Dict[str, Any]:
        return {
            "node": self.node,
            "page": self.page,
            "totalPages": self.total_pages,
            "text": self.text,
            "choices": [choice.to_payload() for choice in self.choices],
            "canContinue": self.can_continue,
            "canGoBack": self.can_go_back,
        }


@dataclass(frozen=True)
class NavigationOutcome:
    """Result of a navigation request.

    ``state`` is always the navigator's state after the request, which is
    the unchanged previous state when ``succeeded`` is ``False``.
    """

    succeeded: bool
    state: NavigationState[Any]
    reason: str | None = None


class StoryNavigator(ABC, Generic[SnapshotT]):
    """Uniform continue/choose/back/restart/jump surface over a story backend."""

    backend: ClassVar[str] = ""

    def __init__(self, story: CustomStory, mappings: NodeMappings) -> None:
        if not len(story):
            raise ValueError("Cannot navigate a story without nodes.")
        self.story = story
        self.mappings = mappings
        self._state: NavigationState[SnapshotT] = self._initial_state()

    @property
    def state(self) -> NavigationState[SnapshotT]:
        return self._state

    @property
    def total_pages(self) -> int:
        return self.mappings.total_pages

    @abstractmethod
    def _initial_state(self) -> NavigationState[SnapshotT]:
        """Build the state shown when a session starts or restarts."""

    @abstractmethod
    def continue_story(self) -> NavigationOutcome:
        """Advance along the only available linear path."""

    @abstractmethod
    def choose(self, index: int) -> NavigationOutcome:
        """Follow the choice at ``index`` of the current state."""

    @abstractmethod
    def back(self) -> NavigationOutcome:
        """Return to the most recent history snapshot."""

    @abstractmethod
    def jump_to_page(self, page: int) -> NavigationOutcome:
        """Move directly to ``page``."""

    def restart(self) -> NavigationOutcome:
        """Reset to page 1 with an empty history."""

        self._state = self._initial_state()
        return self._accept()

    def resume_from(self, previous: NavigationState[Any]) -> bool:
        """Move to the node shown in ``previous``, e.g. after the story was edited.

        Returns ``False`` when that node no longer has a page, in which case
        the navigator stays on page 1.
        """

        if previous.node is None:
            return False
        page = self.mappings.page_for(previous.node)
        if page is None:
            return False
        if page == self._state.page:
            return True
        return self.jump_to_page(page).succeeded

    def _check_choice_index(self, index: int) -> str | None:
        if not isinstance(index, int) or isinstance(index, bool):
            return f"Choice index must be an integer, got {index!r}."
        if not 0 <= index < len(self._state.choices):
            return (
                f"Choice {index} is out of range; "
                f"{len(self._state.choices)} choice(s) available."
            )
        return None

    def _check_page_target(self, page: int) -> str | None:
        if not isinstance(page, int) or isinstance(page, bool):
            return f"Page must be an integer, got {page!r}."
        if page == self._state.page:
            return f"Already on page {page}."
        if not 1 <= page <= self.total_pages:
            return f"Page {page} is outside 1..{self.total_pages}."
        if self.mappings.node_for(page) is None:
            return f"Page {page} has no mapped node."
        return None

    def _accept(self) -> NavigationOutcome:
        return NavigationOutcome(succeeded=True, state=self._state)

    def _reject(self, reason: str) -> NavigationOutcome:
        logger.warning("%s navigation rejected: %s", self.backend or "story", reason)
        return NavigationOutcome(succeeded=False, state=self._state, reason=reason)


__all__ = [
    "NavigationOutcome",
    "NavigationState",
    "ReplayPolicy",
    "STORY_BEGINS_PLACEHOLDER",
    "StoryNavigator",
]
