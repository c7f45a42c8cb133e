"""Navigation driven by a live script runtime, with state tokens as history.

A runtime can only move forward one passage at a time, so jumping to an
arbitrary page replays the story from the beginning. The replay is bounded by
the requested page number and is rolled back completely when it cannot reach
its target.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Tuple

from .navigation import NavigationOutcome, NavigationState, ReplayPolicy, StoryNavigator
from .script_runtime import (
    ChoiceUnavailableError,
    CompiledStoryRuntime,
    RuntimeStateError,
    ScriptRuntime,
)
from .story_model import CustomStory, NodeMappings

logger = logging.getLogger(__name__)

_STEP_ERRORS = (RuntimeStateError, ChoiceUnavailableError)


@dataclass(frozen=True)
class RuntimeCheckpoint:
    """Serialised runtime position together with the page it was shown on."""

    token: str
    page: int


class RuntimeNavigator(StoryNavigator[RuntimeCheckpoint]):
    """Drive a :class:`ScriptRuntime` through the shared navigation surface."""

    backend = "runtime"

    def __init__(
        self,
        story: CustomStory,
        mappings: NodeMappings,
        *,
        runtime: ScriptRuntime | None = None,
        replay_policy: ReplayPolicy = ReplayPolicy.FIRST_CHOICE,
    ) -> None:
        self.runtime = runtime if runtime is not None else CompiledStoryRuntime(story)
        self.replay_policy = replay_policy
        super().__init__(story, mappings)

    def _initial_state(self) -> NavigationState[RuntimeCheckpoint]:
        self.runtime.reset_state()
        if self.runtime.can_continue:
            self.runtime.continue_story()
        return self._observe(page=1, history=())

    def _observe(
        self, *, page: int, history: Tuple[RuntimeCheckpoint, ...]
    ) -> NavigationState[RuntimeCheckpoint]:
        """Read the runtime into a fresh navigation state."""

        can_continue = self.runtime.can_continue
        return NavigationState(
            node=self.runtime.current_node or self.mappings.node_for(page),
            page=page,
            total_pages=self.total_pages,
            text=self.runtime.current_text,
            choices=() if can_continue else self.runtime.current_choices,
            can_continue=can_continue,
            history=history,
        )

    def _checkpoint(self) -> RuntimeCheckpoint:
        return RuntimeCheckpoint(token=self.runtime.save_state(), page=self._state.page)

    def _next_page(self) -> int:
        return min(self._state.page + 1, max(self.total_pages, 1))

    def _fail(self, checkpoint: RuntimeCheckpoint, reason: str) -> NavigationOutcome:
        self.runtime.load_state(checkpoint.token)
        logger.error("Runtime navigation failed: %s", reason)
        return NavigationOutcome(succeeded=False, state=self._state, reason=reason)

    def _advance(self, checkpoint: RuntimeCheckpoint, page: int) -> NavigationOutcome:
        self._state = self._observe(page=page, history=self._state.history + (checkpoint,))
        return self._accept()

    def continue_story(self) -> NavigationOutcome:
        if not self.runtime.can_continue:
            return self._reject("The runtime has no linear continuation here.")

        checkpoint = self._checkpoint()
        try:
            self.runtime.continue_story()
        except _STEP_ERRORS as exc:
            return self._fail(checkpoint, str(exc))
        return self._advance(checkpoint, self._next_page())

    def choose(self, index: int) -> NavigationOutcome:
        problem = self._check_choice_index(index)
        if problem is not None:
            return self._reject(problem)

        checkpoint = self._checkpoint()
        try:
            self.runtime.choose_choice_index(index)
            if self.runtime.can_continue:
                self.runtime.continue_story()
        except _STEP_ERRORS as exc:
            return self._fail(checkpoint, str(exc))
        return self._advance(checkpoint, self._next_page())

    def back(self) -> NavigationOutcome:
        history = self._state.history
        if not history:
            return self._reject("No history to go back to.")

        checkpoint = history[-1]
        try:
            self.runtime.load_state(checkpoint.token)
        except RuntimeStateError as exc:
            reason = f"Could not restore the previous position: {exc}"
            logger.error("Runtime navigation failed: %s", reason)
            return NavigationOutcome(succeeded=False, state=self._state, reason=reason)

        self._state = self._observe(page=checkpoint.page, history=history[:-1])
        return self._accept()

    def jump_to_page(self, page: int) -> NavigationOutcome:
        problem = self._check_page_target(page)
        if problem is not None:
            return self._reject(problem)

        checkpoint = self._checkpoint()
        try:
            self._replay_to(page)
        except _STEP_ERRORS as exc:
            return self._fail(checkpoint, f"Could not reach page {page}: {exc}")
        return self._advance(checkpoint, page)

    def _replay_to(self, target: int) -> None:
        """Reset the runtime and step forward until ``target`` passages were shown."""

        self.runtime.reset_state()
        if not self.runtime.can_continue:
            raise RuntimeStateError("The story has no opening passage.")
        self.runtime.continue_story()

        reached = 1
        while reached < target:
            if self.runtime.can_continue:
                self.runtime.continue_story()
            else:
                choices = self.runtime.current_choices
                if not choices:
                    raise RuntimeStateError(f"The story ends on page {reached}.")
                if len(choices) > 1:
                    if self.replay_policy is ReplayPolicy.STRICT:
                        raise RuntimeStateError(
                            f"Page {reached} offers {len(choices)} choices; "
                            "replay will not guess which branch was read."
                        )
                    logger.warning(
                        "Replay picked the first of %d choices on page %d; the reader "
                        "may have followed a different branch",
                        len(choices),
                        reached,
                    )
                self.runtime.choose_choice_index(0)
                if self.runtime.can_continue:
                    self.runtime.continue_story()
            reached += 1


__all__ = ["RuntimeCheckpoint", "RuntimeNavigator"]
