"""Navigation over the normalised node graph, with node ids as history."""

from __future__ import annotations

import logging
from typing import Any

from .navigation import (
    STORY_BEGINS_PLACEHOLDER,
    NavigationOutcome,
    NavigationState,
    StoryNavigator,
)
from .story_graph import find_start_node
from .story_model import CustomStory, NodeMappings

logger = logging.getLogger(__name__)


class GraphNavigator(StoryNavigator[str]):
    """Walk a :class:`CustomStory` directly by following choice targets."""

    backend = "graph"

    def __init__(
        self,
        story: CustomStory,
        mappings: NodeMappings,
        *,
        start_node: str | None = None,
    ) -> None:
        self.start_node = start_node or find_start_node(story)
        super().__init__(story, mappings)

    def _initial_state(self) -> NavigationState[str]:
        if self.start_node is None or self.start_node not in self.story:
            raise ValueError(f"Start node {self.start_node!r} is not part of the story.")
        first_page = self.mappings.node_for(1)
        if first_page is not None and first_page != self.start_node:
            logger.warning(
                "Page 1 maps to %r but the story starts at %r", first_page, self.start_node
            )
        return self._state_for(self.start_node, page=1, history=())

    def _state_for(
        self, node_id: str, *, page: int, history: tuple[str, ...]
    ) -> NavigationState[str]:
        node = self.story[node_id]
        text = node.text
        if not text and node_id == self.start_node:
            text = STORY_BEGINS_PLACEHOLDER
        return NavigationState(
            node=node_id,
            page=page,
            total_pages=self.total_pages,
            text=text,
            choices=node.choices,
            can_continue=node.has_auto_continue,
            history=history,
        )

    def _page_after_move(self, node_id: str) -> int:
        page = self.mappings.page_for(node_id)
        if page is not None:
            return page
        fallback = min(self._state.page + 1, max(self.total_pages, 1))
        logger.warning("Node %r has no page mapping; advancing to page %d", node_id, fallback)
        return fallback

    def _move_to(self, node_id: str) -> NavigationOutcome:
        current = self._state
        history = current.history + ((current.node,) if current.node is not None else ())
        self._state = self._state_for(
            node_id, page=self._page_after_move(node_id), history=history
        )
        return self._accept()

    def continue_story(self) -> NavigationOutcome:
        if not self._state.can_continue:
            return self._reject(f"Node {self._state.node!r} has no linear continuation.")
        return self.choose(0)

    def choose(self, index: int) -> NavigationOutcome:
        problem = self._check_choice_index(index)
        if problem is not None:
            return self._reject(problem)

        target = self._state.choices[index].next_node
        if target not in self.story:
            return self._reject(f"Choice {index} leads to missing node {target!r}.")
        return self._move_to(target)

    def back(self) -> NavigationOutcome:
        history = self._state.history
        if not history:
            return self._reject("No history to go back to.")

        previous = history[-1]
        if previous not in self.story:
            return self._reject(f"History refers to missing node {previous!r}.")
        page = self.mappings.page_for(previous)
        if page is None:
            page = max(self._state.page - 1, 1)
        self._state = self._state_for(previous, page=page, history=history[:-1])
        return self._accept()

    def resume_from(self, previous: NavigationState[Any]) -> bool:
        node_id = previous.node
        if node_id is None or node_id not in self.story:
            return False
        history = tuple(
            entry for entry in previous.history if isinstance(entry, str) and entry in self.story
        )
        page = self.mappings.page_for(node_id) or 1
        self._state = self._state_for(node_id, page=page, history=history)
        return True

    def jump_to_page(self, page: int) -> NavigationOutcome:
        problem = self._check_page_target(page)
        if problem is not None:
            return self._reject(problem)

        target = self.mappings.node_for(page)
        if target not in self.story:
            return self._reject(f"Page {page} maps to missing node {target!r}.")
        current = self._state
        history = current.history + ((current.node,) if current.node is not None else ())
        self._state = self._state_for(target, page=page, history=history)
        return self._accept()


__all__ = ["GraphNavigator"]
