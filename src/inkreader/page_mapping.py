"""Assign reader-facing page numbers by following story flow."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, Iterable, Tuple

from .story_graph import (
    NodeGraph,
    build_node_graph,
    find_dead_ends,
    find_start_node,
    traverse_story,
)
from .story_model import CustomStory, NodeMappings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StoryStructure:
    """Flow analysis of a story: start node, page order and graph findings."""

    start_node: str | None
    mappings: NodeMappings
    reachable: Tuple[str, ...]
    orphans: Tuple[str, ...]
    dead_ends: Tuple[str, ...]

    @property
    def total_pages(self) -> int:
        return self.mappings.total_pages

    @property
    def reachable_pages(self) -> int:
        """Number of pages covered by the walk from the start node."""

        return len(self.reachable)

    def to_payload(self) -> Dict[str, Any]:
        return {
            "startNode": self.start_node,
            "totalPages": self.total_pages,
            "reachable": list(self.reachable),
            "orphans": list(self.orphans),
            "deadEnds": list(self.dead_ends),
            **self.mappings.to_payload(),
        }


def generate_page_mappings(sequence: Iterable[str]) -> NodeMappings:
    """Number ``sequence`` ``1..N`` in order."""

    return NodeMappings.from_sequence(sequence)


def compute_page_sequence(
    story: CustomStory,
    *,
    graph: NodeGraph | None = None,
    start: str | None = None,
) -> Tuple[Tuple[str, ...], Tuple[str, ...]]:
    """Return ``(reachable, orphans)`` page order for ``story``.

    ``reachable`` is the breadth-first visitation order from ``start``;
    ``orphans`` lists the remaining nodes in declaration order. Their
    concatenation covers every node exactly once.
    """

    if graph is None:
        graph = build_node_graph(story)
    if start is None:
        start = find_start_node(story)

    reachable = traverse_story(start, graph) if start is not None else ()
    seen = set(reachable)
    orphans = tuple(node_id for node_id in story if node_id not in seen)
    return reachable, orphans


def analyze_story_structure(story: CustomStory) -> StoryStructure:
    """Trace ``story`` from its start node and assign pages in flow order."""

    graph = build_node_graph(story)
    start = find_start_node(story)
    reachable, orphans = compute_page_sequence(story, graph=graph, start=start)

    if orphans:
        logger.info(
            "Appending %d disconnected node(s) after page %d: %s",
            len(orphans),
            len(reachable),
            ", ".join(orphans),
        )

    mappings = generate_page_mappings(reachable + orphans)
    logger.debug("Mapped %d nodes to pages starting from %r", mappings.total_pages, start)
    return StoryStructure(
        start_node=start,
        mappings=mappings,
        reachable=reachable,
        orphans=orphans,
        dead_ends=find_dead_ends(story, graph),
    )


__all__ = [
    "StoryStructure",
    "analyze_story_structure",
    "compute_page_sequence",
    "generate_page_mappings",
]
