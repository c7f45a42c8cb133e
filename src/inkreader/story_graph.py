"""Directed graph utilities over normalised stories."""

from __future__ import annotations

import logging
from collections import deque
from types import MappingProxyType
from typing import Dict, List, Mapping, Tuple

from .node_extraction import FRAGMENT_PREFIX
from .story_model import CustomStory, StoryFormat

logger = logging.getLogger(__name__)

NodeGraph = Mapping[str, Tuple[str, ...]]


def build_node_graph(story: CustomStory) -> NodeGraph:
    """Return the adjacency map ``node -> successors`` of ``story``.

    Every node gets an entry, possibly empty. Edges only point at nodes that
    exist in the story and are never duplicated; the order of first
    appearance among a node's choices is preserved.
    """

    graph: Dict[str, Tuple[str, ...]] = {}
    for node_id, node in story.items():
        successors: List[str] = []
        for target in node.targets():
            if not target or target not in story:
                logger.debug("Dropping dangling edge %r -> %r", node_id, target)
                continue
            if target not in successors:
                successors.append(target)
        graph[node_id] = tuple(successors)
    return MappingProxyType(graph)


def find_start_node(story: CustomStory) -> str | None:
    """Return the node a reader starts on.

    Preference order: an explicit ``start`` node, a ``root`` node, the first
    fragment of a compiled script, then the first declared node.
    """

    for candidate in ("start", "root"):
        if candidate in story:
            return candidate
    first_fragment = f"{FRAGMENT_PREFIX}1"
    if story.story_format is StoryFormat.COMPILED_SCRIPT and first_fragment in story:
        return first_fragment
    for node_id in story:
        return node_id
    return None


def traverse_story(start: str, graph: NodeGraph) -> Tuple[str, ...]:
    """Breadth-first visitation order of the nodes reachable from ``start``."""

    if start not in graph:
        return ()

    visited: set[str] = set()
    sequence: List[str] = []
    queue: deque[str] = deque([start])

    while queue:
        current = queue.popleft()
        if current in visited:
            continue

        visited.add(current)
        sequence.append(current)
        for successor in graph.get(current, ()):
            if successor not in visited:
                queue.append(successor)

    return tuple(sequence)


def find_dead_ends(story: CustomStory, graph: NodeGraph | None = None) -> Tuple[str, ...]:
    """Return nodes without outgoing edges that are not marked as endings."""

    if graph is None:
        graph = build_node_graph(story)
    return tuple(
        node_id
        for node_id, node in story.items()
        if not graph.get(node_id) and not node.is_ending
    )


__all__ = [
    "NodeGraph",
    "build_node_graph",
    "find_dead_ends",
    "find_start_node",
    "traverse_story",
]
