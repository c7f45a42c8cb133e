"""Render normalised stories back into Ink source."""

from __future__ import annotations

import re
from typing import Dict, List

from .story_graph import find_start_node
from .story_model import CustomStory

HEADER = "// Generated Ink script from JSON story format"
INDENT = "    "

_INVALID_IDENTIFIER_CHARS = re.compile(r"[^A-Za-z0-9_]+")


def ink_identifier(node_id: str) -> str:
    """Return ``node_id`` reduced to a valid Ink knot name."""

    identifier = _INVALID_IDENTIFIER_CHARS.sub("_", node_id).strip("_")
    if not identifier:
        identifier = "node"
    if identifier[0].isdigit():
        identifier = f"n_{identifier}"
    return identifier


def build_knot_names(story: CustomStory) -> Dict[str, str]:
    """Map every node id to a unique knot name."""

    names: Dict[str, str] = {}
    used: set[str] = set()
    for node_id in story:
        base = ink_identifier(node_id)
        candidate = base
        suffix = 2
        while candidate in used:
            candidate = f"{base}_{suffix}"
            suffix += 1
        used.add(candidate)
        names[node_id] = candidate
    return names


def export_ink_script(story: CustomStory) -> str:
    """Return Ink source equivalent to ``story``.

    The start node is emitted first, followed by the others in declaration
    order. Node text is written verbatim; choices whose target is missing
    from the story divert to ``END`` with a comment naming the lost node.
    """

    lines: List[str] = [HEADER, ""]
    if not len(story):
        lines.append("// No story nodes defined")
        return "\n".join(lines) + "\n"

    knots = build_knot_names(story)
    start = find_start_node(story)
    order = [start] + [node_id for node_id in story if node_id != start]

    lines.extend([f"-> {knots[start]}", ""])
    for node_id in order:
        node = story[node_id]
        lines.append(f"=== {knots[node_id]} ===")
        if node.text:
            lines.append(node.text)
            lines.append("")

        for choice in node.choices:
            lines.append(f"* {choice.text}")
            target = choice.next_node
            if target in knots:
                lines.append(f"{INDENT}-> {knots[target]}")
            else:
                lines.append(f"{INDENT}// missing node: {target or '(none)'}")
                lines.append(f"{INDENT}-> END")

        if not node.choices:
            lines.append("-> END" if node.is_ending else "-> DONE")
        lines.append("")

    return "\n".join(lines)


__all__ = ["build_knot_names", "export_ink_script", "ink_identifier"]
