"""Discover every story node in a raw document.

Two document shapes are understood:

* **named graphs**: objects keyed by node id, typically authored by hand or
  by the editor, walked breadth-first from the entry node;
* **compiled scripts**: Ink output with a version marker and an anonymous
  ``root`` content array, segmented into synthetic ``fragment_N`` nodes.
"""

from __future__ import annotations

import json
import logging
import re
from collections import deque
from dataclasses import dataclass, field
from importlib import resources
from pathlib import Path
from typing import Any, Dict, List, Mapping, MutableMapping, Sequence

from .story_model import (
    CONTINUE_LABEL,
    RESERVED_KEYS,
    CustomStory,
    StoryChoice,
    StoryFormat,
    StoryNode,
    is_reserved_key,
    looks_like_story_node,
)
from .token_parser import (
    DIVERT_KEY,
    END_MARKERS,
    TEXT_PREFIX,
    ParsedInkNode,
    is_choice_container,
    parse_ink_node,
    parse_token_stream,
)

logger = logging.getLogger(__name__)

VERSION_KEY = "inkVersion"
ROOT_KEY = "root"
START_KEY = "start"
FRAGMENT_PREFIX = "fragment_"
PLACEHOLDER_TEXT = "This story has no readable content yet."

IMAGE_DIRECTIVE = re.compile(
    r"^\s*(?:\[\s*(?:IMAGE|IMG)\s*:\s*(?P<bracketed>[^\]]*)\]|(?:IMAGE|IMG)\s*:\s*(?P<bare>.*))\s*$",
    re.IGNORECASE,
)
CHAPTER_HEADING = re.compile(
    r"^\s*(?:#{1,3}\s+\S|(?:chapter|part|book)\s+(?:\d+|[ivxlcdm]+)\b)",
    re.IGNORECASE,
)


def detect_story_format(document: Mapping[str, Any]) -> StoryFormat:
    """Return the shape of ``document``.

    A document is a compiled script when it carries a version marker and an
    array-typed root; everything else is treated as a named graph.
    """

    if VERSION_KEY in document and isinstance(document.get(ROOT_KEY), list):
        return StoryFormat.COMPILED_SCRIPT
    return StoryFormat.NAMED_GRAPH


def find_document_start(document: Mapping[str, Any]) -> str | None:
    """Pick the entry node of a named-graph document."""

    for key in (START_KEY, ROOT_KEY):
        if _is_named_node(document.get(key)):
            return key
    for key, value in document.items():
        if not is_reserved_key(key) and looks_like_story_node(value):
            return key
    for key, value in document.items():
        if not is_reserved_key(key) and _is_named_node(value):
            return key
    return None


def extract_story(document: Mapping[str, Any]) -> CustomStory:
    """Normalise ``document`` into a :class:`CustomStory`.

    Raises:
        ValueError: If ``document`` is not a JSON object.
    """

    if not isinstance(document, Mapping):
        raise ValueError("Story documents must contain an object at the top level.")

    story_format = detect_story_format(document)
    logger.debug("Detected %s story document", story_format.value)
    if story_format is StoryFormat.COMPILED_SCRIPT:
        return segment_compiled_script(document)
    return extract_named_graph(document)


def extract_named_graph(document: Mapping[str, Any]) -> CustomStory:
    """Parse every node of a named-graph document.

    Nodes reachable from the entry node are discovered breadth-first; the
    visited set guards against cycles. Nodes the walk never reaches are
    parsed afterwards so orphaned editor content is not lost. The resulting
    story keeps the document's declaration order.
    """

    reserved = {key: document[key] for key in document if key in RESERVED_KEYS}
    candidates = [
        key
        for key, value in document.items()
        if not is_reserved_key(key) and _is_named_node(value)
    ]
    candidate_set = set(candidates)
    parsed: Dict[str, ParsedInkNode] = {}

    start = find_document_start(document)
    if start is not None:
        queue: deque[str] = deque([start])
        while queue:
            node_id = queue.popleft()
            if node_id in parsed or node_id not in candidate_set:
                continue
            node = parse_ink_node(document[node_id])
            parsed[node_id] = node
            for choice in node.choices:
                if choice.next_node and choice.next_node not in parsed:
                    queue.append(choice.next_node)

    reachable = len(parsed)
    for node_id in candidates:
        if node_id not in parsed:
            parsed[node_id] = parse_ink_node(document[node_id])

    if len(parsed) > reachable:
        logger.info(
            "Extracted %d nodes (%d reachable from %r, %d orphaned)",
            len(parsed),
            reachable,
            start,
            len(parsed) - reachable,
        )
    skipped = [
        key for key in document if not is_reserved_key(key) and key not in parsed
    ]
    if skipped:
        logger.debug("Ignoring non-node keys: %s", ", ".join(map(str, skipped)))

    nodes = [(node_id, parsed[node_id].to_story_node()) for node_id in candidates]
    return CustomStory(nodes, reserved=reserved, story_format=StoryFormat.NAMED_GRAPH)


@dataclass
class _Fragment:
    text: str
    choices: List[StoryChoice] = field(default_factory=list)
    is_ending: bool = False
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def is_open(self) -> bool:
        return not self.choices and not self.is_ending


class _FragmentBuilder:
    """Accumulates compiled-script tokens into fragments at natural boundaries."""

    def __init__(self) -> None:
        self.fragments: List[_Fragment] = []
        self._buffer: List[Any] = []
        self._pending_image: str | None = None

    def walk(self, tokens: Sequence[Any]) -> None:
        for token in tokens:
            if isinstance(token, str) and token.startswith(TEXT_PREFIX):
                self._accept_text(token)
            elif isinstance(token, list):
                if _bears_choices(token):
                    self._buffer.append(token)
                    self.close()
                else:
                    self.walk(token)
            elif _is_boundary_token(token) or is_choice_container(token):
                self._buffer.append(token)
                self.close()
            elif isinstance(token, Mapping) and not _is_inline_object(token):
                # Named sub-containers are registered separately as sections.
                continue
            else:
                self._buffer.append(token)

    def _accept_text(self, token: str) -> None:
        text = token[len(TEXT_PREFIX):].strip()
        image = IMAGE_DIRECTIVE.match(text)
        if image:
            self.close()
            self._pending_image = (image.group("bracketed") or image.group("bare") or "").strip()
            return
        if CHAPTER_HEADING.match(text):
            self.close()
        self._buffer.append(token)

    def close(self) -> None:
        """Turn the buffered tokens into a fragment (or fold them into the last one)."""

        tokens, self._buffer = self._buffer, []
        if not tokens and self._pending_image is None:
            return

        parsed = parse_token_stream(tokens)
        metadata = dict(parsed.metadata)
        if self._pending_image is not None:
            metadata["image"] = self._pending_image
            self._pending_image = None

        previous = self.fragments[-1] if self.fragments else None
        if not parsed.text and "image" not in metadata:
            if previous is not None and previous.is_open:
                previous.choices.extend(parsed.choices)
                previous.is_ending = previous.is_ending or parsed.is_ending
            else:
                logger.debug("Dropping text-less fragment with nothing open to attach to")
            return

        self.fragments.append(
            _Fragment(
                text=parsed.text,
                choices=list(parsed.choices),
                is_ending=parsed.is_ending,
                metadata=metadata,
            )
        )


def segment_compiled_script(document: Mapping[str, Any]) -> CustomStory:
    """Segment a compiled script's anonymous root array into fragments.

    Consecutive fragments are linked with a "Continue" choice unless they
    already carry choices (or a divert) of their own. Named top-level
    sections and the named containers trailing ``root`` become additional
    nodes when they hold any text.
    """

    root = document.get(ROOT_KEY)
    if not isinstance(root, list):
        raise ValueError("Compiled scripts must provide a 'root' array.")

    builder = _FragmentBuilder()
    builder.walk(root)
    builder.close()
    fragments = builder.fragments

    if not fragments:
        logger.warning("Compiled script produced no fragments; using placeholder text")
        fragments = [_Fragment(text=PLACEHOLDER_TEXT, is_ending=True)]

    nodes: Dict[str, StoryNode] = {}
    for index, fragment in enumerate(fragments, start=1):
        choices = list(fragment.choices)
        is_ending = fragment.is_ending
        if fragment.is_open:
            if index < len(fragments):
                choices = [StoryChoice(CONTINUE_LABEL, _fragment_id(index + 1))]
            else:
                is_ending = True
        nodes[_fragment_id(index)] = StoryNode(
            text=fragment.text,
            choices=tuple(choices),
            is_ending=is_ending,
            metadata=fragment.metadata,
        )

    for name, raw_section in _named_sections(document):
        if name in nodes:
            logger.debug("Section %r shadows an existing node; skipping", name)
            continue
        section = parse_ink_node(raw_section)
        if section.text:
            nodes[name] = section.to_story_node()

    reserved = {key: document[key] for key in document if key in RESERVED_KEYS}
    logger.info("Segmented compiled script into %d fragments", len(fragments))
    return CustomStory(nodes, reserved=reserved, story_format=StoryFormat.COMPILED_SCRIPT)


def _named_sections(document: Mapping[str, Any]) -> List[tuple[str, Any]]:
    sections: List[tuple[str, Any]] = []
    for key, value in document.items():
        if is_reserved_key(key) or key == ROOT_KEY:
            continue
        sections.append((key, value))

    root = document.get(ROOT_KEY)
    if isinstance(root, list) and root and isinstance(root[-1], Mapping):
        container = root[-1]
        if not _is_inline_object(container):
            for key, value in container.items():
                if isinstance(key, str) and not key.startswith("#"):
                    sections.append((key, value))
    return sections


def _fragment_id(index: int) -> str:
    return f"{FRAGMENT_PREFIX}{index}"


def _is_named_node(value: Any) -> bool:
    return isinstance(value, (Mapping, list))


def _is_boundary_token(token: Any) -> bool:
    if isinstance(token, str):
        return token in END_MARKERS
    return isinstance(token, Mapping) and DIVERT_KEY in token


def _is_inline_object(token: Mapping[str, Any]) -> bool:
    """Return ``True`` for tag and variable objects that belong in the text flow."""

    return "#" in token or "VAR=" in token


def _bears_choices(tokens: Sequence[Any]) -> bool:
    parsed = parse_token_stream(tokens)
    if not parsed.choices:
        return False
    synthesised = (
        parsed.next_node is not None
        and len(parsed.choices) == 1
        and parsed.choices[0].is_auto_continue
    )
    return not synthesised


def load_story_from_json(payload: str | bytes) -> CustomStory:
    """Decode a JSON string and extract its story."""

    try:
        document = json.loads(payload)
    except json.JSONDecodeError as exc:
        raise ValueError(f"Story content is not valid JSON: {exc}") from exc
    if not isinstance(document, Mapping):
        raise ValueError("Story documents must contain an object at the top level.")
    return extract_story(document)


def load_story_document(path: str | Path) -> MutableMapping[str, Any]:
    """Read a raw story document from disk without normalising it."""

    data_path = Path(path)
    try:
        with data_path.open("r", encoding="utf-8") as handle:
            raw_data = json.load(handle)
    except json.JSONDecodeError as exc:
        raise ValueError(f"Story file '{data_path}' is not valid JSON: {exc}") from exc

    if not isinstance(raw_data, dict):
        raise ValueError("Story files must contain an object at the top level.")
    return raw_data


def load_story_from_file(path: str | Path) -> CustomStory:
    """Load and normalise a story document stored on disk."""

    return extract_story(load_story_document(path))


def load_sample_document() -> MutableMapping[str, Any]:
    """Read the bundled demo story from the package data directory."""

    data_resource = resources.files("inkreader.data").joinpath("sample_story.json")
    with data_resource.open("r", encoding="utf-8") as handle:
        raw_data = json.load(handle)

    if not isinstance(raw_data, dict):
        raise ValueError("Bundled story must contain an object at the top level.")
    return raw_data


__all__ = [
    "CHAPTER_HEADING",
    "FRAGMENT_PREFIX",
    "IMAGE_DIRECTIVE",
    "PLACEHOLDER_TEXT",
    "detect_story_format",
    "extract_named_graph",
    "extract_story",
    "find_document_start",
    "load_sample_document",
    "load_story_document",
    "load_story_from_file",
    "load_story_from_json",
    "segment_compiled_script",
]
