"""Value objects shared by the parsing, mapping and navigation layers."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any, Dict, Iterable, Iterator, Mapping, Sequence, Tuple

CONTINUE_LABEL = "Continue"
"""Label of the choice synthesised for linear (single-successor) nodes."""

RESERVED_KEYS = frozenset({"inkVersion", "listDefs", "#f"})
"""Top-level keys that never describe story nodes."""


class StoryFormat(str, Enum):
    """Shapes of raw story documents understood by the extractor."""

    NAMED_GRAPH = "named-graph"
    COMPILED_SCRIPT = "compiled-script"


def is_reserved_key(key: object) -> bool:
    """Return ``True`` when ``key`` is a format marker rather than a node id."""

    return not isinstance(key, str) or key in RESERVED_KEYS


def looks_like_story_node(value: object) -> bool:
    """Return ``True`` when ``value`` resembles a ``{text, choices}`` node."""

    if not isinstance(value, Mapping):
        return False
    return "text" in value or "choices" in value or "content" in value


@dataclass(frozen=True)
class StoryChoice:
    """A single option leading from one node to another.

    ``next_node`` may reference a node that does not exist; consumers must
    treat that as a dangling edge rather than an error.
    """

    text: str
    next_node: str = ""

    def __post_init__(self) -> None:
        object.__setattr__(self, "text", _coerce_text(self.text))
        object.__setattr__(
            self, "next_node", "" if self.next_node is None else str(self.next_node)
        )

    @property
    def is_auto_continue(self) -> bool:
        """Return ``True`` for choices labelled "Continue".

        Only the label is checked, so an authored choice named "Continue" is
        treated exactly like a synthesised one and enables ``Continue()``.
        """

        return self.text == CONTINUE_LABEL

    def to_payload(self) -> Dict[str, str]:
        return {"text": self.text, "nextNode": self.next_node}

    @classmethod
    def from_payload(cls, payload: object) -> "StoryChoice | None":
        """Normalise a raw choice mapping, returning ``None`` for junk."""

        if not isinstance(payload, Mapping):
            return None
        raw_text = payload.get("text")
        raw_target = payload.get("nextNode", payload.get("next_node"))
        text = raw_text if isinstance(raw_text, str) else CONTINUE_LABEL
        target = raw_target if isinstance(raw_target, str) else ""
        return cls(text=text.strip() or CONTINUE_LABEL, next_node=target.strip())


@dataclass(frozen=True)
class StoryNode:
    """Normalised story content: text, outgoing choices and metadata."""

    text: str = ""
    choices: Tuple[StoryChoice, ...] = ()
    is_ending: bool = False
    metadata: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "text", _coerce_text(self.text))
        object.__setattr__(self, "choices", tuple(self.choices or ()))
        object.__setattr__(self, "is_ending", bool(self.is_ending))
        object.__setattr__(self, "metadata", MappingProxyType(dict(self.metadata or {})))

    @property
    def has_auto_continue(self) -> bool:
        """Return ``True`` when the node only offers the synthesised "Continue"."""

        return len(self.choices) == 1 and self.choices[0].is_auto_continue

    def targets(self) -> Tuple[str, ...]:
        return tuple(choice.next_node for choice in self.choices)

    def to_payload(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "text": self.text,
            "choices": [choice.to_payload() for choice in self.choices],
        }
        if self.is_ending:
            payload["isEnding"] = True
        if self.metadata:
            payload["metadata"] = _plain(self.metadata)
        return payload

    @classmethod
    def from_payload(cls, payload: object) -> "StoryNode":
        """Coerce an already-shaped ``{text, choices, isEnding}`` mapping.

        Missing or mistyped fields collapse to their defaults so downstream
        code only ever sees one node shape.
        """

        if not isinstance(payload, Mapping):
            return cls()

        raw_text = payload.get("text")
        raw_choices = payload.get("choices")
        choices: list[StoryChoice] = []
        if isinstance(raw_choices, Sequence) and not isinstance(raw_choices, (str, bytes)):
            for raw_choice in raw_choices:
                choice = StoryChoice.from_payload(raw_choice)
                if choice is not None:
                    choices.append(choice)

        raw_metadata = payload.get("metadata")
        metadata = dict(raw_metadata) if isinstance(raw_metadata, Mapping) else {}

        return cls(
            text=raw_text if isinstance(raw_text, str) else "",
            choices=tuple(choices),
            is_ending=bool(payload.get("isEnding", payload.get("is_ending", False))),
            metadata=metadata,
        )


class CustomStory:
    """Ordered collection of normalised nodes plus reserved document keys.

    Node order is the declaration order of the source document (or the
    segmentation order for compiled scripts). Reserved entries such as the
    format version are carried along for serialisation but never counted as
    nodes.
    """

    def __init__(
        self,
        nodes: Mapping[str, StoryNode] | Iterable[Tuple[str, StoryNode]] = (),
        *,
        reserved: Mapping[str, Any] | None = None,
        story_format: StoryFormat = StoryFormat.NAMED_GRAPH,
    ) -> None:
        items = nodes.items() if isinstance(nodes, Mapping) else nodes
        self._nodes: Dict[str, StoryNode] = {}
        for node_id, node in items:
            if is_reserved_key(node_id):
                raise ValueError(f"'{node_id}' is reserved and cannot name a node")
            if not isinstance(node, StoryNode):
                raise TypeError(f"node '{node_id}' must be a StoryNode, got {type(node)!r}")
            self._nodes[node_id] = node
        self.reserved: Dict[str, Any] = dict(reserved or {})
        self.story_format = story_format

    def __contains__(self, node_id: object) -> bool:
        return node_id in self._nodes

    def __getitem__(self, node_id: str) -> StoryNode:
        return self._nodes[node_id]

    def __iter__(self) -> Iterator[str]:
        return iter(self._nodes)

    def __len__(self) -> int:
        return len(self._nodes)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, CustomStory):
            return NotImplemented
        return (
            list(self._nodes.items()) == list(other._nodes.items())
            and self.reserved == other.reserved
            and self.story_format == other.story_format
        )

    def __repr__(self) -> str:
        return f"CustomStory({len(self)} nodes, format={self.story_format.value!r})"

    def get(self, node_id: str) -> StoryNode | None:
        return self._nodes.get(node_id)

    def node_ids(self) -> Tuple[str, ...]:
        return tuple(self._nodes)

    def items(self) -> Iterable[Tuple[str, StoryNode]]:
        return self._nodes.items()


@dataclass(frozen=True)
class NodeMappings:
    """Bidirectional node id ↔ page number lookup tables."""

    node_to_page: Mapping[str, int] = field(default_factory=dict)
    page_to_node: Mapping[int, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "node_to_page", MappingProxyType(dict(self.node_to_page)))
        object.__setattr__(self, "page_to_node", MappingProxyType(dict(self.page_to_node)))

    @property
    def total_pages(self) -> int:
        return len(self.page_to_node)

    def page_for(self, node_id: str) -> int | None:
        return self.node_to_page.get(node_id)

    def node_for(self, page: int) -> str | None:
        return self.page_to_node.get(page)

    def sequence(self) -> Tuple[str, ...]:
        """Return node ids ordered by page number."""

        return tuple(self.page_to_node[page] for page in sorted(self.page_to_node))

    @classmethod
    def from_sequence(cls, sequence: Iterable[str]) -> "NodeMappings":
        """Assign pages ``1..N`` to ``sequence`` positionally."""

        node_to_page: Dict[str, int] = {}
        page_to_node: Dict[int, str] = {}
        for index, node_id in enumerate(sequence, start=1):
            node_to_page[node_id] = index
            page_to_node[index] = node_id
        return cls(node_to_page=node_to_page, page_to_node=page_to_node)

    def to_payload(self) -> Dict[str, Dict[str, Any]]:
        return {
            "nodeToPage": dict(self.node_to_page),
            "pageToNode": {str(page): node for page, node in self.page_to_node.items()},
        }


def _coerce_text(value: object) -> str:
    if value is None:
        return ""
    if not isinstance(value, str):
        raise TypeError(f"text must be a string, got {type(value)!r}")
    return value


def _plain(value: Any) -> Any:
    if isinstance(value, Mapping):
        return {str(key): _plain(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_plain(item) for item in value]
    return value


__all__ = [
    "CONTINUE_LABEL",
    "RESERVED_KEYS",
    "CustomStory",
    "NodeMappings",
    "StoryChoice",
    "StoryFormat",
    "StoryNode",
    "is_reserved_key",
    "looks_like_story_node",
]
