"""Turn one raw Ink-style token stream into a normalised story node.

Compiled Ink content is a loosely structured mixture of strings, nested lists
and small objects. Each grammar element is recognised by a :class:`TokenRule`
whose matcher is tried in priority order; the first rule that matches
processes the token. Anything no rule understands is either recursed into
(lists), scanned key by key (objects) or skipped, so a malformed token never
aborts the rest of the node.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Mapping, Sequence, Tuple

from .story_model import CONTINUE_LABEL, StoryChoice, StoryNode

logger = logging.getLogger(__name__)

TEXT_PREFIX = "^"
DIVERT_KEY = "->"
NEW_LINE = "\n"
GLUE = "<>"
END_MARKERS = frozenset({"end", "done"})
CHOICE_MARKERS = frozenset({"*", "+", "-"})
TAG_KEY = "#"
VARIABLE_KEY = "VAR="

_RECOVERABLE_ERRORS = (TypeError, ValueError, KeyError, AttributeError, RecursionError)


@dataclass
class _PendingChoice:
    text: str = ""
    next_node: str = ""
    label: str = ""

    def append_text(self, text: str) -> None:
        self.text = f"{self.text} {text}" if self.text else text


@dataclass
class ParsingContext:
    """Mutable accumulator threaded through the token rules."""

    text: str = ""
    choices: List[StoryChoice] = field(default_factory=list)
    next_node: str | None = None
    is_ending: bool = False
    tags: List[str] = field(default_factory=list)
    variables: Dict[str, Any] = field(default_factory=dict)
    current_choice: _PendingChoice | None = None
    glue_pending: bool = False
    used_glue: bool = False

    @property
    def in_choice(self) -> bool:
        return self.current_choice is not None

    def append_text(self, text: str) -> None:
        if self.current_choice is not None:
            self.current_choice.append_text(text)
            return
        if not self.text or self.glue_pending or self.text.endswith(NEW_LINE):
            self.text += text
        else:
            self.text += f" {text}"
        self.glue_pending = False

    def open_choice(self, label: str = "") -> None:
        self.flush_choice()
        self.current_choice = _PendingChoice(label=label)

    def flush_choice(self) -> None:
        """Close the active choice, keeping it only when it is navigable."""

        pending = self.current_choice
        self.current_choice = None
        if pending is None:
            return
        if not pending.text and not pending.next_node:
            logger.debug("Dropping choice accumulator without text or target")
            return
        text = pending.text or pending.label or CONTINUE_LABEL
        self.choices.append(StoryChoice(text=text, next_node=pending.next_node))

    def merge(self, other: "ParsingContext") -> None:
        """Fold a nested context's node-level findings into this one."""

        if other.text:
            self.append_text(other.text)
        self.choices.extend(other.choices)
        if other.next_node and not self.next_node:
            self.next_node = other.next_node
        self.is_ending = self.is_ending or other.is_ending
        self.tags.extend(other.tags)
        self.variables.update(other.variables)
        self.used_glue = self.used_glue or other.used_glue


@dataclass(frozen=True)
class TokenRule:
    """Associates a token matcher with the processor that consumes it."""

    name: str
    matches: Callable[[Any], bool]
    process: Callable[[Any, ParsingContext], None]


@dataclass(frozen=True)
class ParsedInkNode:
    """Result of parsing one raw node.

    ``next_node`` is the node-level divert target (if any); it has already
    been turned into a "Continue" choice when the node had no other choices.
    """

    text: str = ""
    choices: Tuple[StoryChoice, ...] = ()
    next_node: str | None = None
    is_ending: bool = False
    metadata: Mapping[str, Any] = field(default_factory=dict)

    def to_story_node(self) -> StoryNode:
        return StoryNode(
            text=self.text,
            choices=self.choices,
            is_ending=self.is_ending,
            metadata=self.metadata,
        )


def _is_text(token: Any) -> bool:
    return isinstance(token, str) and token.startswith(TEXT_PREFIX)


def _divert_target(token: Any) -> str | None:
    if isinstance(token, Mapping):
        target = token.get(DIVERT_KEY)
        if isinstance(target, str) and target.strip():
            return target.strip()
    return None


def _is_divert(token: Any) -> bool:
    return isinstance(token, Mapping) and DIVERT_KEY in token


def is_choice_container(token: Any) -> bool:
    if not isinstance(token, Mapping):
        return False
    return any(_is_option_list(value) for value in token.values())


def _is_option_list(value: Any) -> bool:
    return (
        isinstance(value, list)
        and bool(value)
        and all(isinstance(option, list) for option in value)
    )


def _process_text(token: str, context: ParsingContext) -> None:
    text = token[len(TEXT_PREFIX):].strip()
    if text:
        context.append_text(text)


def _process_divert(token: Mapping[str, Any], context: ParsingContext) -> None:
    target = _divert_target(token)
    if target is None:
        raise ValueError(f"divert without a usable target: {token!r}")
    if context.current_choice is not None:
        context.current_choice.next_node = target
    else:
        context.next_node = target


def _process_newline(token: str, context: ParsingContext) -> None:
    # Line breaks only shape node prose; choice labels stay single-line.
    if context.in_choice or not context.text:
        return
    context.text += NEW_LINE


def _process_end(token: str, context: ParsingContext) -> None:
    context.is_ending = True


def _process_choice_marker(token: str, context: ParsingContext) -> None:
    context.open_choice()


def _process_choice_container(token: Mapping[str, Any], context: ParsingContext) -> None:
    context.flush_choice()
    for value in token.values():
        if not _is_option_list(value):
            continue
        for option in value:
            text = _first_text(option)
            target = _first_divert(option)
            if not text:
                logger.debug("Dropping structured choice without text: %r", option)
                continue
            context.choices.append(StoryChoice(text=text, next_node=target or ""))


def _process_tag(token: Mapping[str, Any], context: ParsingContext) -> None:
    tag = token[TAG_KEY]
    if tag is None:
        raise ValueError("empty tag")
    context.tags.append(str(tag).strip())


def _process_variable(token: Mapping[str, Any], context: ParsingContext) -> None:
    assignment = token[VARIABLE_KEY]
    if isinstance(assignment, Mapping):
        for name, value in assignment.items():
            context.variables[str(name)] = value
    elif isinstance(assignment, str) and assignment:
        context.variables[assignment] = token.get("value")
    else:
        raise ValueError(f"unsupported variable assignment: {assignment!r}")


def _process_glue(token: str, context: ParsingContext) -> None:
    context.glue_pending = True
    context.used_glue = True


TOKEN_RULES: Tuple[TokenRule, ...] = (
    TokenRule("text", _is_text, _process_text),
    TokenRule("divert", _is_divert, _process_divert),
    TokenRule("newline", lambda token: token == NEW_LINE, _process_newline),
    TokenRule("end", lambda token: isinstance(token, str) and token in END_MARKERS, _process_end),
    TokenRule(
        "choice-marker",
        lambda token: isinstance(token, str) and token in CHOICE_MARKERS,
        _process_choice_marker,
    ),
    TokenRule("choice-container", is_choice_container, _process_choice_container),
    TokenRule(
        "tag", lambda token: isinstance(token, Mapping) and TAG_KEY in token, _process_tag
    ),
    TokenRule(
        "variable",
        lambda token: isinstance(token, Mapping) and VARIABLE_KEY in token,
        _process_variable,
    ),
    TokenRule("glue", lambda token: token == GLUE, _process_glue),
)
"""Grammar rules in priority order; the first match wins."""


def process_tokens(tokens: Sequence[Any], context: ParsingContext) -> None:
    """Feed ``tokens`` through the rule table, recursing into nested content."""

    for token in tokens:
        try:
            _process_token(token, context)
        except _RECOVERABLE_ERRORS as exc:
            logger.debug("Skipping malformed token %r: %s", token, exc)


def _process_token(token: Any, context: ParsingContext) -> None:
    for rule in TOKEN_RULES:
        if rule.matches(token):
            rule.process(token, context)
            return

    if isinstance(token, list):
        process_tokens(token, context)
    elif isinstance(token, Mapping):
        _scan_object(token, context)


def _scan_object(token: Mapping[str, Any], context: ParsingContext) -> None:
    """Treat keys of an unrecognised object as potential choice branches."""

    for key, value in token.items():
        if not isinstance(key, str) or key.startswith(TAG_KEY) or key == DIVERT_KEY:
            continue

        target = _divert_target(value)
        if key.startswith(TEXT_PREFIX) and target is not None:
            label = key[len(TEXT_PREFIX):].strip()
            context.flush_choice()
            context.choices.append(StoryChoice(text=label or CONTINUE_LABEL, next_node=target))
            continue

        if not isinstance(value, (list, Mapping)):
            continue

        nested = ParsingContext()
        nested.current_choice = _PendingChoice(label=key.lstrip(TEXT_PREFIX).strip())
        process_tokens(value if isinstance(value, list) else [value], nested)
        tentative = nested.current_choice
        nested.current_choice = None
        if tentative is not None and not tentative.next_node:
            # Not a branch after all: keep whatever prose it carried.
            if tentative.text:
                nested.append_text(tentative.text)
        elif tentative is not None:
            nested.current_choice = tentative
            nested.flush_choice()
        context.merge(nested)


def _first_text(option: Any) -> str:
    if _is_text(option):
        return option[len(TEXT_PREFIX):].strip()
    if isinstance(option, list):
        for item in option:
            text = _first_text(item)
            if text:
                return text
    return ""


def _first_divert(option: Any) -> str | None:
    target = _divert_target(option)
    if target is not None:
        return target
    if isinstance(option, list):
        for item in option:
            target = _first_divert(item)
            if target is not None:
                return target
    return None


def parse_token_stream(tokens: Sequence[Any]) -> ParsedInkNode:
    """Parse a raw token list into a :class:`ParsedInkNode`.

    This never raises for malformed content: unrecognised tokens are logged
    at debug level and skipped.
    """

    context = ParsingContext()
    if isinstance(tokens, (list, tuple)):
        process_tokens(tokens, context)
    else:
        logger.debug("Ignoring non-sequence token stream: %r", tokens)
    context.flush_choice()
    return _finalise(context)


def parse_ink_node(raw: Any) -> ParsedInkNode:
    """Parse any of the node shapes found in story documents.

    Nodes may be a bare token list, a ``{"content": [...]}`` object, an
    already-normalised ``{"text": ..., "choices": [...]}`` object, or a
    mixture of both. Explicit ``text``/``choices`` fields win over what the
    token stream produced.
    """

    if isinstance(raw, (list, tuple)):
        return parse_token_stream(raw)
    if isinstance(raw, str):
        return parse_token_stream([raw])
    if not isinstance(raw, Mapping):
        logger.debug("Ignoring node of unsupported type %s", type(raw).__name__)
        return ParsedInkNode()

    context = ParsingContext()
    content = raw.get("content")
    if isinstance(content, list):
        process_tokens(content, context)
        context.flush_choice()

    shaped = StoryNode.from_payload(raw)
    if isinstance(raw.get("text"), str):
        context.text = shaped.text
    if isinstance(raw.get("choices"), list):
        context.choices = list(shaped.choices)
    context.is_ending = context.is_ending or shaped.is_ending

    parsed = _finalise(context)
    if shaped.metadata:
        metadata = dict(parsed.metadata)
        metadata.update(shaped.metadata)
        parsed = ParsedInkNode(
            text=parsed.text,
            choices=parsed.choices,
            next_node=parsed.next_node,
            is_ending=parsed.is_ending,
            metadata=metadata,
        )
    return parsed


def _finalise(context: ParsingContext) -> ParsedInkNode:
    choices = list(context.choices)
    if context.next_node and not choices:
        choices.append(StoryChoice(text=CONTINUE_LABEL, next_node=context.next_node))

    metadata: Dict[str, Any] = {}
    if context.tags:
        metadata["tags"] = list(context.tags)
    if context.variables:
        metadata["variables"] = dict(context.variables)
    if context.used_glue:
        metadata["hasGlue"] = True

    return ParsedInkNode(
        text=context.text.rstrip(),
        choices=tuple(choices),
        next_node=context.next_node,
        is_ending=context.is_ending,
        metadata=metadata,
    )


__all__ = [
    "CHOICE_MARKERS",
    "DIVERT_KEY",
    "END_MARKERS",
    "GLUE",
    "NEW_LINE",
    "ParsedInkNode",
    "ParsingContext",
    "TEXT_PREFIX",
    "TOKEN_RULES",
    "TokenRule",
    "parse_ink_node",
    "parse_token_stream",
    "is_choice_container",
    "process_tokens",
]
