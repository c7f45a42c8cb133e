from __future__ import annotations

import json

import pytest

from inkreader import (
    ChoiceUnavailableError,
    CompiledStoryRuntime,
    CustomStory,
    RuntimeStateError,
    StoryNode,
    extract_story,
)


def test_runtime_steps_through_linear_story(linear_document) -> None:
    runtime = CompiledStoryRuntime(extract_story(linear_document))

    assert runtime.can_continue
    assert runtime.current_node is None
    assert runtime.continue_story() == "One"
    assert runtime.current_node == "start"
    assert runtime.current_choices == ()
    assert runtime.continue_story() == "Two"
    assert runtime.continue_story() == "Three"
    assert not runtime.can_continue

    with pytest.raises(RuntimeStateError):
        runtime.continue_story()


def test_runtime_stops_at_decision_points(forked_document) -> None:
    runtime = CompiledStoryRuntime(extract_story(forked_document))
    runtime.continue_story()
    runtime.continue_story()

    assert runtime.current_node == "hall"
    assert not runtime.can_continue
    assert [choice.text for choice in runtime.current_choices] == ["Left", "Right"]

    runtime.choose_choice_index(1)
    assert runtime.can_continue
    assert runtime.continue_story() == "Right room"


def test_runtime_rejects_bad_choices(branching_document) -> None:
    branching_document["root"]["choices"].append({"text": "vanish", "nextNode": "nowhere"})
    runtime = CompiledStoryRuntime(extract_story(branching_document))
    runtime.continue_story()

    with pytest.raises(ChoiceUnavailableError):
        runtime.choose_choice_index(5)
    with pytest.raises(ChoiceUnavailableError):
        runtime.choose_choice_index(1)
    assert not runtime.can_continue


def test_runtime_state_round_trip(forked_document) -> None:
    runtime = CompiledStoryRuntime(extract_story(forked_document))
    runtime.continue_story()
    token = runtime.save_state()

    runtime.continue_story()
    runtime.choose_choice_index(0)
    runtime.continue_story()
    assert runtime.current_node == "left"

    runtime.load_state(token)
    assert runtime.current_node == "start"
    assert runtime.can_continue


@pytest.mark.parametrize(
    "token",
    [
        "not json",
        "[]",
        json.dumps({"version": 99, "current": None, "pending": "start"}),
        json.dumps({"version": 1, "current": None}),
        json.dumps({"version": 1, "current": "ghost", "pending": None}),
    ],
)
def test_runtime_rejects_bad_state_tokens(linear_document, token: str) -> None:
    runtime = CompiledStoryRuntime(extract_story(linear_document))
    runtime.continue_story()

    with pytest.raises(RuntimeStateError):
        runtime.load_state(token)
    assert runtime.current_node == "start"


def test_runtime_reset_rewinds_to_start(linear_document) -> None:
    runtime = CompiledStoryRuntime(extract_story(linear_document))
    runtime.continue_story()
    runtime.continue_story()

    runtime.reset_state()

    assert runtime.current_node is None
    assert runtime.continue_story() == "One"


def test_runtime_requires_known_start() -> None:
    with pytest.raises(ValueError):
        CompiledStoryRuntime(CustomStory())
    with pytest.raises(ValueError):
        CompiledStoryRuntime(CustomStory({"a": StoryNode()}), start_node="b")
