from __future__ import annotations

import pytest

from inkreader import CONTINUE_LABEL, CustomStory, NodeMappings, StoryChoice, StoryNode
from inkreader.story_model import is_reserved_key, looks_like_story_node


def test_story_choice_from_payload_normalises_fields() -> None:
    choice = StoryChoice.from_payload({"text": "  Open the door ", "nextNode": " hall "})

    assert choice == StoryChoice(text="Open the door", next_node="hall")
    assert choice.to_payload() == {"text": "Open the door", "nextNode": "hall"}


def test_story_choice_from_payload_defaults_missing_text_to_continue() -> None:
    choice = StoryChoice.from_payload({"nextNode": "next"})

    assert choice is not None
    assert choice.text == CONTINUE_LABEL
    assert choice.is_auto_continue


def test_story_choice_from_payload_rejects_non_mapping() -> None:
    assert StoryChoice.from_payload("go north") is None
    assert StoryChoice.from_payload(None) is None


def test_story_node_from_payload_drops_junk_choices() -> None:
    node = StoryNode.from_payload(
        {
            "text": "A quiet room.",
            "choices": [{"text": "Leave", "nextNode": "hall"}, "oops", 3],
            "isEnding": False,
        }
    )

    assert node.text == "A quiet room."
    assert node.choices == (StoryChoice("Leave", "hall"),)
    assert node.targets() == ("hall",)
    assert not node.has_auto_continue


def test_story_node_rejects_non_string_text() -> None:
    with pytest.raises(TypeError):
        StoryNode(text=42)  # type: ignore[arg-type]


def test_story_node_metadata_is_read_only() -> None:
    node = StoryNode(text="x", metadata={"tags": ["intro"]})

    with pytest.raises(TypeError):
        node.metadata["tags"] = []  # type: ignore[index]


def test_story_node_payload_includes_ending_and_metadata() -> None:
    node = StoryNode(text="Fin", is_ending=True, metadata={"tags": ("end",)})

    assert node.to_payload() == {
        "text": "Fin",
        "choices": [],
        "isEnding": True,
        "metadata": {"tags": ["end"]},
    }


def test_custom_story_preserves_declaration_order() -> None:
    story = CustomStory([("b", StoryNode("B")), ("a", StoryNode("A"))])

    assert story.node_ids() == ("b", "a")
    assert list(story) == ["b", "a"]
    assert "a" in story
    assert story.get("missing") is None


def test_custom_story_rejects_reserved_node_ids() -> None:
    with pytest.raises(ValueError):
        CustomStory({"inkVersion": StoryNode("x")})


def test_custom_story_rejects_non_node_values() -> None:
    with pytest.raises(TypeError):
        CustomStory({"a": {"text": "raw"}})  # type: ignore[dict-item]


def test_custom_story_keeps_reserved_keys_apart_from_nodes() -> None:
    story = CustomStory(
        {
            "start": StoryNode("Hello", (StoryChoice("Go", "end"),)),
            "end": StoryNode("Bye", is_ending=True),
        },
        reserved={"inkVersion": 21},
    )

    assert story.reserved["inkVersion"] == 21
    assert "inkVersion" not in story
    assert story.node_ids() == ("start", "end")
    assert story.get("start").targets() == ("end",)


def test_reserved_key_helpers() -> None:
    assert is_reserved_key("listDefs")
    assert is_reserved_key(3)
    assert not is_reserved_key("start")
    assert looks_like_story_node({"text": "x"})
    assert not looks_like_story_node(["^x"])


def test_node_mappings_from_sequence_is_mutually_inverse() -> None:
    mappings = NodeMappings.from_sequence(["start", "hall", "end"])

    assert mappings.total_pages == 3
    assert mappings.page_for("hall") == 2
    assert mappings.node_for(3) == "end"
    assert mappings.node_for(4) is None
    assert mappings.sequence() == ("start", "hall", "end")
    for node_id, page in mappings.node_to_page.items():
        assert mappings.page_to_node[page] == node_id


def test_node_mappings_payload_uses_string_page_keys() -> None:
    mappings = NodeMappings.from_sequence(["root", "b"])

    assert mappings.to_payload() == {
        "nodeToPage": {"root": 1, "b": 2},
        "pageToNode": {"1": "root", "2": "b"},
    }
