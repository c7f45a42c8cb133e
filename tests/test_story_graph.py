from __future__ import annotations

from inkreader import (
    CustomStory,
    StoryChoice,
    StoryNode,
    build_node_graph,
    extract_story,
    find_dead_ends,
    find_start_node,
    traverse_story,
)
from inkreader.story_model import StoryFormat


def test_graph_drops_dangling_and_duplicate_edges() -> None:
    story = CustomStory(
        {
            "start": StoryNode(
                "S",
                (
                    StoryChoice("a", "end"),
                    StoryChoice("b", "end"),
                    StoryChoice("lost", "nowhere"),
                    StoryChoice("blank", ""),
                ),
            ),
            "end": StoryNode("E", is_ending=True),
        }
    )

    graph = build_node_graph(story)

    assert dict(graph) == {"start": ("end",), "end": ()}


def test_find_start_node_preference() -> None:
    assert find_start_node(CustomStory({"x": StoryNode(), "root": StoryNode()})) == "root"
    assert (
        find_start_node(CustomStory({"root": StoryNode(), "start": StoryNode()}))
        == "start"
    )
    assert find_start_node(CustomStory({"x": StoryNode(), "y": StoryNode()})) == "x"
    assert find_start_node(CustomStory()) is None

    compiled = CustomStory(
        {"intro": StoryNode(), "fragment_1": StoryNode()},
        story_format=StoryFormat.COMPILED_SCRIPT,
    )
    assert find_start_node(compiled) == "fragment_1"


def test_traverse_story_is_breadth_first() -> None:
    story = extract_story(
        {
            "start": {
                "text": "",
                "choices": [
                    {"text": "1", "nextNode": "a"},
                    {"text": "2", "nextNode": "b"},
                ],
            },
            "a": {"text": "", "choices": [{"text": "deep", "nextNode": "c"}]},
            "b": {"text": "", "choices": [{"text": "loop", "nextNode": "start"}]},
            "c": {"text": "", "choices": []},
        }
    )

    assert traverse_story("start", build_node_graph(story)) == ("start", "a", "b", "c")


def test_traverse_story_from_unknown_start_is_empty() -> None:
    assert traverse_story("ghost", {"a": ()}) == ()


def test_find_dead_ends_ignores_endings() -> None:
    story = CustomStory(
        {
            "start": StoryNode("S", (StoryChoice("go", "stuck"), StoryChoice("fin", "fin"))),
            "stuck": StoryNode("Nothing here", (StoryChoice("broken", "missing"),)),
            "fin": StoryNode("The End", is_ending=True),
        }
    )

    assert find_dead_ends(story) == ("stuck",)
