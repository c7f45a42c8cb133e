from __future__ import annotations

import logging

from inkreader import (
    CustomStory,
    NodeMappings,
    StoryNode,
    analyze_story_structure,
    build_fallback_mappings,
    extract_story,
    generate_node_mappings,
    generate_page_mappings,
    load_sample_document,
    validate_node_mappings,
)
from inkreader.page_mapping import StoryStructure, compute_page_sequence


def _assert_consistent(story: CustomStory, mappings: NodeMappings) -> None:
    assert set(mappings.node_to_page) == set(story)
    assert sorted(mappings.page_to_node) == list(range(1, len(story) + 1))
    for node_id, page in mappings.node_to_page.items():
        assert mappings.page_to_node[page] == node_id


def test_two_node_story_maps_in_flow_order(branching_document) -> None:
    story = extract_story(branching_document)

    result = generate_node_mappings(story)

    assert dict(result.mappings.node_to_page) == {"root": 1, "b": 2}
    assert result.total_pages == 2
    assert result.start_node == "root"
    assert not result.used_fallback


def test_single_linear_node_has_one_page() -> None:
    story = extract_story({"only": {"text": "Just this.", "choices": []}})

    result = generate_node_mappings(story)

    assert result.total_pages == 1
    assert result.mappings.node_for(1) == "only"


def test_sample_story_pages_follow_breadth_first_order() -> None:
    story = extract_story(load_sample_document())

    result = generate_node_mappings(story)

    assert result.mappings.sequence() == (
        "start",
        "stairs",
        "harbour",
        "lamp_room",
        "waiting",
        "lit",
    )
    _assert_consistent(story, result.mappings)


def test_orphans_are_numbered_after_reachable_nodes(caplog) -> None:
    story = extract_story(
        {
            "island": {"text": "Cut off."},
            "start": {"text": "S", "choices": [{"text": "go", "nextNode": "end"}]},
            "end": {"text": "E", "isEnding": True},
        }
    )

    with caplog.at_level(logging.INFO, logger="inkreader.page_mapping"):
        structure = analyze_story_structure(story)

    assert structure.reachable == ("start", "end")
    assert structure.orphans == ("island",)
    assert structure.mappings.page_for("island") > structure.reachable_pages
    assert "disconnected" in caplog.text
    _assert_consistent(story, structure.mappings)


def test_compute_page_sequence_with_start_outside_graph_lists_everything_as_orphans() -> None:
    story = CustomStory({"a": StoryNode("A"), "b": StoryNode("B")})

    reachable, orphans = compute_page_sequence(story, graph={}, start="a")

    assert reachable == ()
    assert orphans == ("a", "b")


def test_structure_payload_exposes_graph_findings(branching_document) -> None:
    branching_document["b"]["isEnding"] = False
    structure = analyze_story_structure(extract_story(branching_document))

    payload = structure.to_payload()

    assert payload["startNode"] == "root"
    assert payload["totalPages"] == 2
    assert payload["deadEnds"] == ["b"]
    assert payload["pageToNode"] == {"1": "root", "2": "b"}


def test_compiled_script_mapping(compiled_document) -> None:
    story = extract_story(compiled_document)

    result = generate_node_mappings(story)

    assert result.start_node == "fragment_1"
    assert result.mappings.sequence() == ("fragment_1", "fragment_2", "battle", "escape")


def test_validation_reports_each_problem(caplog) -> None:
    story = CustomStory({"a": StoryNode(), "b": StoryNode(), "c": StoryNode()})
    mappings = NodeMappings(
        node_to_page={"a": 1, "b": 3},
        page_to_node={1: "a", 3: "c"},
    )

    with caplog.at_level(logging.WARNING, logger="inkreader.mapping_validation"):
        report = validate_node_mappings(story, mappings)

    assert report.unmapped_nodes == ("c",)
    assert not report.is_contiguous
    assert report.broken_pairs == (("b", 3),)
    assert not report.is_valid
    assert len(caplog.records) == 3


def test_valid_mappings_pass_validation() -> None:
    story = CustomStory({"a": StoryNode(), "b": StoryNode()})

    report = validate_node_mappings(story, generate_page_mappings(["b", "a"]))

    assert report.is_complete
    assert report.is_contiguous
    assert report.is_bidirectional
    assert report.is_valid


def test_invalid_flow_mapping_falls_back_to_declaration_order(caplog) -> None:
    story = CustomStory({"a": StoryNode(), "b": StoryNode(), "c": StoryNode()})
    broken = StoryStructure(
        start_node="a",
        mappings=NodeMappings(node_to_page={"a": 1}, page_to_node={1: "a"}),
        reachable=("a",),
        orphans=(),
        dead_ends=(),
    )

    with caplog.at_level(logging.WARNING, logger="inkreader.mapping_validation"):
        result = generate_node_mappings(story, structure=broken)

    assert result.used_fallback
    assert result.mappings.sequence() == ("a", "b", "c")
    assert "falling back" in caplog.text
    _assert_consistent(story, result.mappings)


def test_fallback_mappings_are_fresh_each_call() -> None:
    story = CustomStory({"x": StoryNode(), "y": StoryNode()})

    first = build_fallback_mappings(story)
    second = build_fallback_mappings(story)

    assert first == second
    assert first is not second
    assert validate_node_mappings(story, first).is_valid
