"""Consistency checks for node/page mappings and the fallback numbering."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Tuple

from .page_mapping import StoryStructure, analyze_story_structure, generate_page_mappings
from .story_model import CustomStory, NodeMappings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MappingValidationReport:
    """Outcome of the three mapping checks."""

    unmapped_nodes: Tuple[str, ...] = ()
    page_numbers: Tuple[int, ...] = ()
    is_contiguous: bool = True
    broken_pairs: Tuple[Tuple[str, int], ...] = ()

    @property
    def is_complete(self) -> bool:
        return not self.unmapped_nodes

    @property
    def is_bidirectional(self) -> bool:
        return not self.broken_pairs

    @property
    def is_valid(self) -> bool:
        return self.is_complete and self.is_contiguous and self.is_bidirectional


@dataclass(frozen=True)
class MappingResult:
    """Mappings ready for navigation plus how they were produced."""

    mappings: NodeMappings
    structure: StoryStructure
    report: MappingValidationReport
    used_fallback: bool = False

    @property
    def total_pages(self) -> int:
        return self.mappings.total_pages

    @property
    def start_node(self) -> str | None:
        return self.structure.start_node


def validate_node_mappings(story: CustomStory, mappings: NodeMappings) -> MappingValidationReport:
    """Check completeness, contiguity and bidirectionality of ``mappings``.

    Each failed check is logged on its own so the three problems can be told
    apart in the log.
    """

    unmapped = tuple(node_id for node_id in story if node_id not in mappings.node_to_page)
    if unmapped:
        logger.warning(
            "Mapping is missing %d node(s): %s", len(unmapped), ", ".join(unmapped[:5])
        )

    pages = tuple(sorted(mappings.page_to_node))
    mapped_values = sorted(mappings.node_to_page.values())
    expected = list(range(1, len(story) + 1))
    contiguous = list(pages) == expected and mapped_values == expected
    if not contiguous:
        logger.warning("Page numbers are not the contiguous range 1..%d: %s", len(story), pages)

    broken = tuple(
        (node_id, page)
        for node_id, page in mappings.node_to_page.items()
        if mappings.page_to_node.get(page) != node_id
    )
    if broken:
        logger.warning("Found %d inconsistent node/page pair(s): %s", len(broken), broken[:5])

    return MappingValidationReport(
        unmapped_nodes=unmapped,
        page_numbers=pages,
        is_contiguous=contiguous,
        broken_pairs=broken,
    )


def build_fallback_mappings(story: CustomStory) -> NodeMappings:
    """Number the nodes ``1..N`` in declaration order.

    A fresh mapping is returned on every call; the result passes all three
    validation checks by construction.
    """

    return generate_page_mappings(story.node_ids())


def generate_node_mappings(
    story: CustomStory,
    *,
    structure: StoryStructure | None = None,
) -> MappingResult:
    """Compute flow-ordered mappings, validating them and falling back if needed."""

    if structure is None:
        structure = analyze_story_structure(story)

    report = validate_node_mappings(story, structure.mappings)
    if report.is_valid:
        return MappingResult(mappings=structure.mappings, structure=structure, report=report)

    logger.warning("Discarding flow-ordered mapping; falling back to declaration order")
    fallback = build_fallback_mappings(story)
    return MappingResult(
        mappings=fallback,
        structure=structure,
        report=report,
        used_fallback=True,
    )


__all__ = [
    "MappingResult",
    "MappingValidationReport",
    "build_fallback_mappings",
    "generate_node_mappings",
    "validate_node_mappings",
]
