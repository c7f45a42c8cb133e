"""Core package for ingesting Ink-style stories and paging through them."""

from .story_model import (
    CONTINUE_LABEL,
    RESERVED_KEYS,
    CustomStory,
    NodeMappings,
    StoryChoice,
    StoryFormat,
    StoryNode,
)
from .token_parser import ParsedInkNode, parse_ink_node, parse_token_stream
from .node_extraction import (
    detect_story_format,
    extract_story,
    load_sample_document,
    load_story_document,
    load_story_from_file,
    load_story_from_json,
)
from .story_graph import build_node_graph, find_dead_ends, find_start_node, traverse_story
from .page_mapping import StoryStructure, analyze_story_structure, generate_page_mappings
from .mapping_validation import (
    MappingResult,
    MappingValidationReport,
    build_fallback_mappings,
    generate_node_mappings,
    validate_node_mappings,
)
from .script_export import export_ink_script
from .script_runtime import (
    ChoiceUnavailableError,
    CompiledStoryRuntime,
    RuntimeStateError,
    ScriptRuntime,
)
from .navigation import NavigationOutcome, NavigationState, ReplayPolicy, StoryNavigator
from .graph_navigation import GraphNavigator
from .runtime_navigation import RuntimeCheckpoint, RuntimeNavigator
from .session import MappingRefresher, NavigatorBackend, ReadingSession, create_navigator
from .settings import ReaderSettings, configure_logging

__all__ = [
    "CONTINUE_LABEL",
    "RESERVED_KEYS",
    "CustomStory",
    "NodeMappings",
    "StoryChoice",
    "StoryFormat",
    "StoryNode",
    "ParsedInkNode",
    "parse_ink_node",
    "parse_token_stream",
    "detect_story_format",
    "extract_story",
    "load_sample_document",
    "load_story_document",
    "load_story_from_file",
    "load_story_from_json",
    "build_node_graph",
    "find_dead_ends",
    "find_start_node",
    "traverse_story",
    "StoryStructure",
    "analyze_story_structure",
    "generate_page_mappings",
    "MappingResult",
    "MappingValidationReport",
    "build_fallback_mappings",
    "generate_node_mappings",
    "validate_node_mappings",
    "export_ink_script",
    "ChoiceUnavailableError",
    "CompiledStoryRuntime",
    "RuntimeStateError",
    "ScriptRuntime",
    "NavigationOutcome",
    "NavigationState",
    "ReplayPolicy",
    "StoryNavigator",
    "GraphNavigator",
    "RuntimeCheckpoint",
    "RuntimeNavigator",
    "MappingRefresher",
    "NavigatorBackend",
    "ReadingSession",
    "create_navigator",
    "ReaderSettings",
    "configure_logging",
]
