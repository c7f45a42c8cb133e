"""Test configuration for the Ink reader project."""

from __future__ import annotations

import sys
from pathlib import Path
from typing import Any, Dict

import pytest

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))


@pytest.fixture
def branching_document() -> Dict[str, Any]:
    """Two-node named graph: ``root`` chooses its way into ending ``b``."""

    return {
        "root": {"text": "A", "choices": [{"text": "go", "nextNode": "b"}]},
        "b": {"text": "B", "choices": [], "isEnding": True},
    }


@pytest.fixture
def linear_document() -> Dict[str, Any]:
    """Three passages joined by single "Continue" choices."""

    return {
        "start": {"text": "One", "choices": [{"text": "Continue", "nextNode": "two"}]},
        "two": {"text": "Two", "choices": [{"text": "Continue", "nextNode": "three"}]},
        "three": {"text": "Three", "choices": [], "isEnding": True},
    }


@pytest.fixture
def forked_document() -> Dict[str, Any]:
    """A linear opening followed by a two-way branch and a cycle back."""

    return {
        "start": {"text": "Gate", "choices": [{"text": "Continue", "nextNode": "hall"}]},
        "hall": {
            "text": "Hall",
            "choices": [
                {"text": "Left", "nextNode": "left"},
                {"text": "Right", "nextNode": "right"},
            ],
        },
        "left": {"text": "Left room", "choices": [{"text": "Back", "nextNode": "hall"}]},
        "right": {"text": "Right room", "choices": [], "isEnding": True},
    }


@pytest.fixture
def compiled_document() -> Dict[str, Any]:
    """Minimal compiled script: anonymous root content plus a named section."""

    return {
        "inkVersion": 21,
        "root": [
            "^Once upon a time.",
            "\n",
            "^Chapter 2",
            "\n",
            "^The dragon woke.",
            "\n",
            ["*", "^Fight", {"->": "battle"}, "*", "^Flee", {"->": "escape"}],
            "done",
            {
                "battle": ["^Steel rang on scale.", "\n", "end"],
                "escape": ["^You ran home.", "\n", "end"],
                "#f": 1,
            },
        ],
        "listDefs": {},
    }

