"""Pytest configuration and shared fixtures."""

import os
from pathlib import Path

import pytest

from branchcraft.graph.graph import StoryGraph
from tests.fixtures.adventures import make_adventure


@pytest.fixture(autouse=True, scope="session")
def isolate_config_env() -> None:
    """Ignore a developer's BRANCHCRAFT_CONFIG during test runs.

    Set BRANCHCRAFT_TEST_CONFIG=true to keep it for debugging.
    """
    if os.environ.get("BRANCHCRAFT_TEST_CONFIG", "").lower() != "true":
        os.environ.pop("BRANCHCRAFT_CONFIG", None)
        os.environ.pop("BRANCHCRAFT_LOG_DIR", None)


@pytest.fixture
def project_root() -> Path:
    """Return the project root directory."""
    return Path(__file__).parent.parent


@pytest.fixture
def graph() -> StoryGraph:
    """Story graph: start -> middle -> end, plus a side scene reachable from start."""
    return StoryGraph(
        make_adventure(
            {
                "start": ["middle", "side"],
                "middle": ["end"],
                "side": ["end"],
                "end": [],
            }
        )
    )
