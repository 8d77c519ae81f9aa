"""Graph package - the story graph host and its integrity errors.

The editing core talks to its host through the protocols in
``branchcraft.graph.callbacks``. ``StoryGraph`` is the in-memory reference
host used by the CLI and tests.
"""

from branchcraft.graph.callbacks import EditorCallbacks, EditorState
from branchcraft.graph.errors import (
    ChoiceExistsError,
    ChoiceNotFoundError,
    GraphIntegrityError,
    SceneExistsError,
    SceneNotFoundError,
    StatExistsError,
    StatNotFoundError,
)
from branchcraft.graph.graph import StoryGraph

__all__ = [
    "ChoiceExistsError",
    "ChoiceNotFoundError",
    "EditorCallbacks",
    "EditorState",
    "GraphIntegrityError",
    "SceneExistsError",
    "SceneNotFoundError",
    "StatExistsError",
    "StatNotFoundError",
    "StoryGraph",
]
