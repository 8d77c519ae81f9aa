"""Pydantic models for the adventure graph."""

from branchcraft.models.adventure import (
    FLAG_ACTION_TYPES,
    FLAG_CONDITION_TYPES,
    STAT_ACTION_TYPES,
    STAT_CONDITION_TYPES,
    Action,
    Adventure,
    Choice,
    Condition,
    Connection,
    Flag,
    Position,
    Scene,
    Stat,
)

__all__ = [
    "FLAG_ACTION_TYPES",
    "FLAG_CONDITION_TYPES",
    "STAT_ACTION_TYPES",
    "STAT_CONDITION_TYPES",
    "Action",
    "Adventure",
    "Choice",
    "Condition",
    "Connection",
    "Flag",
    "Position",
    "Scene",
    "Stat",
]
