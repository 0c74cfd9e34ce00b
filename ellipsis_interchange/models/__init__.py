"""Canonical story models."""

from .story import (
    Character,
    ChatMessage,
    Coords,
    DynamicEntry,
    Location,
    MessageKind,
    Narrative,
    NarrativeState,
    NarrativeStub,
    Scenario,
    StaticEntry,
    Story,
    WorldMap,
)

__all__ = [
    "Character",
    "ChatMessage",
    "Coords",
    "DynamicEntry",
    "Location",
    "MessageKind",
    "Narrative",
    "NarrativeState",
    "NarrativeStub",
    "Scenario",
    "StaticEntry",
    "Story",
    "WorldMap",
]
