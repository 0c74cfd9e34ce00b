"""
Lore merging for export.

External formats have a single flat lore list, while a canonical story keeps
lore in three places: the story's dynamic entries, the named locations of the
narrative's world map, and the local notes of the current location. The merge
walks those sources in that fixed order and numbers entries as it goes, so
exporting the same state twice yields the same list.

Titles are not deduplicated across sources.
"""

from dataclasses import dataclass
from enum import Enum
from typing import List, Optional

from ellipsis_interchange.models import Narrative, Story


class LoreSource(Enum):
    DYNAMIC = "dynamic"
    LOCATION = "location"
    LOCAL = "local"


@dataclass(frozen=True)
class MergedLoreEntry:
    """One lore entry flattened for an external format."""
    title: str
    keys: List[str]
    content: str
    insertion_order: int
    source: LoreSource
    entry_id: Optional[str] = None


def split_triggers(triggers: str) -> List[str]:
    """Comma-separated trigger string → list of non-empty keys."""
    return [t.strip() for t in (triggers or "").split(",") if t.strip()]


def merge_lore(
    story: Story,
    narrative: Optional[Narrative],
    include_local: bool = True,
    location_template: str = "Location Description: {description}\n\nLocation Prompt: {prompt}",
) -> List[MergedLoreEntry]:
    """
    Merge every lore source of a story/narrative pair into one ordered list.

    Args:
        story: Story whose dynamic entries come first
        narrative: Narrative providing world map locations and local notes
        include_local: Append the current location's local notes
        location_template: Content layout for location entries

    Returns:
        Entries with strictly increasing insertion_order starting at 0
    """
    merged: List[MergedLoreEntry] = []

    def add(title, keys, content, source, entry_id=None):
        merged.append(MergedLoreEntry(
            title=title,
            keys=keys,
            content=content,
            insertion_order=len(merged),
            source=source,
            entry_id=entry_id,
        ))

    for entry in story.dynamic_entries:
        add(
            entry.title,
            split_triggers(entry.triggers or entry.title),
            entry.active_content,
            LoreSource.DYNAMIC,
            entry.id,
        )

    world_map = narrative.state.world_map if narrative else None
    if world_map is None:
        return merged

    for location in world_map.grid:
        if not location.name:
            continue
        add(
            location.name,
            [location.name],
            location_template.format(
                description=location.description or "(No description)",
                prompt=location.prompt or "(No prompt)",
            ),
            LoreSource.LOCATION,
        )

    if include_local:
        current = world_map.location_at(world_map.current_location)
        for note in (current.local_static_entries if current else []):
            title = note.title or "Local Lore"
            add(title, [title.lower()], note.content or "", LoreSource.LOCAL, note.id)

    return merged
