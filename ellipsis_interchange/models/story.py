"""
Canonical Story Models
=====================

Pydantic models for the canonical Story representation every interchange
format is translated to and from.

Field names are snake_case; the few camelCase keys used by the host
application's saved files are accepted and emitted through aliases.
"""

from datetime import datetime
from enum import Enum
from typing import Optional, Dict, List, Any
from pydantic import BaseModel, ConfigDict, Field, model_validator


def _now() -> str:
    return datetime.now().isoformat()


class _CanonicalModel(BaseModel):
    """Base for models that carry unmodelled application settings through."""
    model_config = ConfigDict(populate_by_name=True, extra="allow")


class MessageKind(str, Enum):
    """How a chat turn participates in the story."""
    ORDINARY = "ordinary"
    HIDDEN_EXAMPLE = "hidden_example"
    SYSTEM_EVENT = "system_event"


class Character(_CanonicalModel):
    """A participant in the story (AI persona, narrator or the user)."""
    id: str
    name: str = ""
    description: str = ""  # persona text
    short_description: str = ""
    model_instructions: str = ""
    tags: List[str] = Field(default_factory=list)
    image_url: str = ""
    extra_portraits: List[Dict[str, Any]] = Field(default_factory=list)
    is_user: bool = False
    is_active: bool = True
    is_narrator: bool = False


class DynamicEntry(_CanonicalModel):
    """Trigger-revealed lore entry with one or more content variants."""
    id: str
    title: str = ""
    triggers: str = ""
    content_fields: List[str] = Field(default_factory=lambda: [""])
    current_index: int = 0
    triggered_at_turn: Optional[int] = None

    @model_validator(mode="after")
    def _clamp_cursor(self) -> "DynamicEntry":
        if not self.content_fields:
            self.content_fields = [""]
        self.current_index = max(0, min(self.current_index, len(self.content_fields) - 1))
        return self

    @property
    def active_content(self) -> str:
        """The content variant the cursor currently points at."""
        return self.content_fields[self.current_index]


class StaticEntry(_CanonicalModel):
    """Always-on lore note."""
    id: str
    title: str = ""
    content: str = ""


class ChatMessage(_CanonicalModel):
    """One turn of a chat history."""
    character_id: Optional[str] = None
    content: str = ""
    type: str = "chat"
    emotion: Optional[str] = None
    timestamp: str = Field(default_factory=_now)
    is_hidden: bool = Field(default=False, alias="isHidden")

    @property
    def kind(self) -> MessageKind:
        if self.type != "chat":
            return MessageKind.SYSTEM_EVENT
        if self.is_hidden:
            return MessageKind.HIDDEN_EXAMPLE
        return MessageKind.ORDINARY


class Coords(BaseModel):
    x: Optional[int] = None
    y: Optional[int] = None


class Location(_CanonicalModel):
    """One cell of the world map grid."""
    coords: Coords
    name: str = ""
    description: str = ""
    prompt: str = ""
    image_url: str = Field(default="", alias="imageUrl")
    local_static_entries: List[StaticEntry] = Field(default_factory=list)


class WorldMap(_CanonicalModel):
    grid: List[Location] = Field(default_factory=list)
    current_location: Optional[Coords] = Field(default=None, alias="currentLocation")
    destination: Optional[Coords] = None
    path: List[Coords] = Field(default_factory=list)

    def location_at(self, coords: Optional[Coords]) -> Optional[Location]:
        """Return the grid cell at the given coordinates, if any."""
        if coords is None:
            return None
        for location in self.grid:
            if location.coords.x == coords.x and location.coords.y == coords.y:
                return location
        return None


class Scenario(_CanonicalModel):
    """A starting point for a new narrative, with its settings snapshot."""
    id: str
    name: str = ""
    message: str = ""
    active_character_ids: List[str] = Field(default_factory=list)
    dynamic_entries: List[DynamicEntry] = Field(default_factory=list)
    example_dialogue: List[ChatMessage] = Field(default_factory=list)
    static_entries: List[StaticEntry] = Field(default_factory=list)
    world_map: Optional[WorldMap] = Field(default=None, alias="worldMap")
    prompts: Dict[str, Any] = Field(default_factory=dict)


class NarrativeStub(BaseModel):
    """Reference to a separately stored narrative."""
    id: str
    name: str = ""
    last_modified: Optional[str] = None


class NarrativeState(_CanonicalModel):
    chat_history: List[ChatMessage] = Field(default_factory=list)
    message_counter: int = Field(default=0, alias="messageCounter")
    static_entries: List[StaticEntry] = Field(default_factory=list)
    world_map: Optional[WorldMap] = Field(default=None, alias="worldMap")

    def hidden_examples(self) -> List[ChatMessage]:
        return [m for m in self.chat_history if m.kind is MessageKind.HIDDEN_EXAMPLE]

    def first_ordinary_message(self) -> Optional[ChatMessage]:
        return next((m for m in self.chat_history if m.kind is MessageKind.ORDINARY), None)


class Narrative(_CanonicalModel):
    """A played-out chat, stored apart from its story."""
    id: str
    name: str = ""
    last_modified: str = Field(default_factory=_now)
    active_character_ids: Optional[List[str]] = None
    state: NarrativeState = Field(default_factory=NarrativeState)

    def to_stub(self) -> NarrativeStub:
        return NarrativeStub(id=self.id, name=self.name, last_modified=self.last_modified)


class Story(_CanonicalModel):
    """Canonical story: characters, lore, scenarios and narrative stubs."""
    id: str
    name: str = ""
    created_date: str = Field(default_factory=_now)
    last_modified: str = Field(default_factory=_now)
    tags: List[str] = Field(default_factory=list)
    characters: List[Character] = Field(default_factory=list)
    dynamic_entries: List[DynamicEntry] = Field(default_factory=list)
    scenarios: List[Scenario] = Field(default_factory=list)
    narratives: List[NarrativeStub] = Field(default_factory=list)

    def get_character(self, character_id: Optional[str]) -> Optional[Character]:
        return next((c for c in self.characters if c.id == character_id), None)

    def primary_character(self) -> Optional[Character]:
        """First non-user character, the default export subject."""
        return next((c for c in self.characters if not c.is_user), None)

    def user_character(self) -> Optional[Character]:
        return next((c for c in self.characters if c.is_user), None)
