"""
Interchange Data Models
======================

Pydantic models for the external schemas (character card V2, BYAF archive)
and the import/export result DTOs.
"""

from datetime import datetime
from enum import Enum
from typing import Optional, Dict, List, Any
from pydantic import BaseModel, ConfigDict, Field, field_validator

from ellipsis_interchange.models import Narrative, Story


class _LenientModel(BaseModel):
    """External files often carry explicit nulls; treat them as the field default."""
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    @field_validator("*", mode="before")
    @classmethod
    def _null_to_default(cls, v, info):
        if v is None:
            field = cls.model_fields[info.field_name]
            if not field.is_required():
                return field.get_default(call_default_factory=True)
        return v


# ===========================
# Character Card V2 Format
# ===========================

class CardSpec(str, Enum):
    """Character card specification versions."""
    V2 = "chara_card_v2"
    V3 = "chara_card_v3"


class CharacterBookEntry(_LenientModel):
    """World info / lorebook entry."""
    keys: List[str] = Field(default_factory=list)
    content: str = ""
    extensions: Dict[str, Any] = Field(default_factory=dict)
    enabled: bool = True
    insertion_order: int = 100
    case_sensitive: Optional[bool] = None
    name: Optional[str] = None
    comment: Optional[str] = None


class CharacterBook(_LenientModel):
    """Character lorebook / world info."""
    name: str = ""
    description: str = ""
    scan_depth: Optional[int] = None
    token_budget: Optional[int] = None
    recursive_scanning: bool = False
    extensions: Dict[str, Any] = Field(default_factory=dict)
    entries: List[CharacterBookEntry] = Field(default_factory=list)


class CardData(_LenientModel):
    """Character card V2 data structure."""
    name: str = ""
    description: str = ""
    personality: str = ""
    scenario: str = ""
    first_mes: str = ""
    mes_example: str = ""

    creator_notes: str = ""
    system_prompt: str = ""
    post_history_instructions: str = ""
    alternate_greetings: List[str] = Field(default_factory=list)
    character_book: Optional[CharacterBook] = None

    tags: List[str] = Field(default_factory=list)
    creator: str = ""
    character_version: str = ""
    extensions: Dict[str, Any] = Field(default_factory=dict)


class CharacterCard(_LenientModel):
    """Complete character card V2 structure."""
    spec: str = CardSpec.V2.value
    spec_version: str = "2.0"
    data: CardData


# ===========================
# BYAF Archive Format
# ===========================

class ArchiveManifest(_LenientModel):
    schema_version: int = Field(default=1, alias="schemaVersion")
    created_at: str = Field(default_factory=lambda: datetime.now().isoformat(), alias="createdAt")
    characters: List[str] = Field(default_factory=list)
    scenarios: List[str] = Field(default_factory=list)


class ArchiveLoreItem(_LenientModel):
    id: Optional[str] = None
    order: Optional[str] = None
    key: str = ""
    value: str = ""
    created_at: Optional[str] = Field(default=None, alias="createdAt")
    updated_at: Optional[str] = Field(default=None, alias="updatedAt")


class ArchiveImage(_LenientModel):
    path: str
    label: str = ""


class ArchiveCharacter(_LenientModel):
    schema_version: int = Field(default=1, alias="schemaVersion")
    id: Optional[str] = None
    name: str = ""
    display_name: str = Field(default="", alias="displayName")
    persona: str = ""
    lore_items: List[ArchiveLoreItem] = Field(default_factory=list, alias="loreItems")
    images: List[ArchiveImage] = Field(default_factory=list)
    tags: List[str] = Field(default_factory=list)
    is_nsfw: bool = Field(default=False, alias="isNSFW")
    created_at: Optional[str] = Field(default=None, alias="createdAt")
    updated_at: Optional[str] = Field(default=None, alias="updatedAt")


class ArchiveMessage(_LenientModel):
    text: str = ""
    character_id: Optional[str] = Field(default=None, alias="characterID")


class ArchiveScenario(_LenientModel):
    schema_version: int = Field(default=1, alias="schemaVersion")
    title: str = ""
    can_delete_example_messages: bool = Field(default=True, alias="canDeleteExampleMessages")
    example_messages: List[ArchiveMessage] = Field(default_factory=list, alias="exampleMessages")
    first_messages: List[ArchiveMessage] = Field(default_factory=list, alias="firstMessages")
    formatting_instructions: str = Field(default="", alias="formattingInstructions")
    narrative: str = ""
    model: str = ""
    temperature: float = 1.0
    top_p: float = Field(default=0.9, alias="topP")
    min_p: float = Field(default=0.1, alias="minP")
    min_p_enabled: bool = Field(default=False, alias="minPEnabled")
    top_k: int = Field(default=30, alias="topK")
    repeat_penalty: float = Field(default=1.05, alias="repeatPenalty")
    repeat_last_n: int = Field(default=256, alias="repeatLastN")
    grammar: str = ""
    prompt_template: Optional[str] = Field(default=None, alias="promptTemplate")
    messages: List[Dict[str, Any]] = Field(default_factory=list)


# ===========================
# Import/Export DTOs
# ===========================

class ImportResult(BaseModel):
    """Result of an import: a fresh story plus its narratives and images."""
    story: Story
    narratives: List[Narrative] = Field(default_factory=list)
    image: Optional[bytes] = None  # portrait for story.primary_character()
    image_media_type: Optional[str] = None
    background_image: Optional[bytes] = None
    format: str
    warnings: List[str] = Field(default_factory=list)


class ExportResult(BaseModel):
    """Finished export payload, ready to offer as a download."""
    content: bytes
    filename: str
    media_type: str
    format: str
