"""Pydantic models for configuration validation."""

from pathlib import Path
from pydantic import BaseModel, Field, field_validator


class ImageConfig(BaseModel):
    """Portrait processing configuration."""

    max_height: int = Field(default=2000, gt=0, le=10000)
    jpeg_quality: int = Field(default=85, ge=1, le=95)
    normalize_on_import: bool = Field(
        default=True,
        description="Downscale and re-encode imported portraits as JPEG"
    )


class RemoteFetchConfig(BaseModel):
    """Legacy remote image fetching (export only)."""

    enabled: bool = True
    timeout_seconds: float = Field(default=30.0, gt=0)


class CardConfig(BaseModel):
    """Character card (PNG) settings."""

    keyword: str = "chara"
    scan_depth: int = Field(default=100, ge=0)
    token_budget: int = Field(default=2048, gt=0)

    @field_validator('keyword')
    @classmethod
    def validate_keyword(cls, v: str) -> str:
        """PNG text keywords are 1-79 Latin-1 characters."""
        if not 1 <= len(v) <= 79:
            raise ValueError('keyword must be 1-79 characters long')
        try:
            v.encode('latin-1')
        except UnicodeEncodeError:
            raise ValueError('keyword must be Latin-1 encodable')
        return v


class DefaultsConfig(BaseModel):
    """Fallback values used when a source file leaves something out."""

    user_name: str = "You"
    story_name: str = "Imported Character"
    greeting_template: str = "The story of {name} begins."
    narrative_name: str = "Imported Chat"


class PathsConfig(BaseModel):
    """File path configuration."""

    images: Path = Path("data/images")

    @field_validator('images')
    @classmethod
    def validate_path(cls, v: Path) -> Path:
        """Ensure paths are cross-platform."""
        return Path(v)


class InterchangeConfig(BaseModel):
    """Top-level codec configuration."""

    debug: bool = False
    images: ImageConfig = Field(default_factory=ImageConfig)
    remote: RemoteFetchConfig = Field(default_factory=RemoteFetchConfig)
    card: CardConfig = Field(default_factory=CardConfig)
    defaults: DefaultsConfig = Field(default_factory=DefaultsConfig)
    paths: PathsConfig = Field(default_factory=PathsConfig)
