# ============================================================================
# JOB PAYLOAD MODELS
# ============================================================================
# EPOCH: 1 - QUALITY-GATED WORKER
# STATUS: Core model - Typed input per job kind
# PURPOSE: Validate job payloads before any external call is made
# LAST_REVIEWED: 19 OCT 2026
# EXPORTS: PanelSpec, PageSpec, StorybookPayload, AutoStoryPayload,
#          ScenesPayload, CartoonizePayload, ImageGenerationPayload, PAYLOAD_MODELS
# DEPENDENCIES: pydantic
# ============================================================================
"""
Job Payload Models

One model per JobType. A payload that fails validation becomes an
InputValidationError and the job is failed without retry.
"""

from typing import Dict, List, Optional, Type

from pydantic import BaseModel, Field, field_validator

from core.contracts import Audience, JobType


def _check_url(value: Optional[str]) -> Optional[str]:
    if value in (None, ""):
        return None
    if not value.startswith(("http://", "https://")):
        raise ValueError("must be an http(s) URL")
    return value


class PanelSpec(BaseModel):
    """One planned panel: what happens in it."""
    description: str = Field(..., min_length=1)
    emotion: str = Field(default="neutral")
    dialogue: Optional[str] = None


class PageSpec(BaseModel):
    """One page of panels."""
    page_number: int = Field(..., ge=1)
    panels: List[PanelSpec] = Field(default_factory=list)


class StorybookPayload(BaseModel):
    """Full illustrated storybook from a story and an optional character image."""
    title: str = Field(..., min_length=1, max_length=200)
    story: str = Field(..., min_length=1)
    character_image: Optional[str] = None
    character_description: str = ""
    audience: Audience = Audience.CHILDREN
    art_style: str = "storybook"
    layout_type: str = "comic-book-panels"
    pages: List[PageSpec] = Field(default_factory=list)

    @field_validator("character_image")
    @classmethod
    def validate_character_image(cls, v: Optional[str]) -> Optional[str]:
        return _check_url(v)


class AutoStoryPayload(BaseModel):
    """Generate the story text first, then illustrate it."""
    genre: str = Field(..., min_length=1)
    character_description: str = Field(..., min_length=1)
    cartoon_image_url: Optional[str] = None
    audience: Audience = Audience.CHILDREN
    art_style: str = "storybook"
    layout_type: str = "comic-book-panels"

    @field_validator("cartoon_image_url")
    @classmethod
    def validate_cartoon_image_url(cls, v: Optional[str]) -> Optional[str]:
        return _check_url(v)


class ScenesPayload(BaseModel):
    """Scene plan only, no images."""
    story: str = Field(..., min_length=1)
    character_image: Optional[str] = None
    character_description: str = ""
    audience: Audience = Audience.CHILDREN

    @field_validator("character_image")
    @classmethod
    def validate_character_image(cls, v: Optional[str]) -> Optional[str]:
        return _check_url(v)


class CartoonizePayload(BaseModel):
    """Turn a reference image into a styled character design."""
    original_image_url: str
    style: str = "cartoon"
    character_description: str = ""

    @field_validator("original_image_url")
    @classmethod
    def validate_original_image_url(cls, v: str) -> str:
        if not v:
            raise ValueError("original_image_url is required")
        return _check_url(v)


class ImageGenerationPayload(BaseModel):
    """One standalone illustration."""
    image_prompt: str = Field(..., min_length=1)
    character_description: str = ""
    emotion: str = "neutral"
    audience: Audience = Audience.CHILDREN
    reference_image_url: Optional[str] = None
    style: str = "cartoon"

    @field_validator("reference_image_url")
    @classmethod
    def validate_reference_image_url(cls, v: Optional[str]) -> Optional[str]:
        return _check_url(v)


PAYLOAD_MODELS: Dict[JobType, Type[BaseModel]] = {
    JobType.STORYBOOK: StorybookPayload,
    JobType.AUTO_STORY: AutoStoryPayload,
    JobType.SCENES: ScenesPayload,
    JobType.CARTOONIZE: CartoonizePayload,
    JobType.IMAGE_GENERATION: ImageGenerationPayload,
}


# ============================================================================
# EXPORTS
# ============================================================================

__all__ = [
    "PanelSpec",
    "PageSpec",
    "StorybookPayload",
    "AutoStoryPayload",
    "ScenesPayload",
    "CartoonizePayload",
    "ImageGenerationPayload",
    "PAYLOAD_MODELS",
]
