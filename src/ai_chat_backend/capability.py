from __future__ import annotations

from enum import Enum


class Capability(str, Enum):
    TEXT_TO_TEXT = "text_to_text"
    CONVERSATION = "conversation"
    IMAGE_TO_TEXT = "image_to_text"
    TEXT_TO_IMAGE = "text_to_image"
    IMAGE_TO_IMAGE = "image_to_image"
    TEXT_TO_3D = "text_to_3d"
    TEXT_TO_VIDEO = "text_to_video"


class ProviderCapability(str, Enum):
    TEXT = "text"
    VISION = "vision"
    IMAGE_GENERATION = "image_generation"


DEFAULT_CAPABILITY = Capability.TEXT_TO_TEXT

# Tags with no provider behind them yet, mapped to a user-facing feature label.
PLACEHOLDER_FEATURES = {
    Capability.IMAGE_TO_IMAGE: "Image-to-image conversion",
    Capability.TEXT_TO_3D: "Text-to-3D generation",
    Capability.TEXT_TO_VIDEO: "Text-to-video generation",
}


def normalize_tag(tag: str | None) -> str:
    return (tag or "").strip().lower().replace("-", "_")


def parse_capability(tag: str | None) -> Capability | None:
    """Return the capability for a tag, or None when the tag is not recognized."""
    try:
        return Capability(normalize_tag(tag))
    except ValueError:
        return None
