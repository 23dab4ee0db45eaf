"""
Image generation for storybook pages and reference portraits.
"""

from .base import EmptyGenerationError, GenerationError, ImageModel, SafetyBlockedError
from .identity import IdentityExtractor
from .prompting import StorybookPrompt, build_anchor_prompt, build_page_prompt
from .racing import RacingPainter
from .references import AnchorSet, AnchorUnavailableError, ReferenceImageResolver
from .replicate_service import ReplicateImageModel

__all__ = [
    "AnchorSet",
    "AnchorUnavailableError",
    "EmptyGenerationError",
    "GenerationError",
    "IdentityExtractor",
    "ImageModel",
    "RacingPainter",
    "ReferenceImageResolver",
    "ReplicateImageModel",
    "SafetyBlockedError",
    "StorybookPrompt",
    "build_anchor_prompt",
    "build_page_prompt",
]
