"""
Contract for image generation backends.
"""

from __future__ import annotations

from typing import Sequence


class GenerationError(RuntimeError):
    """A single generation call did not produce a usable image."""


class SafetyBlockedError(GenerationError):
    """The model refused the prompt or its output on safety grounds."""


class EmptyGenerationError(GenerationError):
    """The model finished without returning any image payload."""


class ImageModel:
    """
    An image generation model.

    ``generate`` returns the encoded image bytes, or raises a
    :class:`GenerationError`. Implementations must stop any upstream work when
    the awaiting task is cancelled.
    """

    @property
    def source_tag(self) -> str:
        """Identifier recorded on image records produced by this model."""
        return type(self).__name__

    async def generate(self, prompt: str, references: Sequence[str] = ()) -> bytes:
        raise NotImplementedError
