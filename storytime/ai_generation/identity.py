"""
Identity notes distilled from the user's photo to keep the lead portrait recognisable.
"""

from __future__ import annotations

import base64
import logging
import os
import re
from typing import Any, Sequence

from storytime.common import CompletionCallable, call_chat_completion

logger = logging.getLogger(__name__)


_WARDROBE_TERMS = (
    # garments
    "coat", "jacket", "hoodie", "jumper", "sweater", "cardigan", "shirt", "t-shirt", "top",
    "dress", "skirt", "trousers", "pants", "jeans", "shorts", "overalls", "pyjamas", "costume",
    "uniform", "outfit", "clothes", "clothing",
    # footwear and headwear
    "shoes", "boots", "sneakers", "sandals", "socks", "hat", "cap", "beanie", "helmet", "hood",
    # accessories and props
    "glasses", "sunglasses", "goggles", "scarf", "gloves", "mittens", "backpack", "bag",
    "necklace", "bracelet", "earrings", "watch", "bow", "toy",
)

_WARDROBE_PATTERN = re.compile(
    r"\b(?:" + "|".join(re.escape(term) for term in _WARDROBE_TERMS) + r")\b",
    re.IGNORECASE,
)

_SYSTEM_PROMPT = (
    "You help a picture-book illustrator draw the same child on every page. "
    "Answer with short bullet points about the child's body only: face shape, skin tone, "
    "eye colour, hair colour, hair length and texture, freckles or dimples. "
    "Leave out anything the child could take off, such as clothes or accessories, "
    "and never guess names, age or personality."
)

_USER_PROMPT = (
    "Here is a photo of the child who stars in the book. List between six and eight "
    "traits an illustrator would need to draw them recognisably, one per line, each "
    "starting with '- '."
)


def filter_physical_notes(notes: str) -> list[str]:
    """Keep bullet lines that describe the child, dropping anything about what they wear."""
    filtered: list[str] = []
    for raw_line in notes.splitlines():
        normalized = raw_line.strip().lstrip("-•*").strip()
        if not normalized or _WARDROBE_PATTERN.search(normalized):
            continue
        filtered.append(normalized)
    return filtered


class IdentityExtractor:
    """
    Multimodal LLM call (through LiteLLM) that turns a photo into identity bullet notes.

    Parameters
    ----------
    model:
        Chat model with vision support. Falls back to ``STORYTIME_IDENTITY_MODEL``,
        then ``LITELLM_IDENTITY_MODEL``, then ``gpt-4o-mini``.
    api_key:
        Provider key. Falls back to ``STORYTIME_IDENTITY_API_KEY`` and ``OPENAI_API_KEY``.
    completion_fn:
        Replacement for :func:`storytime.common.call_chat_completion`, mainly for tests.
    """

    def __init__(
        self,
        *,
        model: str | None = None,
        api_key: str | None = None,
        completion_fn: CompletionCallable | None = None,
        max_tokens: int = 450,
        temperature: float = 0.2,
    ) -> None:
        self._model = (
            model
            or os.getenv("STORYTIME_IDENTITY_MODEL")
            or os.getenv("LITELLM_IDENTITY_MODEL")
            or "gpt-4o-mini"
        )
        self._api_key = (
            api_key or os.getenv("STORYTIME_IDENTITY_API_KEY") or os.getenv("OPENAI_API_KEY")
        )
        self._completion = completion_fn or call_chat_completion
        self._max_tokens = max_tokens
        self._temperature = temperature

    async def extract(self, photo: bytes, *, mime_type: str = "image/jpeg") -> list[str]:
        """
        Return identity notes for ``photo``, or an empty list when the call fails.
        """
        encoded = base64.b64encode(photo).decode("ascii")
        messages: Sequence[dict[str, Any]] = [
            {"role": "system", "content": _SYSTEM_PROMPT},
            {
                "role": "user",
                "content": [
                    {"type": "text", "text": _USER_PROMPT},
                    {"type": "image_url", "image_url": {"url": f"data:{mime_type};base64,{encoded}"}},
                ],
            },
        ]
        try:
            result = await self._completion(
                model=self._model,
                messages=messages,
                temperature=self._temperature,
                max_tokens=self._max_tokens,
                api_key=self._api_key,
            )
        except Exception:
            logger.exception("Failed to extract identity notes from the lead photo.")
            return []
        return filter_physical_notes(result.text)
