"""
Integration with Replicate for storybook image generation.
"""

from __future__ import annotations

import asyncio
import logging
import os
import re
from typing import Any, Callable, Sequence

import replicate
import requests

from .base import EmptyGenerationError, GenerationError, ImageModel, SafetyBlockedError
from .prompting import NEGATIVE_PROMPT

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "google/nano-banana"

_TERMINAL_STATUSES = frozenset({"succeeded", "failed", "canceled"})
_SAFETY_PATTERN = re.compile(r"nsfw|safety|sensitive|flagged|blocked|content polic", re.IGNORECASE)


def _build_nano_banana_input(
    *,
    prompt: str,
    negative_prompt: str,
    references: Sequence[str],
) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "prompt": prompt,
        "output_format": "png",
    }
    if references:
        payload["image_input"] = list(references)
    return payload


def _build_flux_kontext_input(
    *,
    prompt: str,
    negative_prompt: str,
    references: Sequence[str],
) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "prompt": prompt,
        "negative_prompt": negative_prompt,
        "output_format": "png",
        "safety_tolerance": 2,
        "prompt_upsampling": True,
        "aspect_ratio": "3:4",
    }
    if references:
        # Kontext accepts a single conditioning image; the first reference wins.
        payload["input_image"] = references[0]
    return payload


def _build_multi_image_kontext_input(
    *,
    prompt: str,
    negative_prompt: str,
    references: Sequence[str],
) -> dict[str, Any]:
    if len(references) < 2:
        return _build_flux_kontext_input(
            prompt=prompt, negative_prompt=negative_prompt, references=references
        )
    return {
        "prompt": prompt,
        "input_image_1": references[0],
        "input_image_2": references[1],
        "output_format": "png",
        "aspect_ratio": "3:4",
    }


_MODEL_INPUT_BUILDERS: dict[str, Callable[..., dict[str, Any]]] = {
    "google/nano-banana": _build_nano_banana_input,
    "black-forest-labs/flux-kontext-pro": _build_flux_kontext_input,
    "flux-kontext-apps/multi-image-kontext-pro": _build_multi_image_kontext_input,
}


def _build_replicate_input_payload(
    *,
    model_identifier: str,
    prompt: str,
    negative_prompt: str,
    references: Sequence[str],
) -> dict[str, Any]:
    normalized_identifier = model_identifier.strip().lower()
    builder = _MODEL_INPUT_BUILDERS.get(normalized_identifier)
    if builder is None and ":" in normalized_identifier:
        base_identifier = normalized_identifier.split(":", maxsplit=1)[0]
        builder = _MODEL_INPUT_BUILDERS.get(base_identifier)
    if builder is None:
        supported_models = ", ".join(sorted(_MODEL_INPUT_BUILDERS))
        raise ValueError(
            "Model identifier "
            f"'{model_identifier}' is not configured with a default input payload. "
            f"Supported models: {supported_models}."
        )
    return builder(prompt=prompt, negative_prompt=negative_prompt, references=references)


def _first_output_url(output: Any) -> str | None:
    if output is None:
        return None
    if isinstance(output, str):
        return output or None
    if isinstance(output, (list, tuple)):
        for item in output:
            url = _first_output_url(item)
            if url:
                return url
        return None
    url = getattr(output, "url", None)
    return str(url) if url else None


class ReplicateImageModel(ImageModel):
    """
    Asynchronous image generation through a Replicate prediction.

    Parameters
    ----------
    api_token:
        Replicate API token. Falls back to ``REPLICATE_API_TOKEN`` environment variable.
    model_identifier:
        Model string, either ``owner/model`` for official models or
        ``owner/model:version``. Falls back to ``REPLICATE_MODEL`` and then to
        ``google/nano-banana``.
    client:
        Optional pre-configured :class:`replicate.Client`. Mainly useful for testing.
    poll_interval_s:
        Delay between prediction status polls.
    download_timeout_s:
        Timeout for fetching the finished image.
    """

    def __init__(
        self,
        *,
        api_token: str | None = None,
        model_identifier: str | None = None,
        client: replicate.Client | None = None,
        session: requests.Session | None = None,
        poll_interval_s: float = 1.0,
        download_timeout_s: float = 60.0,
    ) -> None:
        self._api_token = api_token or os.getenv("REPLICATE_API_TOKEN")
        if not self._api_token and not client:
            raise ValueError(
                "Replicate API token is required. Set REPLICATE_API_TOKEN or pass api_token."
            )

        self._model_identifier = model_identifier or os.getenv("REPLICATE_MODEL") or DEFAULT_MODEL
        # Fail on an unsupported model at construction rather than on the first page.
        _build_replicate_input_payload(
            model_identifier=self._model_identifier,
            prompt="",
            negative_prompt="",
            references=(),
        )

        self._client = client or replicate.Client(api_token=self._api_token)
        self._session = session or requests.Session()
        self._poll_interval_s = poll_interval_s
        self._download_timeout_s = download_timeout_s

    @property
    def model_identifier(self) -> str:
        """Return the model identifier currently used."""
        return self._model_identifier

    @property
    def source_tag(self) -> str:
        return self._model_identifier

    async def generate(self, prompt: str, references: Sequence[str] = ()) -> bytes:
        payload = _build_replicate_input_payload(
            model_identifier=self._model_identifier,
            prompt=prompt,
            negative_prompt=NEGATIVE_PROMPT,
            references=references,
        )

        prediction = await self._create_prediction(payload)
        try:
            while prediction.status not in _TERMINAL_STATUSES:
                await asyncio.sleep(self._poll_interval_s)
                await prediction.async_reload()
        except asyncio.CancelledError:
            await self._cancel_quietly(prediction)
            raise

        if prediction.status != "succeeded":
            message = str(prediction.error or f"prediction {prediction.status}")
            if _SAFETY_PATTERN.search(message):
                raise SafetyBlockedError(message)
            raise GenerationError(f"Replicate prediction {prediction.id} failed: {message}")

        url = _first_output_url(prediction.output)
        if not url:
            raise EmptyGenerationError(f"Replicate prediction {prediction.id} returned no image.")
        return await asyncio.to_thread(self._download, url)

    async def _create_prediction(self, payload: dict[str, Any]) -> Any:
        identifier = self._model_identifier
        try:
            if ":" in identifier:
                return await self._client.predictions.async_create(
                    version=identifier.split(":", maxsplit=1)[1],
                    input=payload,
                )
            return await self._client.models.predictions.async_create(
                model=identifier,
                input=payload,
            )
        except replicate.exceptions.ReplicateError as exc:
            detail = str(exc)
            if _SAFETY_PATTERN.search(detail):
                raise SafetyBlockedError(detail) from exc
            raise GenerationError(f"Replicate rejected the prediction: {detail}") from exc

    async def _cancel_quietly(self, prediction: Any) -> None:
        try:
            await asyncio.shield(prediction.async_cancel())
        except replicate.exceptions.ReplicateError:
            logger.warning("Could not cancel Replicate prediction %s.", prediction.id)
        else:
            logger.debug("Cancelled Replicate prediction %s.", prediction.id)

    def _download(self, url: str) -> bytes:
        try:
            response = self._session.get(url, timeout=self._download_timeout_s)
            response.raise_for_status()
        except requests.RequestException as exc:
            raise GenerationError(f"Failed to download generated image from {url}") from exc
        if not response.content:
            raise EmptyGenerationError(f"Generated image at {url} is empty.")
        return response.content
