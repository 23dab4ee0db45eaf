"""
Runtime settings for the illustration and fulfillment pipeline.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Mapping


def _env_int(env: Mapping[str, str], *names: str, default: int) -> int:
    for name in names:
        raw = env.get(name)
        if raw is not None and raw.strip():
            try:
                return int(raw)
            except ValueError as exc:
                raise ValueError(f"{name} must be an integer, got {raw!r}.") from exc
    return default


def _env_float(env: Mapping[str, str], *names: str, default: float) -> float:
    for name in names:
        raw = env.get(name)
        if raw is not None and raw.strip():
            try:
                return float(raw)
            except ValueError as exc:
                raise ValueError(f"{name} must be a number, got {raw!r}.") from exc
    return default


def _env_str(env: Mapping[str, str], *names: str, default: str | None = None) -> str | None:
    for name in names:
        raw = env.get(name)
        if raw is not None and raw.strip():
            return raw.strip()
    return default


@dataclass(frozen=True)
class PipelineSettings:
    """
    Tunables shared by the painter, orchestrator, assembler and dispatcher.

    Attributes
    ----------
    teaser_pages:
        Number of leading pages painted before purchase, all at once.
    batch_size:
        Pages painted together during the post-purchase phase.
    batch_delay_s:
        Pause between post-purchase batches, to stay under the image model's rate limit.
    race_concurrency:
        Parallel generation calls per painting attempt.
    race_retries:
        Painting attempts per page before it is left unpainted.
    retry_delay_s:
        Pause between failed painting attempts.
    generation_timeout_s:
        Per-call timeout for a single generation request.
    navigation_timeout_s:
        Timeout for the renderer loading the print template.
    min_page_count:
        Minimum page count required by the print vendor; shorter documents get filler pages.
    require_anchors:
        When True a book whose reference portraits cannot be painted fails instead of
        continuing without them.
    print_test_mode:
        Submit vendor orders as non-billing drafts. Only the literal ``false`` disables it.
    """

    teaser_pages: int = 7
    batch_size: int = 18
    batch_delay_s: float = 90.0
    race_concurrency: int = 2
    race_retries: int = 5
    retry_delay_s: float = 10.0
    generation_timeout_s: float = 120.0
    navigation_timeout_s: float = 120.0
    min_page_count: int = 28
    require_anchors: bool = False
    print_test_mode: bool = True
    images_bucket: str = "storytime-images"
    documents_bucket: str = "storytime-pdfs"
    print_template_url: str | None = None
    identity_model: str | None = None

    def __post_init__(self) -> None:
        if self.teaser_pages < 0:
            raise ValueError("teaser_pages must not be negative.")
        if self.batch_size < 1:
            raise ValueError("batch_size must be at least 1.")
        if self.race_concurrency < 1 or self.race_retries < 1:
            raise ValueError("race_concurrency and race_retries must be at least 1.")
        if self.min_page_count < 1:
            raise ValueError("min_page_count must be at least 1.")

    @classmethod
    def from_env(cls, env: Mapping[str, str] | None = None) -> "PipelineSettings":
        env = os.environ if env is None else env
        defaults = cls()
        return cls(
            teaser_pages=_env_int(
                env, "STORYTIME_TEASER_PAGES", "STORY_TEASER_PAGES_COUNT", default=defaults.teaser_pages
            ),
            batch_size=_env_int(env, "STORYTIME_BATCH_SIZE", default=defaults.batch_size),
            batch_delay_s=_env_float(
                env, "STORYTIME_BATCH_DELAY_S", default=defaults.batch_delay_s
            ),
            race_concurrency=_env_int(
                env, "STORYTIME_RACE_CONCURRENCY", default=defaults.race_concurrency
            ),
            race_retries=_env_int(env, "STORYTIME_RACE_RETRIES", default=defaults.race_retries),
            retry_delay_s=_env_float(
                env, "STORYTIME_RETRY_DELAY_S", default=defaults.retry_delay_s
            ),
            generation_timeout_s=_env_float(
                env, "STORYTIME_GENERATION_TIMEOUT_S", default=defaults.generation_timeout_s
            ),
            navigation_timeout_s=_env_float(
                env, "STORYTIME_NAVIGATION_TIMEOUT_S", default=defaults.navigation_timeout_s
            ),
            min_page_count=_env_int(
                env, "STORYTIME_MIN_PAGES", "PRINT_MIN_PAGES", default=defaults.min_page_count
            ),
            require_anchors=(
                (_env_str(env, "STORYTIME_REQUIRE_ANCHORS") or "false").lower()
                in {"1", "true", "yes"}
            ),
            print_test_mode=(_env_str(env, "PRINT_TEST_MODE", "GELATO_TEST_MODE") or "") != "false",
            images_bucket=_env_str(
                env, "GCS_IMAGES_BUCKET_NAME", default=defaults.images_bucket
            ),
            documents_bucket=_env_str(
                env, "GCS_PDFS_BUCKET_NAME", default=defaults.documents_bucket
            ),
            print_template_url=_env_str(env, "STORYTIME_PRINT_TEMPLATE_URL"),
            identity_model=_env_str(env, "STORYTIME_IDENTITY_MODEL"),
        )
