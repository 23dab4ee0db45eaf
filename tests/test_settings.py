"""Tests for environment-driven pipeline settings."""

import pytest

from storytime.common import PipelineSettings


def test_defaults():
    settings = PipelineSettings.from_env({})

    assert settings.teaser_pages == 7
    assert settings.batch_size == 18
    assert settings.batch_delay_s == 90.0
    assert settings.race_concurrency == 2
    assert settings.race_retries == 5
    assert settings.min_page_count == 28
    assert settings.print_test_mode is True
    assert settings.require_anchors is False
    assert settings.print_template_url is None


def test_environment_overrides():
    settings = PipelineSettings.from_env(
        {
            "STORY_TEASER_PAGES_COUNT": "5",
            "STORYTIME_BATCH_SIZE": "10",
            "STORYTIME_BATCH_DELAY_S": "2.5",
            "PRINT_MIN_PAGES": "24",
            "STORYTIME_REQUIRE_ANCHORS": "yes",
            "GCS_PDFS_BUCKET_NAME": "my-pdfs",
            "STORYTIME_PRINT_TEMPLATE_URL": " https://books.example/print/{book_id} ",
        }
    )

    assert settings.teaser_pages == 5
    assert settings.batch_size == 10
    assert settings.batch_delay_s == 2.5
    assert settings.min_page_count == 24
    assert settings.require_anchors is True
    assert settings.documents_bucket == "my-pdfs"
    assert settings.print_template_url == "https://books.example/print/{book_id}"


def test_primary_variable_wins_over_legacy_name():
    settings = PipelineSettings.from_env({"STORYTIME_TEASER_PAGES": "3", "STORY_TEASER_PAGES_COUNT": "9"})
    assert settings.teaser_pages == 3


@pytest.mark.parametrize(
    "value, expected",
    [("false", False), ("true", True), ("False", True), ("0", True), ("", True)],
)
def test_only_literal_false_disables_test_mode(value, expected):
    assert PipelineSettings.from_env({"PRINT_TEST_MODE": value}).print_test_mode is expected


def test_non_numeric_values_are_rejected():
    with pytest.raises(ValueError, match="STORYTIME_BATCH_SIZE"):
        PipelineSettings.from_env({"STORYTIME_BATCH_SIZE": "lots"})


def test_invalid_values_fail_validation():
    with pytest.raises(ValueError):
        PipelineSettings(batch_size=0)
    with pytest.raises(ValueError):
        PipelineSettings(race_retries=0)
