"""Tests for the Replicate image model wrapper."""

import asyncio
from types import SimpleNamespace

import pytest

from storytime.ai_generation.base import EmptyGenerationError, SafetyBlockedError
from storytime.ai_generation.replicate_service import (
    ReplicateImageModel,
    _build_replicate_input_payload,
    _first_output_url,
)

from conftest import PNG_BYTES


class FakePrediction:
    def __init__(self, final_status="succeeded", output=None, error=None):
        self.id = "pred-1"
        self.status = "starting"
        self.output = None
        self.error = None
        self._final = (final_status, output, error)
        self.reloads = 0

    async def async_reload(self):
        self.reloads += 1
        self.status, self.output, self.error = self._final

    async def async_cancel(self):
        self.status = "canceled"


class FakePredictions:
    def __init__(self, prediction):
        self.prediction = prediction
        self.created = []

    async def async_create(self, **kwargs):
        self.created.append(kwargs)
        return self.prediction


class FakeDownloadSession:
    def __init__(self, content=PNG_BYTES):
        self.content = content
        self.urls = []

    def get(self, url, timeout=None):
        self.urls.append(url)
        return SimpleNamespace(content=self.content, raise_for_status=lambda: None)


def _model(prediction, *, model_identifier="google/nano-banana", session=None):
    predictions = FakePredictions(prediction)
    client = SimpleNamespace(models=SimpleNamespace(predictions=predictions), predictions=predictions)
    model = ReplicateImageModel(
        client=client,
        model_identifier=model_identifier,
        session=session or FakeDownloadSession(),
        poll_interval_s=0,
    )
    return model, predictions


def test_nano_banana_payload_lists_every_reference():
    payload = _build_replicate_input_payload(
        model_identifier="google/nano-banana",
        prompt="a fox",
        negative_prompt="blurry",
        references=["https://a", "https://b"],
    )
    assert payload["image_input"] == ["https://a", "https://b"]
    assert "negative_prompt" not in payload


def test_versioned_kontext_identifier_uses_first_reference():
    payload = _build_replicate_input_payload(
        model_identifier="black-forest-labs/flux-kontext-pro:abc123",
        prompt="a fox",
        negative_prompt="blurry",
        references=["https://a", "https://b"],
    )
    assert payload["input_image"] == "https://a"
    assert payload["negative_prompt"] == "blurry"


def test_unknown_model_is_rejected_at_construction():
    with pytest.raises(ValueError, match="Supported models"):
        ReplicateImageModel(client=SimpleNamespace(), model_identifier="someone/unknown-model")


def test_output_url_is_taken_from_lists_and_file_objects():
    assert _first_output_url(["", "https://img/1.png"]) == "https://img/1.png"
    assert _first_output_url(SimpleNamespace(url="https://img/2.png")) == "https://img/2.png"
    assert _first_output_url(None) is None


def test_successful_prediction_is_downloaded():
    session = FakeDownloadSession()
    model, predictions = _model(FakePrediction(output=["https://img/page.png"]), session=session)

    image = asyncio.run(model.generate("a fox in a forest", ["https://ref/lead.png"]))

    assert image == PNG_BYTES
    assert session.urls == ["https://img/page.png"]
    created = predictions.created[0]
    assert created["model"] == "google/nano-banana"
    assert created["input"]["image_input"] == ["https://ref/lead.png"]
    assert model.source_tag == "google/nano-banana"


def test_safety_failures_are_classified():
    model, _ = _model(FakePrediction(final_status="failed", error="NSFW content detected"))

    with pytest.raises(SafetyBlockedError):
        asyncio.run(model.generate("a fox"))


def test_empty_download_is_an_error():
    model, _ = _model(
        FakePrediction(output="https://img/empty.png"), session=FakeDownloadSession(content=b"")
    )

    with pytest.raises(EmptyGenerationError):
        asyncio.run(model.generate("a fox"))
