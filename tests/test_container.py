"""Tests for container wiring."""

import asyncio

import pytest

from photo_library.adapters.ollama_analysis_client import HttpxOllamaClient
from photo_library.adapters.openai_analysis_client import OpenAIAnalysisClient
from photo_library.config import Settings, parse_uploader_id
from photo_library.containers import build_container


def test_build_container_creates_services(settings: Settings) -> None:
    container = build_container(settings)

    assert container.upload_service is not None
    assert container.enrichment_service is not None
    assert isinstance(container.enrichment_service.client, HttpxOllamaClient)
    assert container.enrichment_service.model == "llava_json"
    asyncio.run(container.close_resources())


def test_build_container_uses_openai_backend(settings: Settings) -> None:
    settings = settings.model_copy(
        update={"analysis_backend": "openai", "openai_api_key": "openai-key"}
    )

    container = build_container(settings)

    assert container.enrichment_service is not None
    assert isinstance(container.enrichment_service.client, OpenAIAnalysisClient)
    assert container.enrichment_service.model == settings.openai_model
    asyncio.run(container.close_resources())


def test_build_container_requires_openai_key(settings: Settings) -> None:
    settings = settings.model_copy(
        update={"analysis_backend": "openai", "openai_api_key": None}
    )

    with pytest.raises(ValueError):
        build_container(settings)


def test_build_container_without_analysis(settings: Settings) -> None:
    settings = settings.model_copy(update={"analysis_enabled": False})

    container = build_container(settings)

    assert container.enrichment_service is None
    assert container.upload_service.enrichment is None


def test_parse_uploader_id() -> None:
    assert parse_uploader_id(" 12 ") == 12
    assert parse_uploader_id("abc") is None
    assert parse_uploader_id(None) is None
