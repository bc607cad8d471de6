"""Tests for the provider descriptor catalog."""

from __future__ import annotations

import pytest

from polyprovider.core.catalog import (
    ProviderCatalog,
    build_default_catalog,
    is_local_provider,
)
from polyprovider.core.channel import LocalChannel
from polyprovider.core.providers.base import ProviderCategory


def test_register_rejects_duplicate_ids(descriptor_factory) -> None:
    catalog = ProviderCatalog([descriptor_factory("a")])
    with pytest.raises(ValueError, match="Duplicate provider id 'a'"):
        catalog.register(descriptor_factory("a"))


def test_get_unknown_provider_raises_key_error(descriptor_factory) -> None:
    catalog = ProviderCatalog([descriptor_factory("a")])
    with pytest.raises(KeyError, match="Unknown provider"):
        catalog.get("missing")
    assert catalog.find("missing") is None
    assert "a" in catalog
    assert "missing" not in catalog


def test_iteration_follows_registration_order(descriptor_factory) -> None:
    catalog = ProviderCatalog(
        [
            descriptor_factory("b"),
            descriptor_factory("a", category=ProviderCategory.SPEECH),
            descriptor_factory("c"),
        ]
    )
    assert catalog.ids() == ["b", "a", "c"]
    assert [d.id for d in catalog.by_category(ProviderCategory.CHAT)] == ["b", "c"]
    assert len(catalog) == 3


def test_local_prefix_convention() -> None:
    assert is_local_provider("app-local-audio-speech")
    assert is_local_provider("browser-local-audio-transcription")
    assert not is_local_provider("openai")
    assert not is_local_provider("local-app")


def test_default_catalog_has_unique_ids_and_known_providers(runtime) -> None:
    catalog = build_default_catalog(runtime=runtime)
    ids = catalog.ids()
    assert len(ids) == len(set(ids))
    for provider_id in (
        "openai",
        "anthropic",
        "ollama",
        "elevenlabs",
        "app-local-audio-speech",
        "app-local-audio-transcription",
        "browser-local-audio-speech",
    ):
        assert provider_id in catalog


def test_default_catalog_capability_flags(runtime) -> None:
    catalog = build_default_catalog(runtime=runtime, channel=LocalChannel())
    local_speech = catalog.get("app-local-audio-speech")
    assert local_speech.capabilities.can_load_model
    assert local_speech.capabilities.can_list_voices
    assert local_speech.capabilities.progress_event

    anthropic = catalog.get("anthropic")
    assert anthropic.capabilities.can_list_models
    assert not anthropic.capabilities.can_load_model
    assert anthropic.category is ProviderCategory.CHAT


def test_default_options_are_fresh_copies(runtime) -> None:
    catalog = build_default_catalog(runtime=runtime)
    descriptor = catalog.get("app-local-audio-speech")
    first = descriptor.initial_config()
    first["voiceSettings"]["speed"] = 3.0
    assert descriptor.initial_config()["voiceSettings"]["speed"] == 1.0
