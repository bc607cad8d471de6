"""Tests for the provider hub views."""

from __future__ import annotations

import pytest

from polyprovider.core.catalog import ProviderCatalog, build_default_catalog
from polyprovider.core.channel import LocalChannel
from polyprovider.core.config import HubSettings, MemoryBackend
from polyprovider.core.hub import ProviderHub
from polyprovider.core.providers.base import ModelInfo, ProviderCategory
from polyprovider.core.providers.errors import CapabilityError

FAST = HubSettings(validation_debounce=0.01, progress_tick=60, progress_grace_period=0.01)


def _catalog(descriptor_factory) -> ProviderCatalog:
    async def _models(config):
        return [ModelInfo(id="gpt-x", name="GPT X", provider="cloud")]

    async def _broken_models(config):
        raise CapabilityError("backend unreachable", provider_id="flaky")

    def _never_validated(config):
        raise RuntimeError("local providers skip validation")

    return ProviderCatalog(
        [
            descriptor_factory("cloud", list_models=_models),
            descriptor_factory("flaky", list_models=_broken_models),
            descriptor_factory(
                "app-local-demo",
                category=ProviderCategory.SPEECH,
                validate_provider_config=_never_validated,
            ),
        ]
    )


@pytest.mark.asyncio
async def test_local_providers_count_as_configured_when_available(descriptor_factory) -> None:
    async with ProviderHub(catalog=_catalog(descriptor_factory), backend=MemoryBackend(), settings=FAST) as hub:
        assert hub.available_providers() == ["cloud", "flaky", "app-local-demo"]
        assert hub.configured_providers() == ["app-local-demo"]
        assert [d.id for d in hub.configured_speech_providers()] == ["app-local-demo"]
        assert hub.configured_chat_providers() == []


@pytest.mark.asyncio
async def test_configuring_a_provider_updates_views(descriptor_factory) -> None:
    async with ProviderHub(catalog=_catalog(descriptor_factory), backend=MemoryBackend(), settings=FAST) as hub:
        hub.set_provider_config("cloud", {"apiKey": "sk"})
        await hub.validation.wait_idle()

        assert hub.is_configured("cloud")
        assert [d.id for d in hub.configured_chat_providers()] == ["cloud"]
        assert await hub.validate_provider("cloud")
        assert not await hub.validate_provider("flaky")


@pytest.mark.asyncio
async def test_fetch_models_records_errors(descriptor_factory) -> None:
    async with ProviderHub(catalog=_catalog(descriptor_factory), backend=MemoryBackend(), settings=FAST) as hub:
        models = await hub.fetch_models_for_provider("cloud")
        assert [m.id for m in models] == ["gpt-x"]
        assert hub.get_models_for_provider("cloud") == models
        assert hub.model_load_error["cloud"] is None

        assert await hub.fetch_models_for_provider("flaky") == []
        assert hub.model_load_error["flaky"] == "backend unreachable"
        assert hub.is_loading_models["flaky"] is False

        assert await hub.fetch_models_for_provider("app-local-demo") == []


@pytest.mark.asyncio
async def test_load_models_for_configured_providers(descriptor_factory) -> None:
    async with ProviderHub(catalog=_catalog(descriptor_factory), backend=MemoryBackend(), settings=FAST) as hub:
        assert await hub.load_models_for_configured_providers() == []
        hub.set_provider_config("cloud", {"apiKey": "sk"})
        await hub.validation.wait_idle()
        assert [m.id for m in await hub.load_models_for_configured_providers()] == ["gpt-x"]
        assert [m.id for m in hub.all_available_models()] == ["gpt-x"]


@pytest.mark.asyncio
async def test_provider_metadata_and_instance(descriptor_factory) -> None:
    hub = ProviderHub(catalog=_catalog(descriptor_factory), backend=MemoryBackend(), settings=FAST)
    with pytest.raises(KeyError, match="not found"):
        hub.get_provider_metadata("nope")
    hub.set_provider_config("cloud", {"apiKey": "sk", "baseUrl": "https://api.example.com/"})
    instance = await hub.get_provider_instance("cloud")
    assert instance.api_key == "sk"
    assert instance.base_url == "https://api.example.com/"
    await hub.aclose()


@pytest.mark.asyncio
@pytest.mark.parametrize("provider_id", ["cloud", "openai"])
async def test_creating_an_instance_twice_with_same_config(
    provider_id, descriptor_factory, runtime
) -> None:
    catalog = _catalog(descriptor_factory)
    catalog.register(build_default_catalog(runtime=runtime).get("openai"))
    hub = ProviderHub(catalog=catalog, backend=MemoryBackend(), settings=FAST)
    hub.set_provider_config(provider_id, {"apiKey": "sk", "baseUrl": "https://api.example.com/"})

    first = await hub.get_provider_instance(provider_id)
    second = await hub.get_provider_instance(provider_id)

    assert first is not second
    assert first == second
    assert hub.get_provider_config(provider_id)["apiKey"] == "sk"
    await hub.aclose()


@pytest.mark.asyncio
async def test_default_hub_persists_configs(runtime) -> None:
    backend = MemoryBackend()
    channel = LocalChannel()
    hub = ProviderHub(
        catalog=build_default_catalog(runtime=runtime, channel=channel),
        backend=backend,
        channel=channel,
        settings=FAST,
    )
    await hub.start()

    assert backend.data["app-local-audio-speech"]["model"] == "hexgrad/Kokoro-82M"
    assert "app-local-audio-speech" in [d.id for d in hub.configured_speech_providers()]
    assert hub.validation.pass_count == 1
    await hub.aclose()
