"""Tests for speech preferences, voice caching and SSML generation."""

from __future__ import annotations

import pytest

from polyprovider.core.catalog import ProviderCatalog
from polyprovider.core.config import ProviderConfigStore
from polyprovider.core.invocation import InvocationFacade
from polyprovider.core.providers.base import (
    ModelInfo,
    ProviderCategory,
    ProviderInstance,
    VoiceInfo,
    VoiceLanguage,
)
from polyprovider.core.providers.speech_services import reorder_elevenlabs_voices
from polyprovider.core.speech import (
    SpeechPreferences,
    SpeechSettings,
    filter_models,
    generate_ssml,
    supports_ssml,
)

VOICE = VoiceInfo(
    id="en-US-JennyNeural",
    name="Jenny",
    provider="microsoft-speech",
    gender="female",
    languages=(VoiceLanguage(code="en-US", title="English"),),
)


def _settings(descriptor_factory, *, list_voices=None, generate=None) -> SpeechSettings:
    async def _create(config):
        return ProviderInstance(provider_id="speaker", generate_speech=generate)

    overrides = {"create_provider": _create}
    if list_voices is not None:
        overrides["list_voices"] = list_voices
    catalog = ProviderCatalog(
        [descriptor_factory("speaker", category=ProviderCategory.SPEECH, **overrides)]
    )
    store = ProviderConfigStore(catalog)
    store.initialize_all()
    return SpeechSettings(catalog, store, InvocationFacade(catalog, store))


def test_generate_ssml_with_prosody() -> None:
    ssml = generate_ssml("Hello & welcome", VOICE, {"pitch": 10, "speed": 1.2, "volume": -5})
    assert ssml == (
        '<speak version="1.0" xmlns="http://www.w3.org/2001/10/synthesis" xml:lang="en-US">'
        '<voice name="en-US-JennyNeural" gender="female">'
        '<prosody pitch="+10%" rate="1.2" volume="-5%">Hello &amp; welcome</prosody>'
        "</voice></speak>"
    )


def test_generate_ssml_without_settings_skips_prosody() -> None:
    voice = VoiceInfo(id="v", name="V", provider="p")
    assert generate_ssml("Hi", voice) == (
        '<speak version="1.0" xmlns="http://www.w3.org/2001/10/synthesis" xml:lang="en-US">'
        '<voice name="v" gender="neutral">Hi</voice></speak>'
    )


def test_generate_ssml_default_speed_is_one() -> None:
    assert 'rate="1"' in generate_ssml("Hi", VOICE, {"speed": 1.0})


def test_supports_ssml() -> None:
    assert supports_ssml("elevenlabs")
    assert supports_ssml("volcengine")
    assert not supports_ssml("openai-audio-speech")


def test_filter_models_matches_name_id_and_description() -> None:
    models = [
        ModelInfo(id="eleven_turbo_v2", name="Turbo", provider="elevenlabs"),
        ModelInfo(id="m2", name="Multilingual", provider="elevenlabs", description="Many languages"),
    ]
    assert [m.id for m in filter_models(models, "TURBO")] == ["eleven_turbo_v2"]
    assert [m.id for m in filter_models(models, "languages")] == ["m2"]
    assert filter_models(models, "  ") == models


def test_reorder_elevenlabs_voices_moves_legacy_block_last() -> None:
    names = ["Custom", "Aria", "Roger", "Bill", "Newer"]
    voices = [VoiceInfo(id=name.lower(), name=name, provider="elevenlabs") for name in names]
    assert [v.name for v in reorder_elevenlabs_voices(voices)] == [
        "Custom",
        "Newer",
        "Aria",
        "Roger",
        "Bill",
    ]


@pytest.mark.asyncio
async def test_load_voices_caches_result(descriptor_factory) -> None:
    async def _list(config):
        return [VOICE]

    settings = _settings(descriptor_factory, list_voices=_list)
    settings.preferences = SpeechPreferences(provider="speaker", voice_id=VOICE.id)

    assert await settings.load_voices_for_provider("speaker") == [VOICE]
    assert settings.voices_for_provider("speaker") == [VOICE]
    assert settings.active_voice == VOICE
    assert settings.configured
    assert not settings.is_loading_voices


@pytest.mark.asyncio
async def test_load_voices_failure_records_error(descriptor_factory) -> None:
    async def _list(config):
        raise RuntimeError("gateway down")

    settings = _settings(descriptor_factory, list_voices=_list)

    assert await settings.load_voices_for_provider("speaker") == []
    assert settings.speech_provider_error == "gateway down"
    assert settings.voices_for_provider("speaker") == []
    assert await settings.load_voices_for_provider("unknown") == []


@pytest.mark.asyncio
async def test_speak_uses_preferences(descriptor_factory) -> None:
    calls = []

    async def _generate(model, text, voice, config):
        calls.append((model, text, voice, config["voiceSettings"]))
        return b"mp3"

    settings = _settings(descriptor_factory, generate=_generate)
    settings.preferences = SpeechPreferences(
        provider="speaker", model="m", voice_id="v", pitch=5, rate=1.25
    )

    assert await settings.speak("Hello") == b"mp3"
    assert calls == [("m", "Hello", "v", {"pitch": 5, "speed": 1.25, "volume": 0})]


@pytest.mark.asyncio
async def test_speak_merges_caller_voice_settings_with_preferences(descriptor_factory) -> None:
    calls = []

    async def _generate(model, text, voice, config):
        calls.append(config["voiceSettings"])
        return b"mp3"

    settings = _settings(descriptor_factory, generate=_generate)
    settings.preferences = SpeechPreferences(
        provider="speaker", model="m", voice_id="v", pitch=5, rate=1.25
    )

    await settings.speak("Hello", {"voiceSettings": {"volume": 3}})
    await settings.speak("Hello", {"voiceSettings": {"speed": 2.0}})

    assert calls == [
        {"pitch": 5, "speed": 1.25, "volume": 3},
        {"pitch": 5, "speed": 2.0, "volume": 0},
    ]
