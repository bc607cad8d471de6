"""Tests for the command channel and channel-backed local providers."""

from __future__ import annotations

import array

import pytest

from polyprovider.core.catalog import build_default_catalog
from polyprovider.core.channel import (
    ChannelUnavailableError,
    LocalChannel,
    ProgressEvent,
    UnavailableChannel,
)
from polyprovider.core.providers.app_local import (
    STT_PLUGIN,
    TTS_PLUGIN,
    synthesis_options,
    whisper_model_type,
)
from polyprovider.core.providers.errors import ProviderInitError


def test_progress_event_decodes_five_and_four_field_payloads() -> None:
    event = ProgressEvent.from_payload([False, "kokoro/model.onnx", 42.5, 1000, 425])
    assert event == ProgressEvent(False, "kokoro/model.onnx", 42.5, 1000, 425)
    assert event.matches("kokoro")
    assert not event.matches("piper")

    whisper = ProgressEvent.from_payload({"payload": [True, 100, 10, 10]})
    assert whisper.filename is None
    assert whisper.done
    assert whisper.matches("anything")


def test_progress_event_rejects_garbage() -> None:
    with pytest.raises(ValueError):
        ProgressEvent.from_payload("nope")
    with pytest.raises(ValueError):
        ProgressEvent.from_payload([1, 2])


@pytest.mark.asyncio
async def test_local_channel_invoke_and_listen() -> None:
    channel = LocalChannel()

    async def _echo(args):
        return args["value"] * 2

    channel.register("echo", _echo)
    assert await channel.invoke("echo", {"value": 21}) == 42

    received = []
    unsubscribe = await channel.listen("evt", received.append)
    channel.emit("evt", 1)
    unsubscribe()
    channel.emit("evt", 2)
    assert received == [1]
    assert channel.listener_count("evt") == 0

    with pytest.raises(ChannelUnavailableError):
        await channel.invoke("missing")


@pytest.mark.asyncio
async def test_unavailable_channel_fails_everything() -> None:
    channel = UnavailableChannel()
    with pytest.raises(ChannelUnavailableError):
        await channel.invoke("x")
    with pytest.raises(ChannelUnavailableError):
        await channel.listen("x", print)


def test_synthesis_options_prefer_voice_settings() -> None:
    assert synthesis_options({"voiceSettings": {"speed": 1.5}, "pitch": 3}) == {
        "pitch": 3,
        "speed": 1.5,
        "volume": 0,
    }


def test_whisper_model_type() -> None:
    assert whisper_model_type("whisper-large-v3") == "largev3"
    assert whisper_model_type("whisper-base") == "base"
    assert whisper_model_type(None) == "base"


@pytest.mark.asyncio
async def test_local_tts_lists_fall_back_when_plugin_missing(runtime) -> None:
    catalog = build_default_catalog(runtime=runtime, channel=LocalChannel())
    descriptor = catalog.get("app-local-audio-speech")

    models = await descriptor.list_models(descriptor.initial_config())
    voices = await descriptor.list_voices(descriptor.initial_config())

    assert [m.id for m in models][:1] == ["piper-amy-en"]
    assert {v.id for v in voices} == {"amy", "ryan"}


@pytest.mark.asyncio
async def test_local_tts_lists_plugin_models(runtime) -> None:
    channel = LocalChannel()
    channel.register(
        f"{TTS_PLUGIN}|list_models",
        lambda args: [
            {"id": "kokoro", "name": "Kokoro", "quality": "high", "languages": ["en", "ja"], "installed": True}
        ],
    )
    descriptor = build_default_catalog(runtime=runtime, channel=channel).get("app-local-audio-speech")

    [model] = await descriptor.list_models({})

    assert model.installed
    assert model.description == "high quality, en, ja"


@pytest.mark.asyncio
async def test_local_stt_requires_channel(runtime) -> None:
    descriptor = build_default_catalog(runtime=runtime).get("app-local-audio-transcription")
    with pytest.raises(ProviderInitError):
        await descriptor.create_provider({})
    assert await descriptor.list_models({}) == []


@pytest.mark.asyncio
async def test_local_stt_sends_float_samples(runtime) -> None:
    channel = LocalChannel()
    received = []

    def _transcribe(args):
        received.append(args)
        return "hello"

    channel.register(f"{STT_PLUGIN}|ipc_audio_transcription", _transcribe)
    descriptor = build_default_catalog(runtime=runtime, channel=channel).get(
        "app-local-audio-transcription"
    )
    instance = await descriptor.create_provider({})

    audio = array.array("f", [0.5, -0.25]).tobytes()
    assert await instance.transcribe("base", audio, {"language": "ja"}) == "hello"
    assert received == [{"chunk": [0.5, -0.25], "language": "ja"}]
