"""On-device speech synthesis and recognition driven over the command channel."""

from __future__ import annotations

import array
from typing import Any, Dict, List, Optional

from polyprovider.core.channel import CommandChannel, is_attached
from polyprovider.core.providers.base import (
    ModelInfo,
    ProgressCallback,
    ProgressInfo,
    ProviderCategory,
    ProviderConfig,
    ProviderDescriptor,
    ProviderInstance,
    VoiceInfo,
    VoiceLanguage,
)
from polyprovider.core.providers.errors import ProviderInitError
from polyprovider.core.providers.validators import always_valid
from polyprovider.utils.log import get_logger

logger = get_logger()

TTS_PLUGIN = "plugin:ipc-audio-tts-ort"
STT_PLUGIN = "plugin:ipc-audio-transcription-ort"
TTS_PROGRESS_EVENT = "tauri-plugins:tauri-plugin-ipc-audio-tts-ort:load-model-progress"
STT_PROGRESS_EVENT = (
    "tauri-plugins:tauri-plugin-ipc-audio-transcription-ort:load-model-whisper-progress"
)

DEFAULT_SYNTHESIS_OPTIONS: Dict[str, float] = {"pitch": 0, "speed": 1.0, "volume": 0}

_ENGLISH = (VoiceLanguage(code="en", title="English"),)

FALLBACK_TTS_MODELS = (
    ("piper-amy-en", "Piper Amy (English)", "High quality English voice"),
    ("piper-ryan-en", "Piper Ryan (English)", "High quality English voice"),
    ("mimic3-en_US-vctk", "Mimic 3 VCTK", "Multi-speaker English voices"),
)
FALLBACK_TTS_VOICES = (
    ("amy", "Amy", "female"),
    ("ryan", "Ryan", "male"),
)
FALLBACK_STT_MODELS = (
    ("whisper-large-v3-turbo", "Whisper Large v3 Turbo", "Best quality, GPU recommended"),
    ("whisper-medium", "Whisper Medium", "Balanced quality and speed"),
    ("whisper-base", "Whisper Base", "Fast, lower accuracy"),
    ("whisper-tiny", "Whisper Tiny", "Fastest, basic accuracy"),
)


def local_speech_defaults() -> ProviderConfig:
    return {
        "model": "hexgrad/Kokoro-82M",
        "voice": "af",
        "voiceSettings": dict(DEFAULT_SYNTHESIS_OPTIONS),
    }


def synthesis_options(options: ProviderConfig) -> Dict[str, float]:
    """Resolve pitch/speed/volume from ``voiceSettings`` then top-level keys."""
    voice_settings = options.get("voiceSettings") or {}
    resolved: Dict[str, float] = {}
    for key, default in DEFAULT_SYNTHESIS_OPTIONS.items():
        value = voice_settings.get(key)
        if value is None:
            value = options.get(key)
        resolved[key] = default if value is None else value
    return resolved


def whisper_model_type(model_id: Optional[str]) -> str:
    """Map ``whisper-large-v3`` style ids onto the loader's model type."""
    if not model_id:
        return "base"
    return model_id.replace("whisper-", "", 1).replace("-", "", 1) or "base"


def _target_model(config: ProviderConfig) -> Optional[str]:
    return config.get("modelId") or config.get("model")


def build_local_speech(channel: CommandChannel) -> ProviderDescriptor:
    provider_id = "app-local-audio-speech"

    async def _generate_speech(model: str, text: str, voice: str, options: ProviderConfig) -> bytes:
        if not text or not isinstance(text, str):
            raise ValueError("Invalid or missing input text")
        if not voice or not isinstance(voice, str):
            raise ValueError("Invalid or missing voice ID")
        if not is_attached(channel):
            raise ProviderInitError(
                "Local TTS provider requires a desktop command channel", provider_id=provider_id
            )
        result = await channel.invoke(
            f"{TTS_PLUGIN}|synthesize",
            {"text": text, "voiceId": voice, "options": synthesis_options(options)},
        )
        if not result or not isinstance(result, (list, bytes, bytearray)):
            raise ValueError("TTS plugin returned invalid or empty audio data")
        return bytes(result)

    async def _create(config: ProviderConfig) -> ProviderInstance:
        return ProviderInstance(provider_id=provider_id, generate_speech=_generate_speech)

    async def _list_models(config: ProviderConfig) -> List[ModelInfo]:
        try:
            models = await channel.invoke(f"{TTS_PLUGIN}|list_models")
        except Exception as exc:
            logger.debug(
                "[app_local] Falling back to bundled TTS model list",
                extra={"error": str(exc)},
            )
            return [
                ModelInfo(id=model_id, name=name, provider=provider_id, description=description)
                for model_id, name, description in FALLBACK_TTS_MODELS
            ]
        return [
            ModelInfo(
                id=entry["id"],
                name=entry.get("name") or entry["id"],
                provider=provider_id,
                description=f"{entry.get('quality', 'unknown')} quality, "
                + ", ".join(entry.get("languages") or []),
                size=entry.get("size"),
                quality=entry.get("quality"),
                languages=list(entry.get("languages") or []),
                installed=bool(entry.get("installed", False)),
            )
            for entry in models or []
        ]

    async def _list_voices(config: ProviderConfig) -> List[VoiceInfo]:
        try:
            voices = await channel.invoke(f"{TTS_PLUGIN}|list_voices")
        except Exception as exc:
            logger.debug(
                "[app_local] Falling back to bundled TTS voice list",
                extra={"error": str(exc)},
            )
            return [
                VoiceInfo(
                    id=voice_id, name=name, provider=provider_id, gender=gender, languages=_ENGLISH
                )
                for voice_id, name, gender in FALLBACK_TTS_VOICES
            ]
        result: List[VoiceInfo] = []
        for entry in voices or []:
            language = entry.get("language") or "en"
            result.append(
                VoiceInfo(
                    id=entry["id"],
                    name=entry.get("name") or entry["id"],
                    provider=provider_id,
                    gender=entry.get("gender"),
                    model_id=entry.get("modelId"),
                    languages=(
                        VoiceLanguage(
                            code=language.split("-")[0],
                            title=entry.get("language") or "English",
                        ),
                    ),
                )
            )
        return result

    async def _load_model(config: ProviderConfig, on_progress: Optional[ProgressCallback]) -> None:
        await channel.invoke(f"{TTS_PLUGIN}|load_model", {"modelId": _target_model(config)})
        if on_progress is not None:
            on_progress(ProgressInfo(progress=1.0, done=True))

    async def _available() -> bool:
        return is_attached(channel)

    return ProviderDescriptor(
        id=provider_id,
        category=ProviderCategory.SPEECH,
        tasks=frozenset({"text-to-speech", "tts"}),
        name="Local TTS",
        name_key=f"settings.pages.providers.provider.{provider_id}.title",
        description="High-quality offline text-to-speech with ONNX models",
        description_key=f"settings.pages.providers.provider.{provider_id}.description",
        icon="i-solar:microphone-3-bold-duotone",
        default_options=local_speech_defaults,
        is_available_by=_available,
        create_provider=_create,
        list_models=_list_models,
        list_voices=_list_voices,
        load_model=_load_model,
        progress_event=TTS_PROGRESS_EVENT,
        validate_provider_config=always_valid,
    )


def _pcm_samples(audio: bytes) -> List[float]:
    samples = array.array("f")
    usable = len(audio) - (len(audio) % samples.itemsize)
    samples.frombytes(audio[:usable])
    return samples.tolist()


def build_local_transcription(channel: CommandChannel) -> ProviderDescriptor:
    provider_id = "app-local-audio-transcription"

    async def _transcribe(model: str, audio: bytes, options: ProviderConfig) -> str:
        language = options.get("language") or "en"
        result: Any = await channel.invoke(
            f"{STT_PLUGIN}|ipc_audio_transcription",
            {"chunk": _pcm_samples(audio), "language": language},
        )
        return str(result or "")

    async def _create(config: ProviderConfig) -> ProviderInstance:
        if not is_attached(channel):
            raise ProviderInitError(
                "Local STT provider requires a desktop command channel", provider_id=provider_id
            )
        return ProviderInstance(provider_id=provider_id, transcribe=_transcribe)

    async def _list_models(config: ProviderConfig) -> List[ModelInfo]:
        if not is_attached(channel):
            return []
        try:
            models = await channel.invoke(f"{STT_PLUGIN}|list_models")
        except Exception as exc:
            logger.debug(
                "[app_local] Falling back to bundled Whisper model list",
                extra={"error": str(exc)},
            )
            return [
                ModelInfo(id=model_id, name=name, provider=provider_id, description=description)
                for model_id, name, description in FALLBACK_STT_MODELS
            ]
        return [
            ModelInfo(
                id=entry["id"],
                name=entry.get("name") or entry["id"],
                provider=provider_id,
                description=f"{entry.get('accuracy', 'unknown')} accuracy, "
                f"{entry.get('speed', 'unknown')} speed",
                size=entry.get("size"),
                quality=entry.get("accuracy"),
                speed=entry.get("speed"),
                installed=bool(entry.get("installed", False)),
            )
            for entry in models or []
        ]

    async def _load_model(config: ProviderConfig, on_progress: Optional[ProgressCallback]) -> None:
        if not is_attached(channel):
            return
        await channel.invoke(
            f"{STT_PLUGIN}|load_ort_model_whisper",
            {"modelType": whisper_model_type(_target_model(config))},
        )
        if on_progress is not None:
            on_progress(ProgressInfo(progress=1.0, done=True))

    async def _available() -> bool:
        return is_attached(channel)

    return ProviderDescriptor(
        id=provider_id,
        category=ProviderCategory.TRANSCRIPTION,
        tasks=frozenset({"speech-to-text", "automatic-speech-recognition", "asr", "stt"}),
        name="Local STT",
        name_key=f"settings.pages.providers.provider.{provider_id}.title",
        description="Fast offline speech recognition with Whisper ONNX models",
        description_key=f"settings.pages.providers.provider.{provider_id}.description",
        icon="i-solar:microphone-3-bold-duotone",
        default_options=lambda: {"model": "base"},
        is_available_by=_available,
        create_provider=_create,
        list_models=_list_models,
        load_model=_load_model,
        progress_event=STT_PROGRESS_EVENT,
        validate_provider_config=always_valid,
    )
