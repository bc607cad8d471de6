"""Hosted speech synthesis services.

ElevenLabs, Microsoft, Alibaba Cloud and Volcengine are reached through an
OpenAI-compatible speech gateway that routes on a ``<backend>/<model>``
model name and forwards vendor options in the request body.
"""

from __future__ import annotations

from typing import Any, Callable, Dict, List, Optional, Sequence

from polyprovider.core.providers import transport
from polyprovider.core.providers.base import (
    ProviderCategory,
    ProviderConfig,
    ProviderDescriptor,
    ProviderInstance,
    VoiceInfo,
    VoiceLanguage,
)
from polyprovider.core.providers.openai_compat import (
    TEXT_TO_SPEECH,
    StaticModel,
    guarded,
    remote_instance,
    static_model_lister,
)
from polyprovider.core.providers.validators import join_url, requires

GATEWAY_BASE_URL = "https://unspeech.hyp3r.link/v1/"
INDEX_TTS_BASE_URL = "http://localhost:11996/tts"

ELEVENLABS_MODELS: Sequence[StaticModel] = (
    ("eleven_multilingual_v2", "Eleven Multilingual v2", "Most lifelike, emotionally rich model", 0),
    ("eleven_turbo_v2_5", "Eleven Turbo v2.5", "High quality, low latency model", 0),
    ("eleven_flash_v2_5", "Eleven Flash v2.5", "Ultra low latency model", 0),
    ("eleven_monolingual_v1", "Eleven English v1", "First generation English model", 0),
)

ExtraBodyFn = Callable[[ProviderConfig], Dict[str, Any]]


def _elevenlabs_body(config: ProviderConfig) -> Dict[str, Any]:
    settings = config.get("voiceSettings") or {}
    body: Dict[str, Any] = {}
    if settings:
        body["voice_settings"] = {
            "similarity_boost": settings.get("similarityBoost"),
            "stability": settings.get("stability"),
        }
    return body


def _microsoft_body(config: ProviderConfig) -> Dict[str, Any]:
    return {"region": config["region"]} if config.get("region") else {}


def _volcengine_body(config: ProviderConfig) -> Dict[str, Any]:
    app = config.get("app")
    return {"app": dict(app)} if isinstance(app, dict) else {}


def reorder_elevenlabs_voices(voices: List[VoiceInfo]) -> List[VoiceInfo]:
    """Move the legacy premade block (Aria through Bill) to the end of the list."""
    if not voices:
        return voices
    aria = next((i for i, voice in enumerate(voices) if "Aria" in voice.name), -1)
    bill = next((i for i, voice in enumerate(voices) if "Bill" in voice.name), -1)
    start = aria if aria != -1 else 0
    end = bill if bill != -1 else len(voices) - 1
    lower, higher = min(start, end), max(start, end)
    return voices[:lower] + voices[higher + 1 :] + voices[lower : higher + 1]


def _gateway_service(
    provider_id: str,
    backend: str,
    name: str,
    description: str,
    *,
    i18n_slug: str,
    icon: str,
    models: Sequence[StaticModel],
    required: Sequence[str] = ("apiKey", "baseUrl"),
    extra_defaults: Optional[ProviderConfig] = None,
    extra_body: Optional[ExtraBodyFn] = None,
    post_process: Optional[Callable[[List[VoiceInfo]], List[VoiceInfo]]] = None,
) -> ProviderDescriptor:
    def _instance(config: ProviderConfig) -> ProviderInstance:
        options: Dict[str, Any] = {"model_prefix": f"{backend}/"}
        if config.get("region"):
            options["region"] = config["region"]
        if extra_body is not None:
            options["extra_body"] = extra_body(config)
        return remote_instance(provider_id, config, require_api_key=True, options=options)

    async def _create(config: ProviderConfig) -> ProviderInstance:
        return _instance(config)

    async def _list_voices(config: ProviderConfig) -> List[VoiceInfo]:
        async def _request() -> List[VoiceInfo]:
            voices = await transport.list_gateway_voices(_instance(config), backend, provider_id)
            return post_process(voices) if post_process else voices

        return await guarded(provider_id, _request)

    defaults: ProviderConfig = {"baseUrl": GATEWAY_BASE_URL, **(extra_defaults or {})}
    return ProviderDescriptor(
        id=provider_id,
        category=ProviderCategory.SPEECH,
        tasks=TEXT_TO_SPEECH,
        name=name,
        name_key=f"settings.pages.providers.provider.{i18n_slug}.title",
        description=description,
        description_key=f"settings.pages.providers.provider.{i18n_slug}.description",
        icon=icon,
        default_options=lambda: {
            key: dict(value) if isinstance(value, dict) else value
            for key, value in defaults.items()
        },
        create_provider=_create,
        list_models=static_model_lister(provider_id, models),
        list_voices=_list_voices,
        validate_provider_config=requires(*required),
    )


def _index_tts() -> ProviderDescriptor:
    provider_id = "index-tts-vllm"
    languages = (
        VoiceLanguage(code="cn", title="Chinese"),
        VoiceLanguage(code="en", title="English"),
    )

    async def _create(config: ProviderConfig) -> ProviderInstance:
        return remote_instance(provider_id, config, options={"model_override": "IndexTTS-1.5"})

    async def _list_voices(config: ProviderConfig) -> List[VoiceInfo]:
        async def _request() -> List[VoiceInfo]:
            payload = await transport.fetch_json(
                join_url(str(config.get("baseUrl") or INDEX_TTS_BASE_URL), "audio/voices")
            )
            return [
                VoiceInfo(id=voice, name=voice, provider=provider_id, languages=languages)
                for voice in (payload or {})
            ]

        return await guarded(provider_id, _request)

    return ProviderDescriptor(
        id=provider_id,
        category=ProviderCategory.SPEECH,
        tasks=TEXT_TO_SPEECH,
        name="Index-TTS by Bilibili",
        name_key=f"settings.pages.providers.provider.{provider_id}.title",
        description="index-tts.github.io",
        description_key=f"settings.pages.providers.provider.{provider_id}.description",
        icon="i-lobe-icons:bilibiliindex",
        default_options=lambda: {"baseUrl": INDEX_TTS_BASE_URL},
        create_provider=_create,
        list_voices=_list_voices,
        validate_provider_config=requires(
            "baseUrl", hints={"baseUrl": f"Default to {INDEX_TTS_BASE_URL} for Index-TTS."}
        ),
    )


def build_speech_services() -> List[ProviderDescriptor]:
    return [
        _gateway_service(
            "elevenlabs",
            "elevenlabs",
            "ElevenLabs",
            "elevenlabs.io",
            i18n_slug="elevenlabs",
            icon="i-simple-icons:elevenlabs",
            models=ELEVENLABS_MODELS,
            extra_defaults={"voiceSettings": {"similarityBoost": 0.75, "stability": 0.5}},
            extra_body=_elevenlabs_body,
            post_process=reorder_elevenlabs_voices,
        ),
        _gateway_service(
            "microsoft-speech",
            "microsoft",
            "Microsoft / Azure Speech",
            "speech.microsoft.com",
            i18n_slug="microsoft-speech",
            icon="i-lobe-icons:microsoft",
            models=(("v1", "v1", "", 0),),
            extra_body=_microsoft_body,
        ),
        _index_tts(),
        _gateway_service(
            "alibaba-cloud-model-studio",
            "alibaba",
            "Alibaba Cloud Model Studio",
            "bailian.console.aliyun.com",
            i18n_slug="alibaba-cloud-model-studio",
            icon="i-lobe-icons:alibabacloud",
            models=(
                ("cozyvoice-v1", "CozyVoice", "", 0),
                ("cozyvoice-v2", "CozyVoice (New)", "", 0),
            ),
        ),
        _gateway_service(
            "volcengine",
            "volcengine",
            "Volcengine",
            "volcengine.com",
            i18n_slug="volcengine",
            icon="i-lobe-icons:volcengine",
            models=(("v1", "v1", "", 0),),
            required=("apiKey", "baseUrl", "app.appId"),
            extra_body=_volcengine_body,
        ),
    ]
