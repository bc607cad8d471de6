"""Generic network entry points used when a provider has no direct function.

Remote providers speak either the OpenAI-compatible REST surface (reached
through ``openai.AsyncOpenAI``) or the Anthropic messages API (reached
through ``anthropic.AsyncAnthropic``). Voice catalogs served by speech
gateways are fetched with ``httpx``.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

import httpx
from anthropic import AsyncAnthropic
from openai import AsyncOpenAI

from polyprovider.core.providers.base import (
    ProviderConfig,
    ProviderInstance,
    VoiceInfo,
    VoiceLanguage,
)
from polyprovider.core.providers.validators import join_url
from polyprovider.utils.log import get_logger

logger = get_logger()

DEFAULT_CHAT_MAX_TOKENS = 1024
GATEWAY_TIMEOUT = 30.0


def _openai_client(instance: ProviderInstance) -> AsyncOpenAI:
    # Local servers accept any key but the SDK refuses an empty one.
    return AsyncOpenAI(
        api_key=instance.api_key or "EMPTY",
        base_url=instance.base_url or None,
        default_headers=instance.headers or None,
    )


def _anthropic_client(instance: ProviderInstance) -> AsyncAnthropic:
    base_url = instance.base_url.rstrip("/") or None
    # The SDK appends /v1 itself.
    if base_url and base_url.endswith("/v1"):
        base_url = base_url[: -len("/v1")]
    return AsyncAnthropic(
        api_key=instance.api_key, base_url=base_url, default_headers=instance.headers or None
    )


async def generate_speech(
    instance: ProviderInstance,
    model: str,
    text: str,
    voice: str,
    config: ProviderConfig,
) -> bytes:
    """Synthesize ``text`` through an OpenAI-compatible ``audio/speech`` route."""
    model = instance.options.get("model_override") or model
    model = f"{instance.options.get('model_prefix', '')}{model}"
    extra_body: Dict[str, Any] = dict(instance.options.get("extra_body") or {})
    voice_settings = config.get("voiceSettings")
    kwargs: Dict[str, Any] = {}
    if isinstance(voice_settings, dict) and voice_settings.get("speed") not in (None, 1.0):
        kwargs["speed"] = voice_settings["speed"]
    logger.debug(
        "[transport] Speech request",
        extra={
            "provider": instance.provider_id,
            "model": model,
            "voice": voice,
            "chars": len(text),
        },
    )
    async with _openai_client(instance) as client:
        response = await client.audio.speech.create(
            model=model,
            input=text,
            voice=voice,
            extra_body=extra_body or None,
            **kwargs,
        )
        return response.content


async def transcribe(
    instance: ProviderInstance,
    model: str,
    audio: bytes,
    language: Optional[str] = None,
) -> str:
    """Transcribe ``audio`` through an OpenAI-compatible ``audio/transcriptions`` route."""
    kwargs: Dict[str, Any] = {}
    if language:
        kwargs["language"] = language
    async with _openai_client(instance) as client:
        result = await client.audio.transcriptions.create(
            model=model,
            file=("audio.wav", audio),
            **kwargs,
        )
    return result.text


async def chat(instance: ProviderInstance, model: str, prompt: str) -> str:
    """Single-turn completion; returns the assistant text."""
    if instance.api == "anthropic":
        async with _anthropic_client(instance) as client:
            message = await client.messages.create(
                model=model,
                max_tokens=DEFAULT_CHAT_MAX_TOKENS,
                messages=[{"role": "user", "content": prompt}],
            )
        return "".join(
            getattr(block, "text", "") for block in message.content if block.type == "text"
        )

    async with _openai_client(instance) as client:
        completion = await client.chat.completions.create(
            model=model,
            messages=[{"role": "user", "content": prompt}],
        )
    if not completion.choices:
        return ""
    return completion.choices[0].message.content or ""


async def embed(instance: ProviderInstance, model: str, text: str) -> List[float]:
    async with _openai_client(instance) as client:
        response = await client.embeddings.create(model=model, input=text)
    return list(response.data[0].embedding)


async def list_model_ids(instance: ProviderInstance) -> List[str]:
    """Return model ids advertised by an OpenAI-compatible ``/models`` route."""
    async with _openai_client(instance) as client:
        page = await client.models.list()
    return [model.id for model in page.data]


async def fetch_json(
    url: str,
    *,
    headers: Optional[Dict[str, str]] = None,
    params: Optional[Dict[str, str]] = None,
) -> Any:
    async with httpx.AsyncClient(timeout=GATEWAY_TIMEOUT) as client:
        response = await client.get(url, headers=headers or None, params=params)
        response.raise_for_status()
        return response.json()


def _voice_languages(raw: Any) -> tuple:
    languages = []
    for entry in raw or []:
        if isinstance(entry, dict) and entry.get("code"):
            languages.append(
                VoiceLanguage(code=str(entry["code"]), title=str(entry.get("title") or entry["code"]))
            )
    return tuple(languages)


async def list_gateway_voices(
    instance: ProviderInstance, backend: str, provider_id: str
) -> List[VoiceInfo]:
    """List voices exposed by a speech gateway for ``backend``."""
    params = {"provider": backend}
    region = instance.options.get("region")
    if region:
        params["region"] = str(region)
    headers = {"Authorization": f"Bearer {instance.api_key}"} if instance.api_key else {}
    payload = await fetch_json(
        join_url(instance.base_url, "audio/voices"), headers=headers, params=params
    )
    raw_voices = payload.get("voices", []) if isinstance(payload, dict) else payload
    voices: List[VoiceInfo] = []
    for raw in raw_voices or []:
        labels = raw.get("labels") or {}
        voices.append(
            VoiceInfo(
                id=str(raw["id"]),
                name=str(raw.get("name") or raw["id"]),
                provider=provider_id,
                gender=labels.get("gender") if isinstance(labels, dict) else None,
                languages=_voice_languages(raw.get("languages")),
                preview_url=raw.get("preview_audio_url"),
                description=raw.get("description"),
            )
        )
    return voices
