"""Descriptors for hosted services speaking the OpenAI-compatible REST surface."""

from __future__ import annotations

from dataclasses import replace
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence, Tuple

from polyprovider.core.providers import transport
from polyprovider.core.providers.base import (
    ModelInfo,
    ProviderCategory,
    ProviderConfig,
    ProviderDescriptor,
    ProviderInstance,
    VoiceInfo,
)
from polyprovider.core.providers.error_mapping import run_with_exception_mapper
from polyprovider.core.providers.errors import (
    CapabilityError,
    ProviderInitError,
    ProviderMappedError,
)
from polyprovider.core.providers.validators import requires

TEXT_GENERATION = frozenset({"text-generation"})
TEXT_TO_SPEECH = frozenset({"text-to-speech"})
SPEECH_TO_TEXT = frozenset({"speech-to-text", "automatic-speech-recognition", "asr", "stt"})

OPENAI_BASE_URL = "https://api.openai.com/v1/"
OPENAI_BASE_URL_HINT = f"Default to {OPENAI_BASE_URL} for official OpenAI API."

StaticModel = Tuple[str, str, str, int]

OPENAI_VOICES = (
    "alloy",
    "ash",
    "ballad",
    "coral",
    "echo",
    "fable",
    "onyx",
    "nova",
    "sage",
    "shimmer",
    "verse",
)


def _text(config: ProviderConfig, key: str) -> str:
    value = config.get(key)
    return value.strip() if isinstance(value, str) else ""


def remote_instance(
    provider_id: str,
    config: ProviderConfig,
    *,
    api: str = "openai",
    require_api_key: bool = False,
    base_url: Optional[str] = None,
    headers: Optional[Dict[str, str]] = None,
    options: Optional[Dict[str, Any]] = None,
) -> ProviderInstance:
    """Build connection details for a remote provider from its config."""
    resolved_url = base_url if base_url is not None else _text(config, "baseUrl")
    api_key = _text(config, "apiKey")
    if not resolved_url:
        raise ProviderInitError("Base URL is required", provider_id=provider_id)
    if require_api_key and not api_key:
        raise ProviderInitError("API key is required", provider_id=provider_id)
    merged_headers: Dict[str, str] = dict(headers or {})
    configured = config.get("headers")
    if isinstance(configured, dict):
        merged_headers.update({str(k): str(v) for k, v in configured.items()})
    return ProviderInstance(
        provider_id=provider_id,
        base_url=resolved_url,
        api_key=api_key,
        api=api,
        headers=merged_headers,
        options=dict(options or {}),
    )


def _as_capability_error(provider_id: str) -> Callable[[Exception], Exception]:
    def _mapper(exc: Exception) -> Exception:
        if isinstance(exc, ProviderMappedError):
            return exc
        return CapabilityError(str(exc) or type(exc).__name__, provider_id=provider_id)

    return _mapper


async def guarded(provider_id: str, request_fn: Callable[[], Awaitable[Any]]) -> Any:
    """Run a listing call, reporting failures as :class:`CapabilityError`."""
    return await run_with_exception_mapper(request_fn, _as_capability_error(provider_id))


def remote_model_lister(
    provider_id: str, **instance_kwargs: Any
) -> Callable[[ProviderConfig], Awaitable[List[ModelInfo]]]:
    """List models from the provider's ``/models`` route."""

    async def _list(config: ProviderConfig) -> List[ModelInfo]:
        async def _request() -> List[ModelInfo]:
            instance = remote_instance(provider_id, config, **instance_kwargs)
            ids = await transport.list_model_ids(instance)
            return [
                ModelInfo(id=model_id, name=model_id, provider=provider_id, context_length=0)
                for model_id in ids
            ]

        return await guarded(provider_id, _request)

    return _list


def static_model_lister(
    provider_id: str, models: Sequence[StaticModel]
) -> Callable[[ProviderConfig], Awaitable[List[ModelInfo]]]:
    async def _list(config: ProviderConfig) -> List[ModelInfo]:
        return [
            ModelInfo(
                id=model_id,
                name=name,
                provider=provider_id,
                description=description,
                context_length=context_length,
            )
            for model_id, name, description, context_length in models
        ]

    return _list


def remote_factory(
    provider_id: str, **instance_kwargs: Any
) -> Callable[[ProviderConfig], Awaitable[ProviderInstance]]:
    async def _create(config: ProviderConfig) -> ProviderInstance:
        return remote_instance(provider_id, config, **instance_kwargs)

    return _create


def openai_compatible(
    provider_id: str,
    name: str,
    description: str,
    *,
    category: ProviderCategory = ProviderCategory.CHAT,
    tasks: frozenset = TEXT_GENERATION,
    icon: str = "",
    base_url: Optional[str] = None,
    required: Sequence[str] = ("apiKey", "baseUrl"),
    hints: Optional[Dict[str, str]] = None,
    models: Optional[Sequence[StaticModel]] = None,
    list_voices: Optional[Callable[[ProviderConfig], Awaitable[List[VoiceInfo]]]] = None,
    i18n_slug: Optional[str] = None,
) -> ProviderDescriptor:
    """Describe a provider reached through ``openai.AsyncOpenAI``."""
    slug = i18n_slug or provider_id
    defaults: ProviderConfig = {"baseUrl": base_url} if base_url is not None else {}
    list_models = (
        static_model_lister(provider_id, models)
        if models is not None
        else remote_model_lister(provider_id)
    )
    return ProviderDescriptor(
        id=provider_id,
        category=category,
        tasks=tasks,
        name=name,
        name_key=f"settings.pages.providers.provider.{slug}.title",
        description=description,
        description_key=f"settings.pages.providers.provider.{slug}.description",
        icon=icon,
        default_options=lambda: dict(defaults),
        create_provider=remote_factory(provider_id),
        list_models=list_models,
        list_voices=list_voices,
        validate_provider_config=requires(*required, hints=hints),
    )


def _openai_voices(provider_id: str) -> Callable[[ProviderConfig], Awaitable[List[VoiceInfo]]]:
    async def _list(config: ProviderConfig) -> List[VoiceInfo]:
        return [
            VoiceInfo(id=voice, name=voice.capitalize(), provider=provider_id)
            for voice in OPENAI_VOICES
        ]

    return _list


async def _no_voices(config: ProviderConfig) -> List[VoiceInfo]:
    return []


PERPLEXITY_MODELS: Tuple[StaticModel, ...] = (
    ("sonar-small-online", "Sonar Small (Online)", "Efficient model with online search capabilities", 12000),
    ("sonar-medium-online", "Sonar Medium (Online)", "Balanced model with online search capabilities", 12000),
    ("sonar-large-online", "Sonar Large (Online)", "Powerful model with online search capabilities", 12000),
)


def _openrouter() -> ProviderDescriptor:
    provider_id = "openrouter-ai"

    async def _list(config: ProviderConfig) -> List[ModelInfo]:
        async def _request() -> List[ModelInfo]:
            payload = await transport.fetch_json(
                "https://openrouter.ai/api/v1/models",
                headers={"Authorization": f"Bearer {_text(config, 'apiKey')}"},
            )
            return [
                ModelInfo(
                    id=entry["id"],
                    name=entry.get("name") or entry["id"],
                    provider=provider_id,
                    description=entry.get("description") or "",
                    context_length=entry.get("context_length"),
                )
                for entry in payload.get("data", [])
            ]

        return await guarded(provider_id, _request)

    base = openai_compatible(
        provider_id,
        "OpenRouter",
        "openrouter.ai",
        icon="i-lobe-icons:openrouter",
        base_url="https://openrouter.ai/api/v1/",
        i18n_slug="openrouter",
    )
    return replace(base, list_models=_list)


def _azure_ai_foundry() -> ProviderDescriptor:
    provider_id = "azure-ai-foundry"

    async def _create(config: ProviderConfig) -> ProviderInstance:
        resource = _text(config, "resourceName")
        if not resource:
            raise ProviderInitError("Resource name is required", provider_id=provider_id)
        options = {"api-version": config["apiVersion"]} if config.get("apiVersion") else {}
        return remote_instance(
            provider_id,
            config,
            require_api_key=True,
            base_url=f"https://{resource}.services.ai.azure.com/models/",
            headers={"api-key": _text(config, "apiKey")},
            options=options,
        )

    async def _list(config: ProviderConfig) -> List[ModelInfo]:
        model_id = _text(config, "modelId")
        return [ModelInfo(id=model_id, name=model_id, provider=provider_id, context_length=0)]

    return ProviderDescriptor(
        id=provider_id,
        category=ProviderCategory.CHAT,
        tasks=TEXT_GENERATION,
        name="Azure AI Foundry",
        name_key="settings.pages.providers.provider.azure_ai_foundry.title",
        description="azure.com",
        description_key="settings.pages.providers.provider.azure_ai_foundry.description",
        icon="i-lobe-icons:microsoft",
        create_provider=_create,
        list_models=_list,
        validate_provider_config=requires("apiKey", "resourceName", "modelId"),
    )


def _cloudflare_workers_ai() -> ProviderDescriptor:
    provider_id = "cloudflare-workers-ai"

    async def _create(config: ProviderConfig) -> ProviderInstance:
        account_id = _text(config, "accountId")
        if not account_id:
            raise ProviderInitError("Account ID is required", provider_id=provider_id)
        return remote_instance(
            provider_id,
            config,
            require_api_key=True,
            base_url=f"https://api.cloudflare.com/client/v4/accounts/{account_id}/ai/v1/",
        )

    async def _list(config: ProviderConfig) -> List[ModelInfo]:
        return []

    return ProviderDescriptor(
        id=provider_id,
        category=ProviderCategory.CHAT,
        tasks=TEXT_GENERATION,
        name="Cloudflare Workers AI",
        name_key="settings.pages.providers.provider.cloudflare-workers-ai.title",
        description="cloudflare.com",
        description_key="settings.pages.providers.provider.cloudflare-workers-ai.description",
        icon="i-lobe-icons:cloudflare",
        create_provider=_create,
        list_models=_list,
        validate_provider_config=requires("apiKey", "accountId"),
    )


def build_openai_family() -> List[ProviderDescriptor]:
    """Hosted chat, speech and transcription services on the OpenAI surface."""
    openai_hint = {"baseUrl": OPENAI_BASE_URL_HINT}
    return [
        _openrouter(),
        openai_compatible(
            "openai",
            "OpenAI",
            "openai.com",
            icon="i-lobe-icons:openai",
            base_url=OPENAI_BASE_URL,
            required=("baseUrl",),
            hints=openai_hint,
        ),
        openai_compatible(
            "openai-compatible",
            "OpenAI Compatible",
            "Connect to any API that follows the OpenAI specification.",
            icon="i-lobe-icons:openai",
            base_url="",
        ),
        openai_compatible(
            "openai-audio-speech",
            "OpenAI",
            "openai.com",
            category=ProviderCategory.SPEECH,
            tasks=TEXT_TO_SPEECH,
            icon="i-lobe-icons:openai",
            base_url=OPENAI_BASE_URL,
            required=("apiKey", "baseUrl"),
            hints=openai_hint,
            list_voices=_openai_voices("openai-audio-speech"),
        ),
        openai_compatible(
            "openai-compatible-audio-speech",
            "OpenAI Compatible",
            "Connect to any speech API that follows the OpenAI specification.",
            category=ProviderCategory.SPEECH,
            tasks=TEXT_TO_SPEECH,
            icon="i-lobe-icons:openai",
            base_url="",
            list_voices=_no_voices,
        ),
        openai_compatible(
            "openai-audio-transcription",
            "OpenAI",
            "openai.com",
            category=ProviderCategory.TRANSCRIPTION,
            tasks=SPEECH_TO_TEXT,
            icon="i-lobe-icons:openai",
            base_url=OPENAI_BASE_URL,
            required=("baseUrl",),
            hints=openai_hint,
        ),
        openai_compatible(
            "openai-compatible-audio-transcription",
            "OpenAI Compatible",
            "Connect to any transcription API that follows the OpenAI specification.",
            category=ProviderCategory.TRANSCRIPTION,
            tasks=SPEECH_TO_TEXT,
            icon="i-lobe-icons:openai",
            base_url="",
        ),
        _azure_ai_foundry(),
        openai_compatible(
            "google-generative-ai",
            "Google Gemini",
            "ai.google.dev",
            icon="i-lobe-icons:gemini",
            base_url="https://generativelanguage.googleapis.com/v1beta/openai/",
            hints={
                "baseUrl": "Default to https://generativelanguage.googleapis.com/v1beta/openai/ "
                "for official Google Gemini API with OpenAI compatibility."
            },
        ),
        openai_compatible(
            "xai", "xAI", "x.ai", icon="i-lobe-icons:xai", base_url="https://api.x.ai/v1/"
        ),
        openai_compatible(
            "deepseek",
            "DeepSeek",
            "deepseek.com",
            icon="i-lobe-icons:deepseek",
            base_url="https://api.deepseek.com/",
        ),
        openai_compatible(
            "together-ai",
            "Together.ai",
            "together.ai",
            icon="i-lobe-icons:together",
            base_url="https://api.together.xyz/v1/",
            i18n_slug="together",
        ),
        openai_compatible(
            "novita-ai",
            "Novita",
            "novita.ai",
            icon="i-lobe-icons:novita",
            base_url="https://api.novita.ai/v3/openai/",
            i18n_slug="novita",
        ),
        openai_compatible(
            "fireworks-ai",
            "Fireworks.ai",
            "fireworks.ai",
            icon="i-lobe-icons:fireworks",
            base_url="https://api.fireworks.ai/inference/v1/",
            i18n_slug="fireworks",
        ),
        openai_compatible(
            "featherless-ai",
            "Featherless.ai",
            "featherless.ai",
            icon="i-lobe-icons:featherless-ai",
            base_url="https://api.featherless.ai/v1/",
            i18n_slug="featherless",
        ),
        _cloudflare_workers_ai(),
        openai_compatible(
            "perplexity-ai",
            "Perplexity",
            "perplexity.ai",
            icon="i-lobe-icons:perplexity",
            base_url="https://api.perplexity.ai",
            models=PERPLEXITY_MODELS,
            i18n_slug="perplexity",
        ),
        openai_compatible(
            "mistral-ai",
            "Mistral",
            "mistral.ai",
            icon="i-lobe-icons:mistral",
            base_url="https://api.mistral.ai/v1/",
            i18n_slug="mistral",
        ),
        openai_compatible(
            "moonshot-ai",
            "Moonshot AI",
            "moonshot.ai",
            icon="i-lobe-icons:moonshot",
            base_url="https://api.moonshot.ai/v1/",
            i18n_slug="moonshot",
        ),
    ]
