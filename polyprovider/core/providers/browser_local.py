"""In-process transformer models served behind a local OpenAI-compatible endpoint."""

from __future__ import annotations

from typing import List

from polyprovider.core.providers.base import ProviderCategory, ProviderDescriptor
from polyprovider.core.providers.openai_compat import (
    SPEECH_TO_TEXT,
    remote_factory,
    remote_model_lister,
)
from polyprovider.core.providers.validators import requires
from polyprovider.utils.platform import RuntimeInfo

MIN_MEMORY_GB = 8

_BUG_HINT = "This is likely a bug, report it to the developers."


def has_local_inference_capacity(runtime: RuntimeInfo) -> bool:
    """GPU acceleration, or at least 8 GB of memory for CPU inference."""
    if runtime.has_gpu:
        return True
    return runtime.memory_gb is not None and runtime.memory_gb >= MIN_MEMORY_GB


def _browser_local(
    provider_id: str, category: ProviderCategory, tasks: frozenset, runtime: RuntimeInfo
) -> ProviderDescriptor:
    async def _available() -> bool:
        return has_local_inference_capacity(runtime)

    return ProviderDescriptor(
        id=provider_id,
        category=category,
        tasks=tasks,
        name="Browser (Local)",
        name_key=f"settings.pages.providers.provider.{provider_id}.title",
        description="https://github.com/moeru-ai/xsai-transformers",
        description_key=f"settings.pages.providers.provider.{provider_id}.description",
        icon="i-lobe-icons:huggingface",
        is_available_by=_available,
        create_provider=remote_factory(provider_id),
        list_models=remote_model_lister(provider_id),
        validate_provider_config=requires("baseUrl", hints={"baseUrl": _BUG_HINT}),
    )


def build_browser_local(runtime: RuntimeInfo) -> List[ProviderDescriptor]:
    return [
        _browser_local(
            "browser-local-audio-speech",
            ProviderCategory.SPEECH,
            frozenset({"text-to-speech", "tts"}),
            runtime,
        ),
        _browser_local(
            "browser-local-audio-transcription",
            ProviderCategory.TRANSCRIPTION,
            SPEECH_TO_TEXT,
            runtime,
        ),
    ]
