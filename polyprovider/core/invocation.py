"""Resolve a provider into a live instance and perform one generation call."""

from __future__ import annotations

import copy
from typing import Any, Awaitable, Callable, Dict, Optional

from polyprovider.core.catalog import ProviderCatalog
from polyprovider.core.config import ProviderConfigStore
from polyprovider.core.providers import transport
from polyprovider.core.providers.app_local import DEFAULT_SYNTHESIS_OPTIONS
from polyprovider.core.providers.base import (
    ProviderCategory,
    ProviderConfig,
    ProviderDescriptor,
    ProviderInstance,
)
from polyprovider.core.providers.error_mapping import classify_error, normalize_error_message
from polyprovider.core.providers.errors import (
    CapabilityUnsupportedError,
    ProviderInitError,
    ProviderMappedError,
    ProviderValidationError,
)
from polyprovider.utils.log import get_logger

logger = get_logger()

Handler = Callable[[ProviderInstance, str, Any, Optional[str], ProviderConfig], Awaitable[Any]]

_ACTIONS: Dict[ProviderCategory, str] = {
    ProviderCategory.SPEECH: "Speech generation",
    ProviderCategory.TRANSCRIPTION: "Transcription",
    ProviderCategory.CHAT: "Chat completion",
    ProviderCategory.EMBED: "Embedding",
}


def merge_config(
    stored: ProviderConfig,
    overrides: Optional[ProviderConfig] = None,
    *,
    speech: bool = False,
) -> ProviderConfig:
    """Overlay ``overrides`` on ``stored`` without touching either.

    Nested dict groups (``voiceSettings``, ``app``...) merge one level deep.
    Speech configs always carry a complete ``voiceSettings`` group.
    """
    merged = copy.deepcopy(stored)
    for key, value in (overrides or {}).items():
        current = merged.get(key)
        if isinstance(current, dict) and isinstance(value, dict):
            merged[key] = {**current, **copy.deepcopy(value)}
        else:
            merged[key] = copy.deepcopy(value)
    if speech:
        voice_settings = merged.get("voiceSettings")
        if not isinstance(voice_settings, dict):
            voice_settings = {}
        merged["voiceSettings"] = {**DEFAULT_SYNTHESIS_OPTIONS, **voice_settings}
    return merged


def _require_text(value: Any, message: str) -> str:
    if not value or not isinstance(value, str):
        raise ProviderValidationError(message)
    return value


def _require_remote(instance: ProviderInstance, capability: str) -> None:
    if not instance.base_url:
        raise CapabilityUnsupportedError(
            f"Provider '{instance.provider_id}' has no {capability} entry point",
            provider_id=instance.provider_id,
        )


async def _speech(
    instance: ProviderInstance, model: str, text: Any, voice: Optional[str], config: ProviderConfig
) -> bytes:
    if instance.generate_speech is not None:
        audio = await instance.generate_speech(model, text, voice or "", config)
    else:
        _require_remote(instance, "speech")
        audio = await transport.generate_speech(instance, model, text, voice or "", config)
    if not audio:
        raise ValueError("Speech generation returned no data")
    return audio


async def _transcription(
    instance: ProviderInstance, model: str, audio: Any, language: Optional[str], config: ProviderConfig
) -> str:
    if not isinstance(audio, (bytes, bytearray)) or not audio:
        raise ProviderValidationError("Audio input is required")
    if language:
        config = {**config, "language": language}
    if instance.transcribe is not None:
        return await instance.transcribe(model, bytes(audio), config)
    _require_remote(instance, "transcription")
    return await transport.transcribe(instance, model, bytes(audio), config.get("language"))


async def _chat(
    instance: ProviderInstance, model: str, prompt: Any, target: Optional[str], config: ProviderConfig
) -> str:
    _require_remote(instance, "chat")
    return await transport.chat(instance, model, _require_text(prompt, "Prompt is required"))


async def _embed(
    instance: ProviderInstance, model: str, text: Any, target: Optional[str], config: ProviderConfig
) -> Any:
    _require_remote(instance, "embedding")
    return await transport.embed(instance, model, _require_text(text, "Input text is required"))


class InvocationFacade:
    """Single entry point for generation calls across every category."""

    def __init__(self, catalog: ProviderCatalog, store: ProviderConfigStore) -> None:
        self._catalog = catalog
        self._store = store
        self._handlers: Dict[ProviderCategory, Handler] = {
            ProviderCategory.SPEECH: _speech,
            ProviderCategory.TRANSCRIPTION: _transcription,
            ProviderCategory.CHAT: _chat,
            ProviderCategory.EMBED: _embed,
        }

    def effective_config(
        self, provider_id: str, config_overrides: Optional[ProviderConfig] = None
    ) -> ProviderConfig:
        descriptor = self._catalog.get(provider_id)
        return merge_config(
            self._store.snapshot(provider_id),
            config_overrides,
            speech=descriptor.category is ProviderCategory.SPEECH,
        )

    async def create_instance(
        self, descriptor: ProviderDescriptor, config: ProviderConfig
    ) -> ProviderInstance:
        try:
            instance = await descriptor.create_provider(config)
        except ProviderInitError:
            raise
        except Exception as exc:
            message = normalize_error_message(exc, "Provider initialization")
            raise ProviderInitError(message, provider_id=descriptor.id) from exc
        if instance is None:
            raise ProviderInitError(
                f"Failed to initialize {descriptor.name} provider", provider_id=descriptor.id
            )
        return instance

    async def generate(
        self,
        provider_id: str,
        model: str,
        input: Any,
        voice_or_target: Optional[str] = None,
        config_overrides: Optional[ProviderConfig] = None,
    ) -> Any:
        """Run one generation call and return its result.

        Speech returns audio bytes, transcription and chat return text,
        embedding returns a vector. Every failure surfaces as a
        :class:`ProviderMappedError` subclass.
        """
        descriptor = self._catalog.get(provider_id)
        action = _ACTIONS.get(descriptor.category, "Generation")
        _require_text(model, "Valid model name is required")
        if descriptor.category is ProviderCategory.SPEECH:
            _require_text(input, "Valid input text is required")
            _require_text(voice_or_target, "Valid voice ID is required")

        handler = self._handlers.get(descriptor.category)
        if handler is None:
            raise CapabilityUnsupportedError(
                f"No entry point for category '{descriptor.category.value}'",
                provider_id=provider_id,
            )

        config = self.effective_config(provider_id, config_overrides)
        instance = await self.create_instance(descriptor, config)
        logger.debug(
            "[invocation] Dispatching request",
            extra={"provider": provider_id, "model": model, "category": descriptor.category.value},
        )
        try:
            return await handler(instance, model, input, voice_or_target, config)
        except Exception as exc:
            mapped = classify_error(
                exc,
                provider_id=provider_id,
                network_hint=descriptor.network_hint,
                action=action,
            )
            logger.warning(
                "[invocation] %s failed: %s",
                action,
                mapped.message,
                extra={"provider": provider_id, "model": model, "error_code": mapped.error_code},
            )
            if mapped is exc:
                raise
            raise mapped from exc


def error_summary(exc: ProviderMappedError) -> Dict[str, Any]:
    """Serializable view of a dispatch error, for ``--json`` output."""
    return {"error_code": exc.error_code, "message": exc.message, "provider": exc.provider_id}
