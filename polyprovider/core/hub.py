"""Composition root wiring catalog, store, validation, availability,
installation and invocation together.

Mirrors the provider store the UI consumes: per-category views of
available and configured providers, model lists with loading and error
state, and one place to start and stop the background machinery.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from polyprovider.core.availability import AvailabilityResolver
from polyprovider.core.catalog import ProviderCatalog, build_default_catalog, is_local_provider
from polyprovider.core.channel import CommandChannel, UnavailableChannel
from polyprovider.core.config import ConfigBackend, HubSettings, ProviderConfigStore
from polyprovider.core.installation import ModelInstallTracker
from polyprovider.core.invocation import InvocationFacade
from polyprovider.core.providers.base import (
    ModelInfo,
    ProviderCategory,
    ProviderConfig,
    ProviderDescriptor,
    ProviderInstance,
    ValidationResult,
)
from polyprovider.core.speech import SpeechSettings
from polyprovider.core.validation import ValidationEngine
from polyprovider.utils.log import get_logger

logger = get_logger()


class ProviderHub:
    def __init__(
        self,
        *,
        catalog: Optional[ProviderCatalog] = None,
        backend: Optional[ConfigBackend] = None,
        channel: Optional[CommandChannel] = None,
        settings: Optional[HubSettings] = None,
    ) -> None:
        self.settings = settings or HubSettings()
        self.channel: CommandChannel = channel if channel is not None else UnavailableChannel()
        self.catalog = catalog if catalog is not None else build_default_catalog(channel=self.channel)
        self.store = ProviderConfigStore(self.catalog, backend)
        # Create every config up front so lazy creation never re-arms validation.
        self.store.initialize_all()
        self.validation = ValidationEngine(
            self.catalog, self.store, debounce=self.settings.validation_debounce
        )
        self.availability = AvailabilityResolver(self.catalog)
        self.installer = ModelInstallTracker(self.catalog, self.store, self.channel, self.settings)
        self.facade = InvocationFacade(self.catalog, self.store)
        self.speech = SpeechSettings(self.catalog, self.store, self.facade)

        self.is_loading_models: Dict[str, bool] = {}
        self.model_load_error: Dict[str, Optional[str]] = {}
        self.provider_models: Dict[str, List[ModelInfo]] = {}

    async def start(self) -> None:
        """Resolve availability and run the first validation pass."""
        await self.availability.refresh()
        await self.validation.update_configuration_status()
        logger.debug(
            "[hub] Provider hub started",
            extra={
                "available": len(self.availability.available()),
                "configured": sum(self.validation.configured.values()),
            },
        )

    async def aclose(self) -> None:
        self.validation.close()
        self.installer.close()

    async def __aenter__(self) -> "ProviderHub":
        await self.start()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    # Metadata and configuration

    def get_provider_metadata(self, provider_id: str) -> ProviderDescriptor:
        descriptor = self.catalog.find(provider_id)
        if descriptor is None:
            raise KeyError(f"Provider metadata for {provider_id} not found")
        return descriptor

    def get_provider_config(self, provider_id: str) -> ProviderConfig:
        return self.store.snapshot(provider_id)

    def set_provider_config(self, provider_id: str, partial: ProviderConfig) -> ProviderConfig:
        return self.store.set(provider_id, partial)

    async def validate_provider(self, provider_id: str) -> bool:
        result = await self.validation.validate_provider(provider_id)
        return result.valid

    async def validation_result(self, provider_id: str) -> ValidationResult:
        return await self.validation.validate_provider(provider_id)

    async def get_provider_instance(self, provider_id: str) -> ProviderInstance:
        descriptor = self.get_provider_metadata(provider_id)
        config = self.facade.effective_config(provider_id)
        return await self.facade.create_instance(descriptor, config)

    # Availability and configured views

    def is_configured(self, provider_id: str) -> bool:
        if is_local_provider(provider_id):
            return self.availability.is_available(provider_id)
        return self.validation.is_configured(provider_id)

    def available_providers(self) -> List[str]:
        return [d.id for d in self.availability.available()]

    def configured_providers(self) -> List[str]:
        return [d.id for d in self.catalog if self.is_configured(d.id)]

    def available_by_category(self, category: ProviderCategory) -> List[ProviderDescriptor]:
        return self.availability.by_category(category)

    def configured_by_category(self, category: ProviderCategory) -> List[ProviderDescriptor]:
        return [d for d in self.availability.by_category(category) if self.is_configured(d.id)]

    def configured_chat_providers(self) -> List[ProviderDescriptor]:
        return self.configured_by_category(ProviderCategory.CHAT)

    def configured_speech_providers(self) -> List[ProviderDescriptor]:
        return self.configured_by_category(ProviderCategory.SPEECH)

    def configured_transcription_providers(self) -> List[ProviderDescriptor]:
        return self.configured_by_category(ProviderCategory.TRANSCRIPTION)

    # Models

    async def fetch_models_for_provider(self, provider_id: str) -> List[ModelInfo]:
        """List models, recording loading state and any error instead of raising."""
        descriptor = self.get_provider_metadata(provider_id)
        if descriptor.list_models is None:
            return []
        self.is_loading_models[provider_id] = True
        self.model_load_error[provider_id] = None
        try:
            models = await self.installer.refresh_models(provider_id)
        except Exception as exc:
            logger.warning(
                "[hub] Error fetching models for %s: %s",
                provider_id,
                exc,
                extra={"provider": provider_id},
            )
            self.model_load_error[provider_id] = str(exc) or "Unknown error"
            return []
        finally:
            self.is_loading_models[provider_id] = False
        self.provider_models[provider_id] = models
        return models

    def get_models_for_provider(self, provider_id: str) -> List[ModelInfo]:
        return list(self.provider_models.get(provider_id, []))

    def all_available_models(self) -> List[ModelInfo]:
        models: List[ModelInfo] = []
        for provider_id in self.configured_providers():
            models.extend(self.provider_models.get(provider_id, []))
        return models

    async def load_models_for_configured_providers(self) -> List[ModelInfo]:
        for provider_id in self.configured_providers():
            if self.catalog.get(provider_id).list_models is not None:
                await self.fetch_models_for_provider(provider_id)
        return self.all_available_models()

    async def install_model(self, provider_id: str, model_id: str) -> bool:
        return await self.installer.install_model(provider_id, model_id)

    async def generate(
        self,
        provider_id: str,
        model: str,
        input: Any,
        voice_or_target: Optional[str] = None,
        config_overrides: Optional[ProviderConfig] = None,
    ) -> Any:
        return await self.facade.generate(
            provider_id, model, input, voice_or_target, config_overrides
        )
