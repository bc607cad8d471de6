"""Anthropic chat provider descriptor."""

from __future__ import annotations

from polyprovider.core.providers.base import ProviderCategory, ProviderDescriptor
from polyprovider.core.providers.openai_compat import (
    TEXT_GENERATION,
    remote_factory,
    static_model_lister,
)
from polyprovider.core.providers.validators import requires

ANTHROPIC_BASE_URL = "https://api.anthropic.com/v1/"

CLAUDE_MODELS = (
    ("claude-3-7-sonnet-20250219", "Claude 3.7 Sonnet", "", 0),
    ("claude-3-5-sonnet-20241022", "Claude 3.5 Sonnet (New)", "", 0),
    ("claude-3-5-haiku-20241022", "Claude 3.5 Haiku", "", 0),
    ("claude-3-5-sonnet-20240620", "Claude 3.5 Sonnet (Old)", "", 0),
    ("claude-3-haiku-20240307", "Claude 3 Haiku", "", 0),
    ("claude-3-opus-20240229", "Claude 3 Opus", "", 0),
)


def build_anthropic() -> ProviderDescriptor:
    """Claude models, driven through ``anthropic.AsyncAnthropic``."""
    return ProviderDescriptor(
        id="anthropic",
        category=ProviderCategory.CHAT,
        tasks=TEXT_GENERATION,
        name="Anthropic | Claude",
        name_key="settings.pages.providers.provider.anthropic.title",
        description="anthropic.com",
        description_key="settings.pages.providers.provider.anthropic.description",
        icon="i-lobe-icons:anthropic",
        default_options=lambda: {"baseUrl": ANTHROPIC_BASE_URL},
        create_provider=remote_factory("anthropic", api="anthropic"),
        list_models=static_model_lister("anthropic", CLAUDE_MODELS),
        validate_provider_config=requires(
            "apiKey",
            "baseUrl",
            hints={"baseUrl": f"Default to {ANTHROPIC_BASE_URL} for official Claude API."},
        ),
    )
