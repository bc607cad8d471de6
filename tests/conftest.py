"""Pytest configuration and fixtures for all tests."""

from __future__ import annotations

from typing import Any, Callable

import httpx
import pytest

from polyprovider.core.providers import validators
from polyprovider.core.providers.base import (
    ProviderCategory,
    ProviderConfig,
    ProviderDescriptor,
    ProviderInstance,
)
from polyprovider.utils.platform import RuntimeInfo


@pytest.fixture(autouse=True)
def offline_reachability(monkeypatch):
    """Keep reachability validators off the network.

    Tests that exercise probing patch ``probe_url`` again with their own fake.
    """

    async def _refuse(url: str, headers: Any = None):
        raise httpx.ConnectError("Connection refused")

    monkeypatch.setattr(validators, "probe_url", _refuse)


@pytest.fixture
def runtime() -> RuntimeInfo:
    return RuntimeInfo(system="linux", has_gpu=False, memory_gb=16.0, has_command_channel=False)


@pytest.fixture
def descriptor_factory() -> Callable[..., ProviderDescriptor]:
    """Build minimal descriptors; keyword arguments override any field."""

    def _make(
        provider_id: str = "demo",
        category: ProviderCategory = ProviderCategory.CHAT,
        **overrides: Any,
    ) -> ProviderDescriptor:
        async def _create(config: ProviderConfig) -> ProviderInstance:
            return ProviderInstance(
                provider_id=provider_id,
                base_url=config.get("baseUrl", ""),
                api_key=config.get("apiKey", ""),
            )

        fields: dict = {
            "id": provider_id,
            "category": category,
            "name": provider_id.title(),
            "create_provider": _create,
            "validate_provider_config": validators.requires("apiKey"),
        }
        fields.update(overrides)
        return ProviderDescriptor(**fields)

    return _make

