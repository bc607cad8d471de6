"""Tests for shared configuration validators."""

from __future__ import annotations

import pytest

from polyprovider.core.catalog import build_default_catalog
from polyprovider.core.providers import validators
from polyprovider.core.providers.base import ValidationResult
from polyprovider.core.providers.validators import (
    check_required,
    is_absolute_url,
    join_url,
    reachability_validator,
    requires,
)


def test_missing_api_key_reports_label() -> None:
    result = requires("apiKey")({})
    assert not result.valid
    assert result.reason == "API key is required"
    assert result.errors == ("API key is required",)


def test_multiple_errors_join_with_comma() -> None:
    result = check_required({}, ["apiKey", "accountId"])
    assert result.reason == "API key is required, Account ID is required"


def test_hint_is_appended_to_missing_field() -> None:
    result = check_required({}, ["baseUrl"], hints={"baseUrl": "Default to https://x/."})
    assert result.reason == "Base URL is required. Default to https://x/."


def test_non_absolute_base_url_has_fixed_reason() -> None:
    result = requires("apiKey", "baseUrl")({"apiKey": "k", "baseUrl": "localhost:8080"})
    assert not result.valid
    assert result.reason == "Base URL is not absolute. Check your input."


def test_complete_config_is_valid() -> None:
    result = requires("apiKey", "baseUrl")({"apiKey": "k", "baseUrl": "https://api.example.com/v1/"})
    assert result == ValidationResult.ok()


def test_dotted_fields_are_looked_up_in_groups() -> None:
    validate = requires("apiKey", "app.appId")
    assert validate({"apiKey": "k", "app": {"appId": "42"}}).valid
    assert validate({"apiKey": "k", "app": {}}).reason == "App ID is required"


def test_blank_strings_count_as_missing() -> None:
    assert requires("apiKey")({"apiKey": "   "}).reason == "API key is required"


def test_is_absolute_url() -> None:
    assert is_absolute_url("http://localhost:11434/v1/")
    assert not is_absolute_url("/v1/models")
    assert not is_absolute_url(None)


def test_join_url() -> None:
    assert join_url("http://h/v1", "models") == "http://h/v1/models"
    assert join_url("http://h/v1/", "/models") == "http://h/v1/models"


@pytest.mark.asyncio
async def test_reachability_validator_success(monkeypatch) -> None:
    calls = []

    async def _probe(url, headers=None):
        calls.append((url, headers))
        return True, "OK"

    monkeypatch.setattr(validators, "probe_url", _probe)
    validate = reachability_validator("Ollama", headers={"x-key": "1"})

    result = await validate({"baseUrl": "http://localhost:11434/v1/"})

    assert result.valid
    assert calls == [("http://localhost:11434/v1/models", {"x-key": "1"})]


@pytest.mark.asyncio
async def test_reachability_validator_reports_transport_error_with_hint() -> None:
    validate = reachability_validator("Ollama", hint="Set OLLAMA_ORIGINS=*.")
    result = await validate({"baseUrl": "http://localhost:11434/v1/"})
    assert not result.valid
    assert result.reason.startswith("Failed to reach Ollama server, error: Connection refused")
    assert result.reason.endswith("Set OLLAMA_ORIGINS=*.")


@pytest.mark.asyncio
async def test_reachability_validator_non_ok_status(monkeypatch) -> None:
    async def _probe(url, headers=None):
        return False, "Service Unavailable"

    monkeypatch.setattr(validators, "probe_url", _probe)
    result = await reachability_validator("vLLM")({"baseUrl": "http://localhost:8000/v1/"})
    assert result.reason == "vLLM server returned non-ok status code: Service Unavailable"


@pytest.mark.asyncio
async def test_reachability_validator_requires_base_url() -> None:
    validate = reachability_validator("LM Studio", default_base_url="http://localhost:1234/v1/")
    result = await validate({})
    assert result.reason == "Base URL is required. Default to http://localhost:1234/v1/ for LM Studio."
    assert (await validate({"baseUrl": "nope"})).reason == "Base URL is not absolute. Check your input."


@pytest.mark.asyncio
async def test_validators_never_mutate_config(runtime) -> None:
    catalog = build_default_catalog(runtime=runtime)
    for descriptor in catalog:
        config = descriptor.initial_config()
        config.setdefault("baseUrl", "not a url")
        before = repr(config)
        await descriptor.validate(config)
        assert repr(config) == before, descriptor.id


@pytest.mark.asyncio
async def test_hosted_provider_requires_api_key(runtime) -> None:
    catalog = build_default_catalog(runtime=runtime)
    xai = catalog.get("xai")
    result = await xai.validate(xai.initial_config())
    assert not result.valid
    assert result.reason == "API key is required"
    assert (await xai.validate({**xai.initial_config(), "apiKey": "xai-test"})).valid


@pytest.mark.asyncio
async def test_openai_only_needs_base_url(runtime) -> None:
    catalog = build_default_catalog(runtime=runtime)
    openai = catalog.get("openai")
    assert (await openai.validate(openai.initial_config())).valid
    result = await openai.validate({})
    assert result.reason.startswith("Base URL is required. Default to https://api.openai.com/v1/")
