"""Reusable configuration validators shared by provider descriptors."""

from __future__ import annotations

from typing import Callable, Dict, List, Optional, Sequence, Tuple
from urllib.parse import urlparse

import httpx

from polyprovider.core.providers.base import ProviderConfig, ValidationResult
from polyprovider.utils.log import get_logger

logger = get_logger()

REACHABILITY_TIMEOUT = 5.0

FIELD_LABELS: Dict[str, str] = {
    "apiKey": "API key",
    "baseUrl": "Base URL",
    "accountId": "Account ID",
    "resourceName": "Resource name",
    "modelId": "Model ID",
    "app.appId": "App ID",
}


def not_absolute_result() -> ValidationResult:
    return ValidationResult(
        valid=False,
        reason="Base URL is not absolute. Check your input.",
        errors=("Base URL is not absolute",),
    )


def is_absolute_url(value: object) -> bool:
    if not isinstance(value, str) or not value.strip():
        return False
    parsed = urlparse(value.strip())
    return bool(parsed.scheme) and bool(parsed.netloc)


def _lookup(config: ProviderConfig, dotted: str) -> object:
    cursor: object = config
    for part in dotted.split("."):
        if not isinstance(cursor, dict):
            return None
        cursor = cursor.get(part)
    return cursor


def _present(value: object) -> bool:
    if isinstance(value, str):
        return bool(value.strip())
    return bool(value)


def missing_field_errors(
    config: ProviderConfig, fields: Sequence[str], hints: Optional[Dict[str, str]] = None
) -> List[str]:
    """Return one ``"<Label> is required"`` message per absent field."""
    errors = []
    for name in fields:
        if _present(_lookup(config, name)):
            continue
        message = f"{FIELD_LABELS.get(name, name)} is required"
        if hints and hints.get(name):
            message += f". {hints[name]}"
        errors.append(message)
    return errors


def check_required(
    config: ProviderConfig,
    fields: Sequence[str],
    *,
    hints: Optional[Dict[str, str]] = None,
    check_base_url: bool = True,
) -> ValidationResult:
    """Required-field check with the shared base URL absoluteness rule."""
    base_url = config.get("baseUrl")
    if check_base_url and _present(base_url) and not is_absolute_url(base_url):
        return not_absolute_result()
    return ValidationResult.from_errors(missing_field_errors(config, fields, hints))


def requires(
    *fields: str, hints: Optional[Dict[str, str]] = None, check_base_url: bool = True
) -> Callable[[ProviderConfig], ValidationResult]:
    """Build a synchronous validator requiring ``fields``."""

    def _validate(config: ProviderConfig) -> ValidationResult:
        return check_required(config, fields, hints=hints, check_base_url=check_base_url)

    return _validate


def always_valid(_config: ProviderConfig) -> ValidationResult:
    return ValidationResult.ok()


def join_url(base_url: str, path: str) -> str:
    base = base_url.strip()
    if not base.endswith("/"):
        base += "/"
    return base + path.lstrip("/")


async def probe_url(
    url: str, headers: Optional[Dict[str, str]] = None
) -> Tuple[bool, str]:
    """GET ``url`` and report ``(ok, status_text)``. Transport errors propagate."""
    async with httpx.AsyncClient(timeout=REACHABILITY_TIMEOUT) as client:
        response = await client.get(url, headers=headers or None)
    return response.is_success, response.reason_phrase


def reachability_validator(
    server_name: str,
    *,
    path: str = "models",
    default_base_url: str = "",
    hint: str = "",
    headers: Optional[Dict[str, str]] = None,
):
    """Build an async validator that requires a reachable ``baseUrl``."""

    async def _validate(config: ProviderConfig) -> ValidationResult:
        base_url = config.get("baseUrl")
        if not _present(base_url):
            reason = "Base URL is required."
            if default_base_url:
                reason += f" Default to {default_base_url} for {server_name}."
            return ValidationResult(valid=False, reason=reason, errors=("Base URL is required.",))
        if not is_absolute_url(base_url):
            return not_absolute_result()

        request_headers = dict(headers or {})
        configured = config.get("headers")
        if isinstance(configured, dict):
            request_headers.update({str(k): str(v) for k, v in configured.items()})
        url = join_url(str(base_url), path)
        try:
            ok, status_text = await probe_url(url, request_headers)
        except httpx.HTTPError as exc:
            logger.debug(
                "[validators] Reachability probe failed",
                extra={"server": server_name, "url": url, "error": str(exc)},
            )
            reason = f"Failed to reach {server_name} server, error: {exc} occurred."
            if hint:
                reason += f"\n\n{hint}"
            return ValidationResult(valid=False, reason=reason, errors=(str(exc),))
        if ok:
            return ValidationResult.ok()
        return ValidationResult.failed(
            f"{server_name} server returned non-ok status code: {status_text}"
        )

    return _validate
