"""Shared helpers for provider exception mapping."""

from __future__ import annotations

from typing import Any, Awaitable, Callable, Mapping, Optional

import httpx
import openai

from polyprovider.core.providers.errors import (
    ErrorKind,
    InvocationError,
    ProviderMappedError,
    ProviderNetworkError,
    ProviderPermissionError,
)

_PERMISSION_HINTS = (
    "permission denied",
    "notallowederror",
    "not allowed by the user",
    "access denied",
)
_NETWORK_HINTS = (
    "failed to fetch",
    "connection refused",
    "connection error",
    "network is unreachable",
    "name or service not known",
    "econnrefused",
)

PERMISSION_REMEDIATION = (
    "Permission denied. Grant the required device permission in your system "
    "settings, then restart the application."
)


def normalize_error_message(value: Any, action: str = "Generation") -> str:
    """Collapse any raised value into a stable, non-empty diagnostic string."""
    if value is None:
        return f"{action} failed with unknown error"
    if isinstance(value, str):
        return value or f"{action} failed"
    if isinstance(value, BaseException):
        message = getattr(value, "message", None) or str(value)
        return str(message) if message else f"{action} failed"
    if isinstance(value, Mapping) and value.get("message"):
        return str(value["message"])
    message_attr = getattr(value, "message", None)
    if message_attr:
        return str(message_attr)
    try:
        text = str(value)
    except Exception:
        return f"{action} failed with unhandleable error"
    return text or f"{action} failed with unknown error"


def is_permission_message(message: str) -> bool:
    """Return True when a normalized message describes a permission denial."""
    lowered = message.lower()
    return any(hint in lowered for hint in _PERMISSION_HINTS)


def is_network_failure(exc: BaseException) -> bool:
    """Return True for transport-level failures that mean "backend unreachable"."""
    if isinstance(exc, (httpx.TransportError, openai.APIConnectionError, ConnectionError)):
        return True
    lowered = str(exc).lower()
    return any(hint in lowered for hint in _NETWORK_HINTS)


def classify_error(
    exc: BaseException,
    *,
    provider_id: Optional[str] = None,
    network_hint: Optional[str] = None,
    action: str = "Generation",
) -> ProviderMappedError:
    """Map an arbitrary exception onto the closed error taxonomy."""
    if isinstance(exc, ProviderMappedError):
        return exc
    message = normalize_error_message(exc, action)
    if is_permission_message(message):
        return ProviderPermissionError(
            f"{PERMISSION_REMEDIATION} ({message})", provider_id=provider_id
        )
    if is_network_failure(exc):
        return ProviderNetworkError(message, provider_id=provider_id, hint=network_hint)
    return InvocationError(message, kind=ErrorKind.UNKNOWN, provider_id=provider_id)


async def run_with_exception_mapper(
    request_fn: Callable[[], Awaitable[Any]],
    mapper: Callable[[Exception], Exception],
) -> Any:
    """Execute request and transform provider exceptions via mapper."""
    try:
        return await request_fn()
    except Exception as exc:
        mapped_exc = mapper(exc)
        if mapped_exc is exc:
            raise
        raise mapped_exc from exc
