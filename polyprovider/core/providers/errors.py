"""Shared provider error types for cross-provider normalization."""

from __future__ import annotations

from enum import Enum
from typing import Optional


class ErrorKind(str, Enum):
    """Closed set of failure categories surfaced by the dispatch layer."""

    VALIDATION = "validation"
    PROVIDER_INIT = "provider_init"
    CAPABILITY_UNSUPPORTED = "capability_unsupported"
    CAPABILITY = "capability"
    NETWORK = "network"
    PERMISSION = "permission"
    INSTALL_FAILURE = "install_failure"
    UNKNOWN = "unknown"


class ProviderMappedError(Exception):
    """Normalized provider exception with a stable error kind."""

    kind: ErrorKind = ErrorKind.UNKNOWN

    def __init__(self, message: str, *, provider_id: Optional[str] = None) -> None:
        super().__init__(message)
        self.message = message
        self.provider_id = provider_id

    @property
    def error_code(self) -> str:
        return self.kind.value


class ProviderValidationError(ProviderMappedError):
    """Configuration is incomplete or malformed."""

    kind = ErrorKind.VALIDATION


class ProviderInitError(ProviderMappedError):
    """Provider factory could not build a live instance."""

    kind = ErrorKind.PROVIDER_INIT


class CapabilityUnsupportedError(ProviderMappedError):
    """Requested capability is not offered by the provider."""

    kind = ErrorKind.CAPABILITY_UNSUPPORTED


class CapabilityError(ProviderMappedError):
    """A capability call (model or voice listing) failed."""

    kind = ErrorKind.CAPABILITY


class ProviderNetworkError(ProviderMappedError):
    """Backend unreachable; carries a backend specific remediation hint."""

    kind = ErrorKind.NETWORK

    def __init__(
        self,
        message: str,
        *,
        provider_id: Optional[str] = None,
        hint: Optional[str] = None,
    ) -> None:
        full = f"{message} {hint}".strip() if hint else message
        super().__init__(full, provider_id=provider_id)
        self.hint = hint


class ProviderPermissionError(ProviderMappedError):
    """Host denied access to a device or resource."""

    kind = ErrorKind.PERMISSION


class InstallFailure(ProviderMappedError):
    """Model download or load rejected."""

    kind = ErrorKind.INSTALL_FAILURE

    def __init__(
        self,
        message: str,
        *,
        provider_id: Optional[str] = None,
        model_id: Optional[str] = None,
    ) -> None:
        super().__init__(message, provider_id=provider_id)
        self.model_id = model_id


class InvocationError(ProviderMappedError):
    """Generation call failed; ``kind`` reflects the classified cause."""

    def __init__(
        self,
        message: str,
        *,
        kind: ErrorKind = ErrorKind.UNKNOWN,
        provider_id: Optional[str] = None,
    ) -> None:
        super().__init__(message, provider_id=provider_id)
        self.kind = kind
