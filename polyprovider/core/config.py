"""Configuration management for Polyprovider.

Two kinds of configuration live here: runtime settings for the hub
(debounce window, progress cadence, install timeout) read from the
environment, and per-provider credentials persisted to a JSON file and
exposed through :class:`ProviderConfigStore`.
"""

from __future__ import annotations

import copy
import json
import os
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Protocol

from pydantic import BaseModel, Field, field_validator

from polyprovider.core.catalog import ProviderCatalog
from polyprovider.core.providers.base import ProviderConfig
from polyprovider.utils.coerce import parse_optional_float
from polyprovider.utils.log import get_logger


logger = get_logger()

ConfigListener = Callable[[str, ProviderConfig], None]


def default_credentials_path() -> Path:
    return Path.home() / ".polyprovider" / "providers.json"


class HubSettings(BaseModel):
    """Timing policy for validation and model installation."""

    validation_debounce: float = Field(default=0.1, ge=0)
    progress_tick: float = Field(default=0.5, gt=0)
    synthetic_step: float = Field(default=0.05, gt=0)
    progress_grace_period: float = Field(default=1.0, ge=0)
    # None waits for the backend indefinitely.
    install_timeout: Optional[float] = None
    credentials_path: Path = Field(default_factory=default_credentials_path)

    @field_validator("install_timeout")
    @classmethod
    def _positive_timeout(cls, value: Optional[float]) -> Optional[float]:
        if value is not None and value <= 0:
            return None
        return value

    @classmethod
    def from_env(cls) -> "HubSettings":
        """Build settings, honouring ``POLYPROVIDER_*`` overrides."""
        overrides: Dict[str, Any] = {}
        for field_name, env_name in (
            ("validation_debounce", "POLYPROVIDER_VALIDATION_DEBOUNCE"),
            ("progress_tick", "POLYPROVIDER_PROGRESS_TICK"),
            ("progress_grace_period", "POLYPROVIDER_PROGRESS_GRACE"),
            ("install_timeout", "POLYPROVIDER_INSTALL_TIMEOUT"),
        ):
            value = parse_optional_float(os.getenv(env_name))
            if value is not None:
                overrides[field_name] = value
        path = os.getenv("POLYPROVIDER_CREDENTIALS")
        if path:
            overrides["credentials_path"] = Path(path).expanduser()
        return cls(**overrides)


class CredentialsFile(BaseModel):
    """On-disk shape of the credentials store."""

    providers: Dict[str, Dict[str, Any]] = Field(default_factory=dict)


class ConfigBackend(Protocol):
    def load(self) -> Dict[str, Dict[str, Any]]: ...

    def save(self, providers: Dict[str, Dict[str, Any]]) -> None: ...


class MemoryBackend:
    """Non-persistent backend."""

    def __init__(self, initial: Optional[Dict[str, Dict[str, Any]]] = None) -> None:
        self.data: Dict[str, Dict[str, Any]] = copy.deepcopy(initial or {})
        self.save_count = 0

    def load(self) -> Dict[str, Dict[str, Any]]:
        return copy.deepcopy(self.data)

    def save(self, providers: Dict[str, Dict[str, Any]]) -> None:
        self.data = copy.deepcopy(providers)
        self.save_count += 1


class JsonFileBackend:
    """Persist provider credentials as pretty-printed JSON."""

    def __init__(self, path: Optional[Path] = None) -> None:
        self.path = path or default_credentials_path()

    def load(self) -> Dict[str, Dict[str, Any]]:
        if not self.path.exists():
            logger.debug(
                "[config] Credentials file not found; using defaults",
                extra={"path": str(self.path)},
            )
            return {}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
            credentials = CredentialsFile(**data)
        except (
            json.JSONDecodeError,
            OSError,
            UnicodeDecodeError,
            ValueError,
            TypeError,
        ) as e:
            logger.warning(
                "Error loading provider credentials: %s: %s",
                type(e).__name__,
                e,
                extra={"error": str(e), "path": str(self.path)},
            )
            return {}
        logger.debug(
            "[config] Loaded provider credentials",
            extra={"path": str(self.path), "provider_count": len(credentials.providers)},
        )
        return credentials.providers

    def save(self, providers: Dict[str, Dict[str, Any]]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(
            CredentialsFile(providers=providers).model_dump_json(indent=2), encoding="utf-8"
        )
        logger.debug(
            "[config] Saved provider credentials",
            extra={"path": str(self.path), "provider_count": len(providers)},
        )


class ProviderConfigStore:
    """Owns every provider's configuration.

    Configs are created lazily from the descriptor defaults. Each mutation
    is persisted and then broadcast to subscribers (the validation engine
    among them).
    """

    def __init__(self, catalog: ProviderCatalog, backend: Optional[ConfigBackend] = None) -> None:
        self._catalog = catalog
        self._backend: ConfigBackend = backend if backend is not None else MemoryBackend()
        self._configs: Dict[str, ProviderConfig] = {}
        self._listeners: List[ConfigListener] = []
        for provider_id, config in self._backend.load().items():
            if provider_id in catalog:
                self._configs[provider_id] = dict(config)
            else:
                logger.debug(
                    "[config] Ignoring credentials for unknown provider",
                    extra={"provider": provider_id},
                )

    def _require_known(self, provider_id: str) -> None:
        if provider_id not in self._catalog:
            raise KeyError(f"Unknown provider '{provider_id}'")

    def has(self, provider_id: str) -> bool:
        return provider_id in self._configs

    def _live(self, provider_id: str) -> ProviderConfig:
        self._require_known(provider_id)
        if provider_id not in self._configs:
            self._configs[provider_id] = self._catalog.get(provider_id).initial_config()
            self._commit(provider_id)
        return self._configs[provider_id]

    def get(self, provider_id: str) -> ProviderConfig:
        """Return a copy of the config, creating it from defaults on first access.

        Changing the returned dict never touches the store; use :meth:`set`.
        """
        return copy.deepcopy(self._live(provider_id))

    snapshot = get

    def initialize(self, provider_id: str) -> ProviderConfig:
        """Create the config from defaults unless one already exists."""
        return self.get(provider_id)

    def initialize_all(self) -> List[str]:
        """Initialize every catalogued provider, persisting once."""
        created = []
        for descriptor in self._catalog:
            if descriptor.id not in self._configs:
                self._configs[descriptor.id] = descriptor.initial_config()
                created.append(descriptor.id)
        if created:
            self._backend.save(self._configs)
            for provider_id in created:
                self._notify(provider_id)
        return created

    def set(self, provider_id: str, partial: ProviderConfig) -> ProviderConfig:
        """Shallow-merge ``partial`` into the provider's config."""
        self._live(provider_id).update(copy.deepcopy(partial))
        self._commit(provider_id)
        return self.get(provider_id)

    def replace(self, provider_id: str, config: ProviderConfig) -> ProviderConfig:
        self._require_known(provider_id)
        self._configs[provider_id] = copy.deepcopy(config)
        self._commit(provider_id)
        return self.get(provider_id)

    def reset(self, provider_id: str) -> ProviderConfig:
        """Restore descriptor defaults."""
        return self.replace(provider_id, self._catalog.get(provider_id).initial_config())

    def all(self) -> Dict[str, ProviderConfig]:
        return copy.deepcopy(self._configs)

    def subscribe(self, listener: ConfigListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def _commit(self, provider_id: str) -> None:
        self._backend.save(self._configs)
        self._notify(provider_id)

    def _notify(self, provider_id: str) -> None:
        for listener in list(self._listeners):
            listener(provider_id, copy.deepcopy(self._configs[provider_id]))
