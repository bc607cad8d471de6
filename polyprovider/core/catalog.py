"""Provider descriptor catalog."""

from __future__ import annotations

from typing import Dict, Iterable, Iterator, List, Optional

from polyprovider.core.channel import CommandChannel, UnavailableChannel, is_attached
from polyprovider.core.providers import builtin_descriptors
from polyprovider.core.providers.base import ProviderCategory, ProviderDescriptor
from polyprovider.utils.log import get_logger
from polyprovider.utils.platform import RuntimeInfo, detect_runtime

logger = get_logger()

LOCAL_PROVIDER_PREFIXES = ("app-local-", "browser-local-")


def is_local_provider(provider_id: str) -> bool:
    """On-device providers have no credentials; configured collapses to available."""
    return provider_id.startswith(LOCAL_PROVIDER_PREFIXES)


class ProviderCatalog:
    """Registry of provider descriptors keyed by id.

    Built once at startup and handed to every component that needs it.
    Iteration follows registration order, which is for display only.
    """

    def __init__(self, descriptors: Iterable[ProviderDescriptor] = ()) -> None:
        self._descriptors: Dict[str, ProviderDescriptor] = {}
        for descriptor in descriptors:
            self.register(descriptor)

    def register(self, descriptor: ProviderDescriptor) -> None:
        if descriptor.id in self._descriptors:
            raise ValueError(f"Duplicate provider id '{descriptor.id}'")
        self._descriptors[descriptor.id] = descriptor

    def get(self, provider_id: str) -> ProviderDescriptor:
        try:
            return self._descriptors[provider_id]
        except KeyError:
            raise KeyError(f"Unknown provider '{provider_id}'") from None

    def find(self, provider_id: str) -> Optional[ProviderDescriptor]:
        return self._descriptors.get(provider_id)

    def __contains__(self, provider_id: object) -> bool:
        return provider_id in self._descriptors

    def __iter__(self) -> Iterator[ProviderDescriptor]:
        return iter(self._descriptors.values())

    def __len__(self) -> int:
        return len(self._descriptors)

    def ids(self) -> List[str]:
        return list(self._descriptors)

    def by_category(self, category: ProviderCategory) -> List[ProviderDescriptor]:
        return [d for d in self._descriptors.values() if d.category == category]

    def items(self):
        return self._descriptors.items()


def build_default_catalog(
    runtime: Optional[RuntimeInfo] = None,
    channel: Optional[CommandChannel] = None,
) -> ProviderCatalog:
    """Catalog of every built-in provider bound to ``runtime`` and ``channel``."""
    channel = channel if channel is not None else UnavailableChannel()
    if runtime is None:
        runtime = detect_runtime(has_command_channel=is_attached(channel))
    catalog = ProviderCatalog(builtin_descriptors(runtime, channel))
    logger.debug(
        "[catalog] Built provider catalog",
        extra={"provider_count": len(catalog), "gpu": runtime.has_gpu},
    )
    return catalog
