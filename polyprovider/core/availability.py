"""Runtime availability of catalogued providers."""

from __future__ import annotations

from typing import Dict, List

from polyprovider.core.catalog import ProviderCatalog
from polyprovider.core.providers.base import ProviderCategory, ProviderDescriptor
from polyprovider.utils.log import get_logger

logger = get_logger()


class AvailabilityResolver:
    """Evaluates each descriptor's availability predicate.

    Predicates are independent; one that raises marks only its own
    provider unavailable.
    """

    def __init__(self, catalog: ProviderCatalog) -> None:
        self._catalog = catalog
        self._available: Dict[str, bool] = {}
        self._resolved = False

    async def _evaluate(self, descriptor: ProviderDescriptor) -> bool:
        if descriptor.is_available_by is None:
            return True
        try:
            return bool(await descriptor.is_available_by())
        except Exception as exc:
            logger.warning(
                "[availability] Availability check failed for %s: %s",
                descriptor.id,
                exc,
                extra={"provider": descriptor.id, "error": str(exc)},
            )
            return False

    async def refresh(self) -> List[ProviderDescriptor]:
        results: Dict[str, bool] = {}
        for descriptor in self._catalog:
            results[descriptor.id] = await self._evaluate(descriptor)
        self._available = results
        self._resolved = True
        return self.available()

    @property
    def resolved(self) -> bool:
        return self._resolved

    def is_available(self, provider_id: str) -> bool:
        return self._available.get(provider_id, False)

    def available(self) -> List[ProviderDescriptor]:
        return [d for d in self._catalog if self._available.get(d.id, False)]

    def by_category(self, category: ProviderCategory) -> List[ProviderDescriptor]:
        return [d for d in self.available() if d.category == category]
