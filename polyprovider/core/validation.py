"""Debounced configuration validation."""

from __future__ import annotations

import asyncio
from typing import Callable, Dict, List, Optional

from polyprovider.core.catalog import ProviderCatalog
from polyprovider.core.config import ProviderConfigStore
from polyprovider.core.providers.base import ProviderConfig, ValidationResult
from polyprovider.core.providers.error_mapping import normalize_error_message
from polyprovider.utils.log import get_logger

logger = get_logger()

StatusListener = Callable[[Dict[str, bool]], None]


class ValidationEngine:
    """Keeps the configured-status map in step with the config store.

    Store mutations arm a trailing-edge timer; every further mutation inside
    the window cancels and re-arms it. When the timer fires a single pass
    validates every provider one after another. A timer firing while a pass
    is still running marks the engine dirty so exactly one follow-up pass
    runs afterwards; passes never overlap.
    """

    def __init__(
        self,
        catalog: ProviderCatalog,
        store: ProviderConfigStore,
        *,
        debounce: float = 0.1,
    ) -> None:
        self._catalog = catalog
        self._store = store
        self._debounce = debounce
        self._status: Dict[str, bool] = {}
        self._results: Dict[str, ValidationResult] = {}
        self._listeners: List[StatusListener] = []
        self._timer: Optional[asyncio.TimerHandle] = None
        self._task: Optional[asyncio.Task] = None
        self._dirty = False
        self._pass_lock = asyncio.Lock()
        self.pass_count = 0
        self._unsubscribe = store.subscribe(self._on_config_change)

    @property
    def configured(self) -> Dict[str, bool]:
        return dict(self._status)

    def is_configured(self, provider_id: str) -> bool:
        return self._status.get(provider_id, False)

    def result_for(self, provider_id: str) -> Optional[ValidationResult]:
        return self._results.get(provider_id)

    def subscribe(self, listener: StatusListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def _on_config_change(self, provider_id: str, config: ProviderConfig) -> None:
        self.schedule()

    def schedule(self) -> None:
        """Arm (or re-arm) the debounce timer."""
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # No loop yet; the next explicit pass picks the change up.
            self._dirty = True
            return
        if self._timer is not None:
            self._timer.cancel()
        self._timer = loop.call_later(self._debounce, self._fire)

    def _fire(self) -> None:
        self._timer = None
        if self._task is not None and not self._task.done():
            self._dirty = True
            return
        self._task = asyncio.ensure_future(self._run())
        self._task.add_done_callback(self._log_failure)

    async def _run(self) -> None:
        while True:
            self._dirty = False
            await self.update_configuration_status()
            if not self._dirty:
                return

    @staticmethod
    def _log_failure(task: asyncio.Task) -> None:
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error(
                "[validation] Validation pass crashed: %s: %s",
                type(exc).__name__,
                exc,
                extra={"error": str(exc)},
            )

    async def validate_provider(self, provider_id: str) -> ValidationResult:
        """Validate one provider; validator exceptions become invalid results."""
        descriptor = self._catalog.get(provider_id)
        if not self._store.has(provider_id):
            result = ValidationResult.failed("Provider has not been configured")
        else:
            try:
                result = await descriptor.validate(self._store.get(provider_id))
            except Exception as exc:
                logger.debug(
                    "[validation] Validator raised",
                    extra={"provider": provider_id, "error": str(exc)},
                )
                result = ValidationResult.failed(normalize_error_message(exc, "Validation"))
        self._results[provider_id] = result
        return result

    async def update_configuration_status(self) -> Dict[str, bool]:
        """Validate every provider sequentially and publish changed entries.

        Direct callers and the debounce timer share one lock, so a pass never
        starts while another is still running.
        """
        async with self._pass_lock:
            return await self._validate_all()

    async def _validate_all(self) -> Dict[str, bool]:
        new_status: Dict[str, bool] = {}
        for descriptor in self._catalog:
            result = await self.validate_provider(descriptor.id)
            new_status[descriptor.id] = result.valid
        changed = {
            provider_id: valid
            for provider_id, valid in new_status.items()
            if self._status.get(provider_id) != valid
        }
        self.pass_count += 1
        if changed:
            self._status.update(changed)
            logger.debug(
                "[validation] Configuration status changed",
                extra={"changed": changed},
            )
            for listener in list(self._listeners):
                listener(dict(changed))
        return dict(self._status)

    async def wait_idle(self) -> None:
        """Wait until no timer is armed and no pass is running."""
        while True:
            if self._task is not None and not self._task.done():
                await asyncio.wait({self._task})
            elif self._timer is not None:
                await asyncio.sleep(self._debounce)
            else:
                return

    def close(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._unsubscribe()
