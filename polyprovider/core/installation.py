"""Model installation state and progress tracking for on-device backends."""

from __future__ import annotations

import asyncio
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Set, Tuple

from polyprovider.core.catalog import ProviderCatalog
from polyprovider.core.channel import CommandChannel, ProgressEvent, is_attached
from polyprovider.core.config import HubSettings, ProviderConfigStore
from polyprovider.core.providers.base import ModelInfo, ProgressInfo
from polyprovider.core.providers.error_mapping import classify_error
from polyprovider.core.providers.errors import (
    CapabilityUnsupportedError,
    InstallFailure,
)
from polyprovider.utils.log import get_logger

logger = get_logger()

# The synthetic ramp may approach but never reach this fraction.
SYNTHETIC_CEILING = 0.9
SYNTHETIC_CAP = 0.89

InstallKey = Tuple[str, str]
ProgressListener = Callable[[str, str, Optional[ProgressInfo]], None]


class ProgressSource(str, Enum):
    AUTHORITATIVE = "authoritative"
    SYNTHETIC = "synthetic"


class InstallState(str, Enum):
    NOT_INSTALLED = "not_installed"
    INSTALLING = "installing"
    INSTALLED = "installed"


def merge_progress(
    current: Optional[ProgressInfo], incoming: ProgressInfo, source: ProgressSource
) -> ProgressInfo:
    """Combine a progress update with the current value.

    * nothing changes once ``done`` has been recorded;
    * synthetic updates are capped below :data:`SYNTHETIC_CEILING`, never
      apply once progress has reached it, and can never complete an install;
    * authoritative updates never move progress backwards, and ``done``
      pins progress to 1.0.
    """
    base = current if current is not None else ProgressInfo()
    if base.done:
        return base

    if source is ProgressSource.SYNTHETIC:
        if base.progress >= SYNTHETIC_CEILING:
            return base
        value = min(incoming.progress, SYNTHETIC_CAP)
        if value <= base.progress:
            return base
        return base.model_copy(update={"progress": value})

    if incoming.done:
        total = incoming.total or base.total
        return ProgressInfo(loaded=max(incoming.loaded, total), total=total, progress=1.0, done=True)
    progress = max(base.progress, min(max(incoming.progress, 0.0), 1.0))
    return ProgressInfo(
        loaded=max(incoming.loaded, 0),
        total=incoming.total or base.total,
        progress=progress,
        done=False,
    )


class ModelInstallTracker:
    """Drives ``load_model`` per ``(provider_id, model_id)`` and tracks progress.

    Two progress sources feed :func:`merge_progress`: events from the
    command channel (filtered to the target model) and a synthetic ramp for
    backends that report coarsely. The first authoritative ``done`` or the
    loader resolving marks the model installed; its progress entry is then
    dropped after the configured grace period.
    """

    def __init__(
        self,
        catalog: ProviderCatalog,
        store: ProviderConfigStore,
        channel: CommandChannel,
        settings: Optional[HubSettings] = None,
    ) -> None:
        self._catalog = catalog
        self._store = store
        self._channel = channel
        self._settings = settings or HubSettings()
        self._loading: Set[InstallKey] = set()
        self._states: Dict[InstallKey, InstallState] = {}
        self._progress: Dict[InstallKey, ProgressInfo] = {}
        self._cleanup: Dict[InstallKey, asyncio.TimerHandle] = {}
        self._models: Dict[str, List[ModelInfo]] = {}
        self._listeners: List[ProgressListener] = []

    def subscribe(self, listener: ProgressListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def state(self, provider_id: str, model_id: str) -> InstallState:
        return self._states.get((provider_id, model_id), InstallState.NOT_INSTALLED)

    def progress(self, provider_id: str, model_id: str) -> Optional[ProgressInfo]:
        return self._progress.get((provider_id, model_id))

    def is_loading(self, provider_id: str, model_id: str) -> bool:
        return (provider_id, model_id) in self._loading

    def models(self, provider_id: str) -> List[ModelInfo]:
        return list(self._models.get(provider_id, []))

    async def refresh_models(self, provider_id: str) -> List[ModelInfo]:
        """List the provider's models and reconcile their ``installed`` flags."""
        descriptor = self._catalog.get(provider_id)
        if descriptor.list_models is None:
            return []
        models = await descriptor.list_models(self._store.snapshot(provider_id))
        for model in models:
            key = (provider_id, model.id)
            if self._states.get(key) == InstallState.INSTALLED:
                model.installed = True
            elif model.installed and key not in self._loading:
                self._states[key] = InstallState.INSTALLED
        self._models[provider_id] = models
        return list(models)

    async def install_model(self, provider_id: str, model_id: str) -> bool:
        """Install ``model_id``.

        Returns False without doing anything when the same model is already
        installing. Raises :class:`InstallFailure` when the loader rejects.
        """
        descriptor = self._catalog.get(provider_id)
        if descriptor.load_model is None:
            raise CapabilityUnsupportedError(
                f"Provider '{provider_id}' does not support loading models",
                provider_id=provider_id,
            )
        key = (provider_id, model_id)
        log = logger.bind(provider=provider_id, model=model_id)
        if key in self._loading:
            log.debug("[installation] Install already in flight")
            return False

        self._loading.add(key)
        self._states[key] = InstallState.INSTALLING
        self._cancel_cleanup(key)
        self._set_progress(key, ProgressInfo())
        log.info("[installation] Installing model")

        unsubscribe: Optional[Callable[[], None]] = None
        ramp: Optional[asyncio.Task] = None
        try:
            if descriptor.progress_event and is_attached(self._channel):
                unsubscribe = await self._channel.listen(
                    descriptor.progress_event,
                    lambda payload: self._on_channel_event(key, payload),
                )
            ramp = asyncio.ensure_future(self._ramp(key))

            config = self._store.snapshot(provider_id)
            config["modelId"] = model_id
            load = descriptor.load_model(
                config, lambda info: self._apply(key, info, ProgressSource.AUTHORITATIVE)
            )
            timeout = self._settings.install_timeout
            if timeout:
                await asyncio.wait_for(load, timeout=timeout)
            else:
                await load
        except Exception as exc:
            if self._states.get(key) == InstallState.INSTALLED:
                log.warning("[installation] Loader failed after completion was reported: %s", exc)
                return True
            self._states[key] = InstallState.NOT_INSTALLED
            self._drop_progress(key)
            if isinstance(exc, asyncio.TimeoutError):
                message = f"Model installation timed out after {self._settings.install_timeout}s"
            else:
                message = str(
                    classify_error(
                        exc,
                        provider_id=provider_id,
                        network_hint=descriptor.network_hint,
                        action="Model installation",
                    )
                )
            log.warning("[installation] Model installation failed: %s", message)
            raise InstallFailure(message, provider_id=provider_id, model_id=model_id) from exc
        else:
            self._complete(key)
            return True
        finally:
            if ramp is not None:
                ramp.cancel()
            if unsubscribe is not None:
                unsubscribe()
            self._loading.discard(key)

    def _on_channel_event(self, key: InstallKey, payload: Any) -> None:
        try:
            event = ProgressEvent.from_payload(payload)
        except ValueError as exc:
            logger.debug("[installation] Ignoring malformed progress event", extra={"error": str(exc)})
            return
        if not event.matches(key[1]):
            return
        if event.filename is None and self._installs_in_flight(key[0]) > 1:
            logger.debug(
                "[installation] Ignoring unattributable progress event",
                extra={"provider": key[0], "model": key[1]},
            )
            return
        self._apply(
            key,
            ProgressInfo(
                loaded=event.current,
                total=event.total,
                progress=event.progress / 100,
                done=event.done,
            ),
            ProgressSource.AUTHORITATIVE,
        )

    def _installs_in_flight(self, provider_id: str) -> int:
        return sum(1 for loading_provider, _ in self._loading if loading_provider == provider_id)

    def _apply(self, key: InstallKey, info: ProgressInfo, source: ProgressSource) -> None:
        if self._states.get(key) != InstallState.INSTALLING:
            return
        current = self._progress.get(key)
        merged = merge_progress(current, info, source)
        if merged != current:
            self._set_progress(key, merged)
        if merged.done:
            self._complete(key)

    async def _ramp(self, key: InstallKey) -> None:
        step = self._settings.synthetic_step
        while True:
            await asyncio.sleep(self._settings.progress_tick)
            if self._states.get(key) != InstallState.INSTALLING:
                return
            current = self._progress.get(key) or ProgressInfo()
            if current.done:
                return
            self._apply(
                key,
                current.model_copy(update={"progress": current.progress + step}),
                ProgressSource.SYNTHETIC,
            )

    def _complete(self, key: InstallKey) -> None:
        if self._states.get(key) == InstallState.INSTALLED:
            return
        self._states[key] = InstallState.INSTALLED
        current = self._progress.get(key)
        final = merge_progress(current, ProgressInfo(done=True), ProgressSource.AUTHORITATIVE)
        if final != current:
            self._set_progress(key, final)
        provider_id, model_id = key
        for model in self._models.get(provider_id, []):
            if model.id == model_id:
                model.installed = True
        logger.info(
            "[installation] Model installed",
            extra={"provider": provider_id, "model": model_id},
        )
        self._schedule_cleanup(key)

    def _schedule_cleanup(self, key: InstallKey) -> None:
        self._cancel_cleanup(key)
        loop = asyncio.get_running_loop()
        self._cleanup[key] = loop.call_later(
            self._settings.progress_grace_period, self._drop_progress, key
        )

    def _cancel_cleanup(self, key: InstallKey) -> None:
        handle = self._cleanup.pop(key, None)
        if handle is not None:
            handle.cancel()

    def _set_progress(self, key: InstallKey, info: ProgressInfo) -> None:
        self._progress[key] = info
        self._notify(key, info)

    def _drop_progress(self, key: InstallKey) -> None:
        self._cleanup.pop(key, None)
        if self._progress.pop(key, None) is not None:
            self._notify(key, None)

    def _notify(self, key: InstallKey, info: Optional[ProgressInfo]) -> None:
        provider_id, model_id = key
        for listener in list(self._listeners):
            listener(provider_id, model_id, info)

    def close(self) -> None:
        for handle in self._cleanup.values():
            handle.cancel()
        self._cleanup.clear()
