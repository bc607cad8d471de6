"""Start/stop toggle for long-lived monitoring such as live transcription."""

from __future__ import annotations

from contextlib import ExitStack
from typing import Any, Callable, ContextManager, List, Optional

from polyprovider.utils.log import get_logger

logger = get_logger()

Acquirer = Callable[[], ContextManager[Any]]


class CaptureSession:
    """Holds resources (streams, recognizers...) while monitoring is on.

    ``start`` enters every acquirer in order; if one fails, those already
    acquired are released before the error propagates. ``stop`` releases
    everything synchronously in reverse order.
    """

    def __init__(self, *acquirers: Acquirer) -> None:
        self._acquirers = acquirers
        self._stack: Optional[ExitStack] = None
        self._resources: List[Any] = []

    @property
    def active(self) -> bool:
        return self._stack is not None

    @property
    def resources(self) -> List[Any]:
        return list(self._resources)

    def start(self) -> List[Any]:
        if self._stack is not None:
            return self.resources
        with ExitStack() as stack:
            resources = [stack.enter_context(acquire()) for acquire in self._acquirers]
            self._stack = stack.pop_all()
        self._resources = resources
        logger.debug("[capture] Monitoring started", extra={"resources": len(resources)})
        return self.resources

    def stop(self) -> None:
        if self._stack is None:
            return
        stack, self._stack = self._stack, None
        self._resources = []
        stack.close()
        logger.debug("[capture] Monitoring stopped")

    def toggle(self) -> bool:
        """Flip monitoring on or off; returns the new state."""
        if self.active:
            self.stop()
        else:
            self.start()
        return self.active

    def __enter__(self) -> "CaptureSession":
        self.start()
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.stop()
