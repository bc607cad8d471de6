"""Command/event channel used to drive on-device model backends.

A desktop host exposes its native audio plugins as named commands plus
broadcast events. This module defines the protocol the rest of the package
depends on, a channel that reports "not attached", and an in-process
channel that hosts (and tests) can register handlers on.
"""

from __future__ import annotations

import inspect
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Protocol, Sequence

EventHandler = Callable[[Any], None]
Unsubscribe = Callable[[], None]
CommandHandler = Callable[[Dict[str, Any]], Any]


class ChannelUnavailableError(RuntimeError):
    """Raised when no desktop command channel is attached."""


class CommandChannel(Protocol):
    attached: bool

    async def invoke(self, command: str, args: Optional[Dict[str, Any]] = None) -> Any: ...

    async def listen(self, event: str, handler: EventHandler) -> Unsubscribe: ...


class UnavailableChannel:
    """Channel for hosts without native plugins; every call fails."""

    attached = False

    async def invoke(self, command: str, args: Optional[Dict[str, Any]] = None) -> Any:
        raise ChannelUnavailableError(f"Command channel unavailable for '{command}'")

    async def listen(self, event: str, handler: EventHandler) -> Unsubscribe:
        raise ChannelUnavailableError(f"Command channel unavailable for event '{event}'")


class LocalChannel:
    """In-process command registry and event bus."""

    attached = True

    def __init__(self) -> None:
        self._commands: Dict[str, CommandHandler] = {}
        self._listeners: Dict[str, List[EventHandler]] = {}

    def register(self, command: str, handler: CommandHandler) -> None:
        self._commands[command] = handler

    async def invoke(self, command: str, args: Optional[Dict[str, Any]] = None) -> Any:
        handler = self._commands.get(command)
        if handler is None:
            raise ChannelUnavailableError(f"Unknown command '{command}'")
        result = handler(dict(args or {}))
        if inspect.isawaitable(result):
            result = await result
        return result

    async def listen(self, event: str, handler: EventHandler) -> Unsubscribe:
        self._listeners.setdefault(event, []).append(handler)

        def _unsubscribe() -> None:
            handlers = self._listeners.get(event, [])
            if handler in handlers:
                handlers.remove(handler)

        return _unsubscribe

    def emit(self, event: str, payload: Any) -> None:
        for handler in list(self._listeners.get(event, [])):
            handler(payload)

    def listener_count(self, event: str) -> int:
        return len(self._listeners.get(event, []))


@dataclass(frozen=True)
class ProgressEvent:
    """Decoded load-progress event. ``progress`` is a percentage (0..100)."""

    done: bool
    filename: Optional[str]
    progress: float
    total: int
    current: int

    @classmethod
    def from_payload(cls, payload: Any) -> "ProgressEvent":
        """Decode ``[done, filename, progress, total, current]``.

        Whisper loaders omit the filename and send four fields.
        """
        if isinstance(payload, dict) and "payload" in payload:
            payload = payload["payload"]
        if not isinstance(payload, Sequence) or isinstance(payload, (str, bytes)):
            raise ValueError(f"Unrecognised progress payload: {payload!r}")
        fields = list(payload)
        if len(fields) == 5:
            done, filename, progress, total, current = fields
        elif len(fields) == 4:
            done, progress, total, current = fields
            filename = None
        else:
            raise ValueError(f"Unrecognised progress payload: {payload!r}")
        try:
            return cls(
                done=bool(done),
                filename=str(filename) if filename is not None else None,
                progress=float(progress or 0),
                total=int(total or 0),
                current=int(current or 0),
            )
        except (TypeError, ValueError) as exc:
            raise ValueError(f"Unrecognised progress payload: {payload!r}") from exc

    def matches(self, model_id: str) -> bool:
        """Events without a filename match any model.

        Callers must only attribute such events when a single install could
        have produced them.
        """
        if self.filename is None:
            return True
        return self.filename == model_id or model_id in self.filename


def is_attached(channel: Any) -> bool:
    return bool(getattr(channel, "attached", False))

