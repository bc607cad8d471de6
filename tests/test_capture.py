"""Tests for the monitoring capture session."""

from __future__ import annotations

from contextlib import contextmanager

import pytest

from polyprovider.core.capture import CaptureSession


def _tracked(name: str, events: list, fail: bool = False):
    @contextmanager
    def _acquire():
        if fail:
            raise OSError(f"{name} unavailable")
        events.append(f"open {name}")
        try:
            yield name
        finally:
            events.append(f"close {name}")

    return _acquire


def test_stop_releases_resources_in_reverse_order() -> None:
    events: list = []
    session = CaptureSession(_tracked("stream", events), _tracked("recognizer", events))

    assert session.start() == ["stream", "recognizer"]
    assert session.active
    session.stop()

    assert events == ["open stream", "open recognizer", "close recognizer", "close stream"]
    assert not session.active
    assert session.resources == []


def test_start_and_stop_are_idempotent() -> None:
    events: list = []
    session = CaptureSession(_tracked("stream", events))
    session.start()
    session.start()
    session.stop()
    session.stop()
    assert events == ["open stream", "close stream"]


def test_failed_acquisition_releases_earlier_resources() -> None:
    events: list = []
    session = CaptureSession(_tracked("stream", events), _tracked("mic", events, fail=True))

    with pytest.raises(OSError, match="mic unavailable"):
        session.start()

    assert events == ["open stream", "close stream"]
    assert not session.active


def test_toggle_and_context_manager() -> None:
    events: list = []
    session = CaptureSession(_tracked("stream", events))
    assert session.toggle() is True
    assert session.toggle() is False

    with CaptureSession(_tracked("graph", events)) as active:
        assert active.resources == ["graph"]
    assert events[-2:] == ["open graph", "close graph"]
