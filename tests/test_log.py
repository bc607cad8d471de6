"""Tests for logging helpers."""

from __future__ import annotations

import json
import logging

from polyprovider.utils.log import StructuredFormatter, get_logger, redact


def _record(**extra) -> logging.LogRecord:
    record = logging.LogRecord("polyprovider", logging.INFO, __file__, 1, "[hub] started", None, None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


def test_structured_formatter_appends_sorted_extras() -> None:
    formatter = StructuredFormatter("%(levelname)s %(message)s")
    line = formatter.format(_record(provider="ollama", count=2))
    message, _, payload = line.partition(" | ")
    assert message == "INFO [hub] started"
    assert json.loads(payload) == {"count": 2, "provider": "ollama"}


def test_structured_formatter_without_extras() -> None:
    formatter = StructuredFormatter("%(message)s")
    assert formatter.format(_record()) == "[hub] started"


def test_structured_formatter_masks_credentials() -> None:
    formatter = StructuredFormatter("%(message)s")
    line = formatter.format(_record(config={"apiKey": "sk-live", "baseUrl": "https://x/"}))
    assert "sk-live" not in line
    assert json.loads(line.partition(" | ")[2]) == {
        "config": {"apiKey": "***", "baseUrl": "https://x/"}
    }


def test_redact_leaves_empty_secrets_and_scalars() -> None:
    assert redact({"apiKey": "", "app": {"token": "t"}}) == {"apiKey": "", "app": {"token": "***"}}
    assert redact("plain") == "plain"


def test_bind_merges_context_into_extras(tmp_path) -> None:
    logger = get_logger()
    log_file = logger.attach_file_handler(tmp_path / "logs" / "polyprovider.log")
    bound = logger.bind(provider="demo")

    bound.debug("[test] structured line", extra={"model": "m1"})
    for handler in logger.logger.handlers:
        handler.flush()

    line = log_file.read_text(encoding="utf-8").strip().splitlines()[-1]
    assert "[DEBUG] [test] structured line" in line
    assert json.loads(line.partition(" | ")[2]) == {"model": "m1", "provider": "demo"}
    assert logger.extra == {}


def test_attach_file_handler_replaces_previous_sink(tmp_path) -> None:
    logger = get_logger()
    first = logger.attach_file_handler(tmp_path / "a.log")
    second = logger.attach_file_handler(tmp_path / "b.log")
    logger.warning("[test] only in second")
    for handler in logger.logger.handlers:
        handler.flush()

    assert "only in second" not in first.read_text(encoding="utf-8")
    assert "only in second" in second.read_text(encoding="utf-8")
    file_handlers = [h for h in logger.logger.handlers if isinstance(h, logging.FileHandler)]
    assert len(file_handlers) == 1
