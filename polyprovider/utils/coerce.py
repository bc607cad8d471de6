"""Lightweight parsing helpers for permissive type coercion."""

from __future__ import annotations

from typing import Any, Optional


def parse_optional_float(value: object) -> Optional[float]:
    """Best-effort float parsing; returns None on failure."""
    if value is None or isinstance(value, bool):
        return None
    try:
        return float(str(value).strip())
    except (TypeError, ValueError):
        return None


def parse_config_value(raw: str) -> Any:
    """Interpret a CLI ``key=value`` right-hand side.

    Booleans and numbers are recognised; everything else stays a string.
    """
    text = raw.strip()
    lowered = text.lower()
    if lowered in {"true", "false"}:
        return lowered == "true"
    if lowered in {"null", "none"}:
        return None
    try:
        return int(text)
    except ValueError:
        pass
    number = parse_optional_float(text)
    if number is not None:
        return number
    return raw


def assign_dotted(target: dict, dotted_key: str, value: Any) -> dict:
    """Set ``a.b.c`` style keys inside nested dictionaries, creating groups."""
    parts = [part for part in dotted_key.split(".") if part]
    if not parts:
        raise ValueError("Empty configuration key")
    cursor = target
    for part in parts[:-1]:
        existing = cursor.get(part)
        if not isinstance(existing, dict):
            existing = {}
            cursor[part] = existing
        cursor = existing
    cursor[parts[-1]] = value
    return target
