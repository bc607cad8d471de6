from __future__ import annotations

import pytest

from polyprovider.utils.coerce import assign_dotted, parse_config_value, parse_optional_float


def test_parse_optional_float() -> None:
    assert parse_optional_float(" 1.5 ") == 1.5
    assert parse_optional_float("fast") is None
    assert parse_optional_float(True) is None
    assert parse_optional_float(None) is None


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("true", True),
        ("False", False),
        ("none", None),
        ("42", 42),
        ("0.75", 0.75),
        ("https://api.example.com/v1/", "https://api.example.com/v1/"),
        ("sk-123", "sk-123"),
    ],
)
def test_parse_config_value(raw: str, expected) -> None:
    assert parse_config_value(raw) == expected


def test_assign_dotted_creates_groups() -> None:
    target = {"voiceSettings": "flat"}
    assign_dotted(target, "voiceSettings.speed", 1.2)
    assign_dotted(target, "app.appId", "abc")
    assert target == {"voiceSettings": {"speed": 1.2}, "app": {"appId": "abc"}}

    with pytest.raises(ValueError):
        assign_dotted({}, "..", 1)
