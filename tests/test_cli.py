"""Tests for the `polyprovider` command line."""

from __future__ import annotations

import json

from click.testing import CliRunner

from polyprovider.cli import cli as cli_module
from polyprovider.core.providers import transport


def _run_cli(tmp_path, args: list[str]):
    runner = CliRunner()
    return runner.invoke(cli_module.cli, args, env={"HOME": str(tmp_path)})


def test_help_lists_commands(tmp_path) -> None:
    result = _run_cli(tmp_path, ["--help"])
    assert result.exit_code == 0
    for command in ("list", "show", "config", "validate", "models", "voices", "install", "speak"):
        assert command in result.output


def test_list_json_by_category(tmp_path) -> None:
    result = _run_cli(tmp_path, ["list", "--category", "speech", "--json"])
    assert result.exit_code == 0, result.output
    rows = json.loads(result.output)
    ids = [row["id"] for row in rows]
    assert "openai-audio-speech" in ids
    assert "ollama" not in ids
    local = next(row for row in rows if row["id"] == "app-local-audio-speech")
    assert local == {
        "id": "app-local-audio-speech",
        "category": "speech",
        "name": "Local TTS",
        "available": False,
        "configured": False,
        "local": True,
    }


def test_config_set_get_reset_roundtrip(tmp_path) -> None:
    set_result = _run_cli(
        tmp_path,
        ["config", "set", "openai-audio-speech", "apiKey=sk-test", "voiceSettings.speed=1.5"],
    )
    assert set_result.exit_code == 0, set_result.output
    assert "Updated openai-audio-speech (valid)" in set_result.output

    stored = json.loads((tmp_path / ".polyprovider" / "providers.json").read_text(encoding="utf-8"))
    assert stored["providers"]["openai-audio-speech"]["apiKey"] == "sk-test"
    assert stored["providers"]["openai-audio-speech"]["voiceSettings"] == {"speed": 1.5}

    masked = _run_cli(tmp_path, ["config", "get", "openai-audio-speech"])
    assert json.loads(masked.output)["apiKey"] == "***"

    secret = _run_cli(tmp_path, ["config", "get", "openai-audio-speech", "apiKey", "--show-secrets"])
    assert secret.output.strip() == "sk-test"

    speed = _run_cli(tmp_path, ["config", "get", "openai-audio-speech", "voiceSettings.speed"])
    assert speed.output.strip() == "1.5"

    reset = _run_cli(tmp_path, ["config", "reset", "openai-audio-speech"])
    assert reset.exit_code == 0
    missing = _run_cli(tmp_path, ["config", "get", "openai-audio-speech", "apiKey"])
    assert missing.exit_code != 0
    assert "is not set" in missing.output


def test_config_set_rejects_malformed_assignment(tmp_path) -> None:
    result = _run_cli(tmp_path, ["config", "set", "openai", "no-equals-sign"])
    assert result.exit_code != 0
    assert "Expected KEY=VALUE" in result.output


def test_validate_reports_reason(tmp_path) -> None:
    result = _run_cli(tmp_path, ["validate", "xai"])
    assert result.exit_code != 0
    assert "API key is required" in result.output

    _run_cli(tmp_path, ["config", "set", "xai", "apiKey=xai-key"])
    assert _run_cli(tmp_path, ["validate", "xai"]).exit_code == 0


def test_unknown_provider_is_a_clean_error(tmp_path) -> None:
    result = _run_cli(tmp_path, ["show", "does-not-exist"])
    assert result.exit_code != 0
    assert "Unknown provider 'does-not-exist'" in result.output


def test_show_masks_secrets(tmp_path) -> None:
    _run_cli(tmp_path, ["config", "set", "elevenlabs", "apiKey=el-secret"])
    result = _run_cli(tmp_path, ["show", "elevenlabs", "--json"])
    assert result.exit_code == 0, result.output
    info = json.loads(result.output)
    assert info["config"]["apiKey"] == "***"
    assert info["capabilities"]["list_voices"] is True


def test_models_lists_static_catalog(tmp_path) -> None:
    result = _run_cli(tmp_path, ["models", "perplexity-ai", "--search", "medium", "--json"])
    assert result.exit_code == 0, result.output
    assert [m["id"] for m in json.loads(result.output)] == ["sonar-medium-online"]


def test_install_requires_loader(tmp_path) -> None:
    result = _run_cli(tmp_path, ["install", "openai", "gpt-4o"])
    assert result.exit_code != 0
    assert "does not support installing models" in result.output


def test_speak_writes_audio(tmp_path, monkeypatch) -> None:
    calls = []

    async def _fake_speech(instance, model, text, voice, config):
        calls.append((instance.provider_id, model, text, voice))
        return b"ID3audio"

    monkeypatch.setattr(transport, "generate_speech", _fake_speech)
    output = tmp_path / "hello.mp3"

    result = _run_cli(
        tmp_path,
        ["speak", "openai-audio-speech", "Hello", "--model", "tts-1", "--voice", "alloy", "-o", str(output)],
    )

    assert result.exit_code == 0, result.output
    assert output.read_bytes() == b"ID3audio"
    assert calls == [("openai-audio-speech", "tts-1", "Hello", "alloy")]


def test_speak_surfaces_error_code(tmp_path, monkeypatch) -> None:
    async def _fake_speech(instance, model, text, voice, config):
        raise RuntimeError("quota exceeded")

    monkeypatch.setattr(transport, "generate_speech", _fake_speech)
    result = _run_cli(
        tmp_path,
        ["speak", "openai-audio-speech", "Hello", "--model", "tts-1", "--voice", "alloy", "-o", str(tmp_path / "x.mp3")],
    )
    assert result.exit_code != 0
    assert "[unknown] quota exceeded" in result.output
