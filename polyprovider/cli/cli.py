"""Command-line interface for Polyprovider."""

from __future__ import annotations

import asyncio
import json
import sys
from pathlib import Path
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple, TypeVar

import click
from rich.console import Console
from rich.markup import escape
from rich.progress import BarColumn, Progress, TaskProgressColumn, TextColumn
from rich.table import Table

from polyprovider import __version__
from polyprovider.core.catalog import is_local_provider
from polyprovider.core.config import HubSettings, JsonFileBackend
from polyprovider.core.hub import ProviderHub
from polyprovider.core.providers.base import ProviderCategory, ProviderDescriptor
from polyprovider.core.providers.errors import ProviderMappedError
from polyprovider.core.speech import filter_models
from polyprovider.utils.coerce import assign_dotted, parse_config_value
from polyprovider.utils.log import get_logger, redact

logger = get_logger()
console = Console()

T = TypeVar("T")

_CATEGORIES = [category.value for category in ProviderCategory]


def _hub(ctx: click.Context) -> ProviderHub:
    settings: HubSettings = ctx.obj["settings"]
    return ProviderHub(backend=JsonFileBackend(settings.credentials_path), settings=settings)


def _run(ctx: click.Context, work: Callable[[ProviderHub], Awaitable[T]]) -> T:
    """Run ``work`` against a fresh hub, turning dispatch errors into CLI errors."""

    async def _main() -> T:
        hub = _hub(ctx)
        try:
            return await work(hub)
        finally:
            await hub.aclose()

    try:
        return asyncio.run(_main())
    except ProviderMappedError as exc:
        raise click.ClickException(f"[{exc.error_code}] {exc.message}") from exc
    except KeyError as exc:
        raise click.ClickException(str(exc.args[0]) if exc.args else str(exc)) from exc


def _require_provider(hub: ProviderHub, provider_id: str) -> ProviderDescriptor:
    descriptor = hub.catalog.find(provider_id)
    if descriptor is None:
        raise click.ClickException(f"Unknown provider '{provider_id}'.")
    return descriptor


def _descriptor_row(hub: ProviderHub, descriptor: ProviderDescriptor) -> Dict[str, Any]:
    return {
        "id": descriptor.id,
        "category": descriptor.category.value,
        "name": descriptor.name,
        "available": hub.availability.is_available(descriptor.id),
        "configured": hub.is_configured(descriptor.id),
        "local": is_local_provider(descriptor.id),
    }


@click.group()
@click.version_option(version=__version__)
@click.option(
    "--credentials",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Provider credentials file (default: ~/.polyprovider/providers.json)",
)
@click.option("--log-file", type=click.Path(dir_okay=False, path_type=Path), help="Write structured logs here")
@click.pass_context
def cli(ctx: click.Context, credentials: Optional[Path], log_file: Optional[Path]) -> None:
    """Polyprovider - one contract for many AI backends"""
    settings = HubSettings.from_env()
    if credentials is not None:
        settings = settings.model_copy(update={"credentials_path": credentials})
    if log_file is not None:
        logger.attach_file_handler(log_file)
    ctx.ensure_object(dict)
    ctx.obj["settings"] = settings
    logger.debug(
        "[cli] Starting CLI invocation",
        extra={"credentials": str(settings.credentials_path), "command": ctx.invoked_subcommand},
    )


@cli.command(name="list")
@click.option("--category", type=click.Choice(_CATEGORIES), default=None, help="Only this category")
@click.option("--json", "as_json", is_flag=True, help="Output JSON")
@click.pass_context
def list_cmd(ctx: click.Context, category: Optional[str], as_json: bool) -> None:
    """List providers with their availability and configured state"""

    async def _work(hub: ProviderHub) -> List[Dict[str, Any]]:
        await hub.start()
        descriptors = (
            hub.catalog.by_category(ProviderCategory(category)) if category else list(hub.catalog)
        )
        return [_descriptor_row(hub, d) for d in descriptors]

    rows = _run(ctx, _work)
    if as_json:
        click.echo(json.dumps(rows, indent=2))
        return

    table = Table(show_header=True, header_style="bold")
    table.add_column("ID")
    table.add_column("Category")
    table.add_column("Name")
    table.add_column("Available")
    table.add_column("Configured")
    for row in rows:
        table.add_row(
            row["id"],
            row["category"],
            escape(row["name"]),
            "yes" if row["available"] else "no",
            "yes" if row["configured"] else "no",
        )
    console.print(table)


@cli.command(name="show")
@click.argument("provider_id")
@click.option("--json", "as_json", is_flag=True, help="Output JSON")
@click.pass_context
def show_cmd(ctx: click.Context, provider_id: str, as_json: bool) -> None:
    """Show a provider's metadata, capabilities and configuration"""

    async def _work(hub: ProviderHub) -> Dict[str, Any]:
        descriptor = _require_provider(hub, provider_id)
        caps = descriptor.capabilities
        return {
            "id": descriptor.id,
            "category": descriptor.category.value,
            "name": descriptor.name,
            "description": descriptor.description,
            "tasks": sorted(descriptor.tasks),
            "capabilities": {
                "list_models": caps.can_list_models,
                "list_voices": caps.can_list_voices,
                "load_model": caps.can_load_model,
            },
            "config": redact(hub.get_provider_config(provider_id)),
        }

    info = _run(ctx, _work)
    if as_json:
        click.echo(json.dumps(info, indent=2))
        return
    console.print(f"\n[bold]{escape(info['name'])}[/bold] ({info['id']})")
    console.print(f"Category: {info['category']}")
    if info["description"]:
        console.print(f"Description: {escape(info['description'])}")
    console.print(f"Tasks: {', '.join(info['tasks']) or '-'}")
    enabled = [name for name, flag in info["capabilities"].items() if flag]
    console.print(f"Capabilities: {', '.join(enabled) or 'none'}")
    console.print("Config:")
    console.print(json.dumps(info["config"], indent=2), markup=False)


@cli.group(name="config")
def config_group() -> None:
    """Read and change provider configuration"""


def _parse_assignments(assignments: Tuple[str, ...]) -> Dict[str, Any]:
    partial: Dict[str, Any] = {}
    for assignment in assignments:
        key, sep, raw = assignment.partition("=")
        if not sep or not key.strip():
            raise click.ClickException(f"Expected KEY=VALUE, got '{assignment}'.")
        try:
            assign_dotted(partial, key.strip(), parse_config_value(raw))
        except ValueError as exc:
            raise click.ClickException(str(exc)) from exc
    return partial


@config_group.command(name="set")
@click.argument("provider_id")
@click.argument("assignments", nargs=-1, required=True)
@click.pass_context
def config_set_cmd(ctx: click.Context, provider_id: str, assignments: Tuple[str, ...]) -> None:
    """Set KEY=VALUE pairs (dotted keys address nested groups)"""
    partial = _parse_assignments(assignments)

    async def _work(hub: ProviderHub) -> bool:
        _require_provider(hub, provider_id)
        current = hub.get_provider_config(provider_id)
        # Nested groups are merged one level deep so siblings survive.
        for key, value in partial.items():
            if isinstance(value, dict) and isinstance(current.get(key), dict):
                partial[key] = {**current[key], **value}
        hub.set_provider_config(provider_id, partial)
        return await hub.validate_provider(provider_id)

    valid = _run(ctx, _work)
    click.echo(f"Updated {provider_id} ({'valid' if valid else 'not yet valid'})")


@config_group.command(name="get")
@click.argument("provider_id")
@click.argument("key", required=False)
@click.option("--show-secrets", is_flag=True, help="Print API keys unmasked")
@click.pass_context
def config_get_cmd(
    ctx: click.Context, provider_id: str, key: Optional[str], show_secrets: bool
) -> None:
    """Print a provider's configuration, or one key of it"""

    async def _work(hub: ProviderHub) -> Dict[str, Any]:
        _require_provider(hub, provider_id)
        return hub.get_provider_config(provider_id)

    config = _run(ctx, _work)
    if not show_secrets:
        config = redact(config)
    if key is None:
        click.echo(json.dumps(config, indent=2))
        return
    value: Any = config
    for part in key.split("."):
        if not isinstance(value, dict) or part not in value:
            raise click.ClickException(f"'{key}' is not set for {provider_id}.")
        value = value[part]
    click.echo(json.dumps(value) if not isinstance(value, str) else value)


@config_group.command(name="reset")
@click.argument("provider_id")
@click.pass_context
def config_reset_cmd(ctx: click.Context, provider_id: str) -> None:
    """Restore a provider's default options"""

    async def _work(hub: ProviderHub) -> None:
        _require_provider(hub, provider_id)
        hub.store.reset(provider_id)

    _run(ctx, _work)
    click.echo(f"Reset {provider_id} to defaults")


@cli.command(name="validate")
@click.argument("provider_id")
@click.pass_context
def validate_cmd(ctx: click.Context, provider_id: str) -> None:
    """Validate a provider's configuration"""

    async def _work(hub: ProviderHub) -> Any:
        _require_provider(hub, provider_id)
        return await hub.validation_result(provider_id)

    result = _run(ctx, _work)
    if not result.valid:
        raise click.ClickException(f"{provider_id} is not configured: {result.reason}")
    click.echo(f"{provider_id} is valid")


@cli.command(name="models")
@click.argument("provider_id")
@click.option("--search", default="", help="Filter by name, id or description")
@click.option("--json", "as_json", is_flag=True, help="Output JSON")
@click.pass_context
def models_cmd(ctx: click.Context, provider_id: str, search: str, as_json: bool) -> None:
    """List the models a provider offers"""

    async def _work(hub: ProviderHub) -> Tuple[List[Any], Optional[str]]:
        descriptor = _require_provider(hub, provider_id)
        if not descriptor.capabilities.can_list_models:
            raise click.ClickException(f"{provider_id} does not support listing models.")
        models = await hub.fetch_models_for_provider(provider_id)
        return filter_models(models, search), hub.model_load_error.get(provider_id)

    models, error = _run(ctx, _work)
    if error:
        raise click.ClickException(f"Failed to list models for {provider_id}: {error}")
    if as_json:
        click.echo(json.dumps([model.model_dump() for model in models], indent=2))
        return
    if not models:
        click.echo("No models found.")
        return
    for model in models:
        suffix = " [installed]" if model.installed else ""
        click.echo(f"{model.id}  {model.name}{suffix}")


@cli.command(name="voices")
@click.argument("provider_id")
@click.option("--json", "as_json", is_flag=True, help="Output JSON")
@click.pass_context
def voices_cmd(ctx: click.Context, provider_id: str, as_json: bool) -> None:
    """List the voices a speech provider offers"""

    async def _work(hub: ProviderHub) -> Tuple[List[Any], Optional[str]]:
        descriptor = _require_provider(hub, provider_id)
        if not descriptor.capabilities.can_list_voices:
            raise click.ClickException(f"{provider_id} does not support listing voices.")
        voices = await hub.speech.load_voices_for_provider(provider_id)
        return voices, hub.speech.speech_provider_error

    voices, error = _run(ctx, _work)
    if error:
        raise click.ClickException(f"Failed to list voices for {provider_id}: {error}")
    if as_json:
        click.echo(json.dumps([voice.model_dump() for voice in voices], indent=2))
        return
    for voice in voices:
        languages = ", ".join(language.code for language in voice.languages)
        click.echo(f"{voice.id}  {voice.name}" + (f" ({languages})" if languages else ""))


@cli.command(name="install")
@click.argument("provider_id")
@click.argument("model_id")
@click.pass_context
def install_cmd(ctx: click.Context, provider_id: str, model_id: str) -> None:
    """Download and load a model for an on-device provider"""

    async def _work(hub: ProviderHub) -> bool:
        descriptor = _require_provider(hub, provider_id)
        if not descriptor.capabilities.can_load_model:
            raise click.ClickException(f"{provider_id} does not support installing models.")
        with Progress(
            TextColumn("[bold]{task.description}"),
            BarColumn(),
            TaskProgressColumn(),
            console=console,
            transient=True,
        ) as progress:
            task_id = progress.add_task(model_id, total=1.0)

            def _on_progress(pid: str, mid: str, info: Any) -> None:
                if pid == provider_id and mid == model_id and info is not None:
                    progress.update(task_id, completed=info.progress)

            unsubscribe = hub.installer.subscribe(_on_progress)
            try:
                return await hub.install_model(provider_id, model_id)
            finally:
                unsubscribe()

    _run(ctx, _work)
    click.echo(f"Installed {model_id}")


@cli.command(name="speak")
@click.argument("provider_id")
@click.argument("text")
@click.option("--model", "model", default=None, help="Model id (default: the provider's configured model)")
@click.option("--voice", "voice", default=None, help="Voice id (default: the provider's configured voice)")
@click.option("--ssml", is_flag=True, help="Wrap the text in SSML when the provider supports it")
@click.option(
    "-o",
    "--output",
    type=click.Path(dir_okay=False, path_type=Path),
    default=Path("speech.mp3"),
    show_default=True,
)
@click.pass_context
def speak_cmd(
    ctx: click.Context,
    provider_id: str,
    text: str,
    model: Optional[str],
    voice: Optional[str],
    ssml: bool,
    output: Path,
) -> None:
    """Synthesize TEXT to an audio file"""

    async def _work(hub: ProviderHub) -> bytes:
        descriptor = _require_provider(hub, provider_id)
        if descriptor.category is not ProviderCategory.SPEECH:
            raise click.ClickException(f"{provider_id} is not a speech provider.")
        config = hub.get_provider_config(provider_id)
        prefs = hub.speech.preferences
        prefs.provider = provider_id
        prefs.model = model or config.get("model") or ""
        prefs.voice_id = voice or config.get("voice") or ""
        prefs.ssml_enabled = ssml
        voice_settings = config.get("voiceSettings") or {}
        prefs.pitch = voice_settings.get("pitch", 0)
        prefs.rate = voice_settings.get("speed", 1.0)
        if ssml:
            await hub.speech.load_voices_for_provider(provider_id)
        return await hub.speech.speak(text)

    audio = _run(ctx, _work)
    output.write_bytes(audio)
    click.echo(f"Wrote {len(audio)} bytes to {output}")


@cli.command(name="transcribe")
@click.argument("provider_id")
@click.argument("audio_file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--model", "model", default=None, help="Model id (default: the provider's configured model)")
@click.option("--language", default=None, help="Spoken language hint")
@click.pass_context
def transcribe_cmd(
    ctx: click.Context,
    provider_id: str,
    audio_file: Path,
    model: Optional[str],
    language: Optional[str],
) -> None:
    """Transcribe AUDIO_FILE to text"""
    audio = audio_file.read_bytes()

    async def _work(hub: ProviderHub) -> str:
        descriptor = _require_provider(hub, provider_id)
        if descriptor.category is not ProviderCategory.TRANSCRIPTION:
            raise click.ClickException(f"{provider_id} is not a transcription provider.")
        resolved = model or hub.get_provider_config(provider_id).get("model") or "whisper-1"
        return await hub.generate(provider_id, resolved, audio, language)

    click.echo(_run(ctx, _work))


def main() -> None:
    """Main entry point."""
    try:
        cli()
    except KeyboardInterrupt:
        console.print("\n[yellow]Interrupted[/yellow]")
        sys.exit(130)
    except SystemExit:
        raise
    except (RuntimeError, ValueError, OSError, ConnectionError) as e:
        console.print(f"[red]Fatal error: {escape(str(e))}[/red]")
        logger.warning(
            "[cli] Fatal error in main CLI entrypoint: %s: %s",
            type(e).__name__,
            e,
        )
        sys.exit(1)


if __name__ == "__main__":
    main()
