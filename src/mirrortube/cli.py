"""Typer CLI entry point for mirrortube."""

from __future__ import annotations

import json
from dataclasses import asdict
from pathlib import Path
from typing import TYPE_CHECKING, Annotated, Any

import typer
from pydantic import ValidationError
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from mirrortube import __version__
from mirrortube.client import MirrorClient
from mirrortube.config import LoggingSettings, Settings, format_validation_error
from mirrortube.doctor import CheckStatus, run_doctor
from mirrortube.exceptions import (
    AllEndpointsUnavailable,
    ConfigurationError,
    NoPlayableStream,
)
from mirrortube.logging import configure_logging, generate_session_id

if TYPE_CHECKING:
    from collections.abc import Iterator

    from mirrortube.models import VideoSummary

console = Console()
err_console = Console(stderr=True)

app = typer.Typer(
    name="mirrortube",
    help="Browse trending videos, search and resolve streams through whichever mirror responds.",
    no_args_is_help=True,
)

EXIT_CONFIG_ERROR = 1
EXIT_UNAVAILABLE = 2
EXIT_NO_STREAM = 3

ConfigOption = Annotated[
    Path | None,
    typer.Option("--config", "-c", help="Path to config YAML file."),
]
EndpointOption = Annotated[
    list[str] | None,
    typer.Option(
        "--endpoint",
        "-e",
        help="Mirror base URL; repeat to build the pool (overrides config).",
    ),
]
JsonOption = Annotated[
    bool, typer.Option("--json", help="Print machine-readable JSON.")
]
NoProbeOption = Annotated[
    bool, typer.Option("--no-probe", help="Skip the startup mirror probe.")
]
VerboseOption = Annotated[
    bool, typer.Option("--verbose", "-v", help="Enable debug logging.")
]


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _settings_overrides(endpoints: list[str] | None) -> dict[str, Any]:
    return {"pool": {"endpoints": endpoints}} if endpoints else {}


def _setup_logging(logging_settings: LoggingSettings, verbose: bool = False) -> None:
    configure_logging(
        level="DEBUG" if verbose else logging_settings.level,
        fmt=logging_settings.format,
        log_file=logging_settings.file,
        session_id=generate_session_id(),
    )


def _load_settings(
    config_path: Path | None = None,
    endpoints: list[str] | None = None,
    verbose: bool = False,
) -> Settings:
    """Load settings with error handling and user-friendly messages."""
    try:
        settings = Settings.load(
            config_path=config_path, **_settings_overrides(endpoints)
        )
    except ValidationError as exc:
        err_console.print(
            Panel(
                format_validation_error(exc),
                title="Configuration Error",
                border_style="red",
            )
        )
        raise typer.Exit(code=EXIT_CONFIG_ERROR) from exc

    _setup_logging(settings.logging, verbose)
    return settings


def _open_client(settings: Settings, probe: bool) -> MirrorClient:
    try:
        client = MirrorClient(settings)
    except ConfigurationError as exc:
        err_console.print(f"[red]{exc}[/red]")
        raise typer.Exit(code=EXIT_CONFIG_ERROR) from exc
    if probe:
        client.start()
    return client


def _exit_unavailable(exc: AllEndpointsUnavailable) -> typer.Exit:
    err_console.print(
        f"[red]All {exc.attempted} mirrors failed.[/red] "
        "Try again later or configure other mirrors."
    )
    for endpoint, error in exc.errors.items():
        err_console.print(f"[dim]  {endpoint}: {error}[/dim]")
    return typer.Exit(code=EXIT_UNAVAILABLE)


def _format_duration(seconds: int | None) -> str:
    if seconds is None:
        return "-"
    hours, remainder = divmod(seconds, 3600)
    minutes, secs = divmod(remainder, 60)
    if hours:
        return f"{hours}:{minutes:02d}:{secs:02d}"
    return f"{minutes}:{secs:02d}"


def _video_rows(videos: list[VideoSummary]) -> Iterator[tuple[str, ...]]:
    for video in videos:
        yield (
            video.id,
            video.title,
            video.channel_title or "-",
            _format_duration(video.duration_seconds),
            video.view_count_text or "-",
        )


def _print_videos(videos: list[VideoSummary], title: str, as_json: bool) -> None:
    if as_json:
        typer.echo(json.dumps([asdict(video) for video in videos], indent=2))
        return

    if not videos:
        console.print("[yellow]No videos found.[/yellow]")
        return

    table = Table(title=title)
    table.add_column("ID", style="cyan", no_wrap=True)
    table.add_column("Title")
    table.add_column("Channel", style="magenta")
    table.add_column("Duration", justify="right")
    table.add_column("Views", justify="right")
    for row in _video_rows(videos):
        table.add_row(*row)
    console.print(table)


def _version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"[bold]mirrortube[/bold] {__version__}")
        raise typer.Exit


@app.callback()
def common(
    version: Annotated[
        bool | None,
        typer.Option(
            "--version",
            "-V",
            help="Show version and exit.",
            callback=_version_callback,
            is_eager=True,
        ),
    ] = None,
) -> None:
    """mirrortube global options."""


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


@app.command()
def endpoints(
    config: ConfigOption = None,
    endpoint: EndpointOption = None,
    as_json: JsonOption = False,
) -> None:
    """List the configured mirror pool in preference order."""
    settings = _load_settings(config, endpoint)
    members = settings.pool.endpoints

    if as_json:
        typer.echo(json.dumps({"preferred": members[0], "endpoints": members}))
        return

    table = Table(title="Mirror Pool")
    table.add_column("#", justify="right")
    table.add_column("Endpoint", style="cyan")
    for index, member in enumerate(members, start=1):
        table.add_row(str(index), member)
    console.print(table)


@app.command()
def probe(
    config: ConfigOption = None,
    endpoint: EndpointOption = None,
    verbose: VerboseOption = False,
) -> None:
    """Probe mirrors in order and report the first one that answers."""
    settings = _load_settings(config, endpoint, verbose)
    chosen = _open_client(settings, probe=False).select_mirror()
    console.print(f"Preferred mirror: [bold green]{chosen}[/bold green]")


@app.command()
def trending(
    region: Annotated[
        str | None,
        typer.Option("--region", "-r", help="Two-letter region code."),
    ] = None,
    fallback: Annotated[
        bool,
        typer.Option("--fallback", help="Show sample videos if every mirror fails."),
    ] = False,
    config: ConfigOption = None,
    endpoint: EndpointOption = None,
    as_json: JsonOption = False,
    no_probe: NoProbeOption = False,
    verbose: VerboseOption = False,
) -> None:
    """Show trending videos."""
    settings = _load_settings(config, endpoint, verbose)
    client = _open_client(settings, probe=not no_probe)
    if fallback:
        videos = client.popular_or_fallback(region)
    else:
        try:
            videos = client.trending(region)
        except AllEndpointsUnavailable as exc:
            raise _exit_unavailable(exc) from exc
    _print_videos(videos, "Trending", as_json)


@app.command()
def search(
    query: Annotated[str, typer.Argument(help="Search text or a YouTube URL.")],
    config: ConfigOption = None,
    endpoint: EndpointOption = None,
    as_json: JsonOption = False,
    no_probe: NoProbeOption = False,
    verbose: VerboseOption = False,
) -> None:
    """Search for videos, or resolve a pasted YouTube URL."""
    settings = _load_settings(config, endpoint, verbose)
    client = _open_client(settings, probe=not no_probe)
    try:
        videos = client.search(query)
    except AllEndpointsUnavailable as exc:
        raise _exit_unavailable(exc) from exc
    _print_videos(videos, f"Results for {query!r}", as_json)


@app.command()
def stream(
    video_id: Annotated[str, typer.Argument(help="Video identifier.")],
    config: ConfigOption = None,
    endpoint: EndpointOption = None,
    as_json: JsonOption = False,
    no_probe: NoProbeOption = False,
    verbose: VerboseOption = False,
) -> None:
    """Resolve the best playable stream for a video."""
    settings = _load_settings(config, endpoint, verbose)
    client = _open_client(settings, probe=not no_probe)
    try:
        descriptor = client.stream(video_id)
    except AllEndpointsUnavailable as exc:
        raise _exit_unavailable(exc) from exc
    except NoPlayableStream as exc:
        err_console.print(f"[yellow]{exc}. Try another video.[/yellow]")
        raise typer.Exit(code=EXIT_NO_STREAM) from exc

    if as_json:
        typer.echo(json.dumps(asdict(descriptor), indent=2))
        return

    kind = "audio only" if descriptor.is_audio_only else descriptor.mime_type
    console.print(f"[bold]{descriptor.quality_label}[/bold] ({kind})")
    console.print(descriptor.url, soft_wrap=True)


@app.command()
def doctor(
    config: ConfigOption = None,
    endpoint: EndpointOption = None,
    no_probe: Annotated[
        bool,
        typer.Option("--no-probe", help="Skip mirror probes (offline mode)."),
    ] = False,
    quiet: Annotated[
        bool,
        typer.Option("--quiet", help="Suppress table output, use exit code only."),
    ] = False,
) -> None:
    """Check the configuration and probe every configured mirror."""
    overrides = _settings_overrides(endpoint)
    settings: Settings | None
    try:
        settings = Settings.load(config_path=config, **overrides)
    except ValidationError:
        # Reported by the config-schema check below
        settings = None
    _setup_logging(settings.logging if settings else LoggingSettings())

    report = run_doctor(
        settings=settings,
        config_path=config,
        check_mirrors=not no_probe,
        overrides=overrides,
    )

    if not quiet:
        table = Table(title="Mirror Doctor", show_lines=True)
        table.add_column("Check", style="cyan")
        table.add_column("Status", justify="center")
        table.add_column("Message")

        status_style = {
            CheckStatus.OK: "[green]OK[/green]",
            CheckStatus.WARN: "[yellow]WARN[/yellow]",
            CheckStatus.FAIL: "[red]FAIL[/red]",
        }

        for check in report.checks:
            table.add_row(
                check.name,
                status_style[check.status],
                check.message,
            )
        console.print(table)

        for check in report.checks:
            if check.details:
                details = ", ".join(f"{k}={v}" for k, v in check.details.items())
                console.print(f"[dim]{check.name}: {details}[/dim]")

    raise typer.Exit(code=report.exit_code)


def main() -> None:
    """Main entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
