"""Thin CLI wrapper for srcimage.

This module provides the command-line interface using Typer.
All business logic is delegated to core modules; this is the only place
where errors become process exit codes.
"""

import json
import logging
from typing import TYPE_CHECKING, Annotated, Any

import typer
from rich.console import Console
from rich.logging import RichHandler

from srcimage import __version__
from srcimage.config import get_settings, print_settings_json
from srcimage.errors import ConfigurationError, SrcImageError
from srcimage.types import FrontendKind, ProgressMode

if TYPE_CHECKING:
    from srcimage.builds.solve import SolveConfiguration

app = typer.Typer(
    name="srcimage",
    help="srcimage - build and push container images from git sources",
    no_args_is_help=True,
)
console = Console()
err_console = Console(stderr=True)

EXIT_FAILURE = 1
EXIT_USAGE = 2
EXIT_TIMEOUT = 124
EXIT_INTERRUPTED = 130


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"srcimage version {__version__}")
        raise typer.Exit()


def configure_logging(level: str) -> None:
    """Route log records to stderr through rich."""
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=err_console, show_path=False)],
        force=True,
    )


def fail(error: SrcImageError) -> typer.Exit:
    """Print the one-line diagnostic for a failed stage."""
    err_console.print(
        f"[red]{error.stage} failed: {error}[/red]", soft_wrap=True, highlight=False
    )
    code = EXIT_USAGE if isinstance(error, ConfigurationError) else EXIT_FAILURE
    return typer.Exit(code=code)


def print_json(data: Any) -> None:
    """Print machine-readable output without wrapping."""
    console.print(json.dumps(data, indent=2), soft_wrap=True, highlight=False)


@app.callback()
def main(
    version: Annotated[
        bool | None,
        typer.Option(
            "--version",
            "-V",
            help="Show version and exit",
            callback=version_callback,
            is_eager=True,
        ),
    ] = None,
) -> None:
    """srcimage - build and push container images from git sources."""


@app.command()
def config(
    json_output: Annotated[
        bool,
        typer.Option("--json", help="Output as JSON"),
    ] = False,
) -> None:
    """Show effective configuration."""
    settings = get_settings()
    if json_output:
        console.print(print_settings_json(settings), soft_wrap=True, highlight=False)
        return

    console.print("[bold]Effective Configuration:[/bold]")
    console.print()
    console.print("[bold]Paths:[/bold]")
    console.print(f"  Cache directory:     {settings.cache_dir}")
    console.print(f"  Dockerfile:          {settings.dockerfile}")
    console.print()
    console.print("[bold]Backend:[/bold]")
    console.print(f"  buildkitd address:   {settings.buildkit_addr or '(default)'}")
    console.print(f"  buildctl:            {settings.buildctl_path}")
    console.print(f"  Frontend:            {settings.frontend.value}")
    console.print(f"  Frontend source:     {settings.frontend_source}")
    console.print(f"  Probe timeout:       {settings.backend_probe_timeout}")
    console.print()
    console.print("[bold]Progress:[/bold]")
    console.print(f"  Progress mode:       {settings.progress_mode.value}")
    console.print(f"  Fail on render error: {settings.fail_on_render_error}")
    console.print(f"  Channel size:        {settings.channel_size}")
    console.print()
    console.print("[bold]Operational:[/bold]")
    console.print(f"  Git username:        {settings.git_username}")
    console.print(f"  Log level:           {settings.log_level}")


@app.command()
def build(
    push_location: Annotated[
        str, typer.Argument(help="Image reference to push the result to")
    ],
    source_location: Annotated[
        str, typer.Argument(help="Git repository URL or path")
    ],
    source_ref: Annotated[
        str, typer.Argument(help="Remote name bound to the source during clone")
    ],
    credential: Annotated[
        str,
        typer.Argument(
            help="Git token (or set SRCIMAGE_GIT_TOKEN)",
            envvar="SRCIMAGE_GIT_TOKEN",
            show_default=False,
            show_envvar=False,
        ),
    ] = "",
    dockerfile: Annotated[
        str | None,
        typer.Option("--dockerfile", "-f", help="Build-instruction file"),
    ] = None,
    frontend: Annotated[
        FrontendKind | None,
        typer.Option("--frontend", help="BuildKit frontend"),
    ] = None,
    progress: Annotated[
        ProgressMode | None,
        typer.Option("--progress", help="Progress output mode"),
    ] = None,
    timeout: Annotated[
        float | None,
        typer.Option("--timeout", help="Abort the build after this many seconds"),
    ] = None,
    fail_on_render_error: Annotated[
        bool | None,
        typer.Option(
            "--fail-on-render-error/--tolerate-render-error",
            help="Abort the build if progress rendering fails",
        ),
    ] = None,
    dry_run: Annotated[
        bool,
        typer.Option("--dry-run", help="Acquire source and show the plan only"),
    ] = False,
    json_output: Annotated[
        bool,
        typer.Option("--json", help="Output result as JSON"),
    ] = False,
) -> None:
    """Build an image from a git source and push it.

    The image is tagged <PUSH_LOCATION>-<first 7 characters of the commit>.
    """
    from srcimage.builds.progress import ProgressReporter
    from srcimage.builds.service import build_from_source
    from srcimage.request import BuildRequest

    settings = get_settings()
    overrides: dict[str, Any] = {}
    if frontend is not None:
        overrides["frontend"] = frontend
    if progress is not None:
        overrides["progress_mode"] = progress
    if fail_on_render_error is not None:
        overrides["fail_on_render_error"] = fail_on_render_error
    if overrides:
        settings = settings.model_copy(update=overrides)

    configure_logging(settings.log_level)

    try:
        request = BuildRequest.parse(
            push_location, source_location, source_ref, credential
        )
        outcome = build_from_source(
            request,
            settings=settings,
            reporter=ProgressReporter(
                console=err_console, mode=settings.progress_mode
            ),
            dockerfile=dockerfile,
            timeout=timeout,
            dry_run=dry_run,
        )
    except SrcImageError as e:
        raise fail(e) from e
    except TimeoutError:
        err_console.print(f"[red]build failed: timed out after {timeout}s[/red]")
        raise typer.Exit(code=EXIT_TIMEOUT) from None
    except KeyboardInterrupt:
        err_console.print("[red]build failed: interrupted[/red]")
        raise typer.Exit(code=EXIT_INTERRUPTED) from None

    if json_output:
        print_json(
            {
                "image_tag": outcome.image_tag,
                "commit": outcome.commit,
                "working_tree": str(outcome.working_tree),
                "cache_hit": outcome.cache_hit,
                "pushed": not outcome.dry_run,
                "progress_degraded": outcome.render_error is not None,
                "solve": _solve_summary(outcome.solve_config),
            }
        )
        return

    if outcome.dry_run:
        console.print(f"[blue]Dry run: would build {outcome.image_tag}[/blue]")
        console.print(f"  Commit:       {outcome.commit}")
        console.print(f"  Working tree: {outcome.working_tree}")
        console.print(f"  Cache hit:    {outcome.cache_hit}")
        return

    console.print(f"[green]Pushed {outcome.image_tag}[/green]")
    if outcome.render_error is not None:
        console.print(
            f"[yellow]Progress output incomplete: {outcome.render_error}[/yellow]"
        )


def _solve_summary(solve_config: "SolveConfiguration") -> dict[str, Any]:
    return {
        "frontend": solve_config.frontend_kind.value,
        "frontend_attrs": dict(solve_config.frontend_attrs),
        "named_resources": {
            name: str(path) for name, path in solve_config.named_resources.items()
        },
        "exports": [
            {"type": export.type, **export.to_attrs()}
            for export in solve_config.exports
        ],
    }


@app.command()
def tag(
    push_location: Annotated[str, typer.Argument(help="Image reference")],
    commit: Annotated[str, typer.Argument(help="Full commit hash")],
) -> None:
    """Print the image tag a build of COMMIT would push."""
    from srcimage.builds.tag import resolve_tag

    try:
        console.print(resolve_tag(push_location, commit), soft_wrap=True)
    except SrcImageError as e:
        raise fail(e) from e


cache_app = typer.Typer(help="Inspect the working-tree cache")
app.add_typer(cache_app, name="cache")


@cache_app.command("path")
def cache_path(
    push_location: Annotated[str, typer.Argument(help="Image reference")],
) -> None:
    """Print the cache directory used for PUSH_LOCATION."""
    from srcimage.source.store import LocalWorkingTreeStore

    if not push_location:
        raise fail(ConfigurationError("push_location must not be empty"))
    settings = get_settings()
    store = LocalWorkingTreeStore(settings.cache_dir)
    console.print(str(store.locate(push_location)), soft_wrap=True, highlight=False)


if __name__ == "__main__":
    app()
