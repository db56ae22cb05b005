"""hexbuild CLI - Main entrypoint."""

import typer
from rich.console import Console

from hexbuild import __version__
from hexbuild.cli.commands import run_cmd, validate_cmd
from hexbuild.compiler.config_loader import load_config
from hexbuild.kernel.exceptions import HexBuildError
from hexbuild.kernel.logging import configure_logging

app = typer.Typer(
    name="hexbuild",
    help="hexbuild - Sequential, fail-fast executor for declarative build pipelines.",
    no_args_is_help=True,
    rich_markup_mode="rich",
    pretty_exceptions_enable=False,
)

console = Console()

_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")
_LEVEL_ALIASES = {"WARN": "WARNING"}

app.command(name="run", help="Run a build pipeline")(run_cmd.run)
app.command(name="validate", help="Validate a pipeline definition")(validate_cmd.validate)


def _version_callback(value: bool) -> None:
    if value:
        console.print(f"[bold blue]hexbuild[/bold blue] version [green]{__version__}[/green]")
        raise typer.Exit()


@app.callback()
def callback(
    ctx: typer.Context,
    *,
    quiet: bool = typer.Option(False, "-q", "--quiet", help="Suppress progress output"),
    verbose: bool = typer.Option(False, "-V", "--verbose", help="Enable debug logging"),
    log_level: str | None = typer.Option(
        None, "--log-level", help="Log level: debug|info|warning|error"
    ),
    config_path: str | None = typer.Option(
        None, "--config", "-c", help="Path to a kind: Config YAML or TOML file"
    ),
    version: bool = typer.Option(
        False,
        "--version",
        "-v",
        help="Show version and exit",
        callback=_version_callback,
        is_eager=True,
    ),
) -> None:
    """hexbuild CLI - run and validate declarative build pipelines.

    Global flags are parsed here and stored on `ctx.obj` for subcommands.
    """
    if ctx.obj is None:
        ctx.obj = {}

    try:
        config = load_config(config_path)
    except (HexBuildError, FileNotFoundError) as e:
        console.print(f"[red]✗ Configuration error:[/red] {e}")
        raise typer.Exit(1) from e

    # Explicit flags win over configuration and environment
    effective_level = config.logging.level
    if log_level:
        requested = log_level.upper()
        effective_level = _LEVEL_ALIASES.get(requested, requested)
        if effective_level not in _LEVELS:
            console.print(f"[red]✗ Unknown log level:[/red] {log_level}")
            raise typer.Exit(2)
    if quiet:
        effective_level = "ERROR"
    elif verbose:
        effective_level = "DEBUG"

    configure_logging(
        level=effective_level,  # type: ignore[arg-type]
        format=config.logging.format,
        output_file=config.logging.output_file,
        use_color=config.logging.use_color,
        include_timestamp=config.logging.include_timestamp,
    )

    ctx.obj.update({
        "quiet": quiet,
        "verbose": verbose,
        "config_path": config_path,
        "log_level": effective_level,
    })


def main() -> None:
    """Main CLI entrypoint."""
    app()


if __name__ == "__main__":
    main()
