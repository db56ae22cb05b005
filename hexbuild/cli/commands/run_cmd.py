"""Pipeline execution command for hexbuild CLI."""

import asyncio
from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console
from rich.markup import escape

from hexbuild.cli.reporter import ResultReporter
from hexbuild.compiler.config_loader import load_config
from hexbuild.kernel.exceptions import HexBuildError
from hexbuild.kernel.pipeline_runner import PipelineRunner

app = typer.Typer()
console = Console()


@app.command()
def run(
    ctx: typer.Context,
    pipeline_file: Annotated[
        Path,
        typer.Argument(
            help="Path to the pipeline definition (JSON or YAML)",
            exists=True,
            file_okay=True,
            dir_okay=False,
            readable=True,
        ),
    ],
    target_dir: Annotated[
        Path | None,
        typer.Option("--target-dir", "-t", help="Scratch/output directory for this run"),
    ] = None,
    timeout: Annotated[
        float | None,
        typer.Option("--timeout", help="Per-step timeout in seconds", min=0.001),
    ] = None,
    json_out: Annotated[
        bool,
        typer.Option("--json", help="Print the result as JSON"),
    ] = False,
) -> None:
    """Run a build pipeline and report the result.

    Exits with status 1 when the pipeline fails.

    Examples
    --------
    hexbuild run wasm.yaml
    hexbuild run wasm.yaml --target-dir build/wasm --timeout 600
    hexbuild run wasm.yaml --json
    """
    settings = ctx.obj or {}
    quiet = bool(settings.get("quiet")) or json_out

    try:
        config = load_config(settings.get("config_path"))
    except (HexBuildError, FileNotFoundError) as e:
        console.print(f"[red]✗ Configuration error:[/red] {escape(str(e))}")
        raise typer.Exit(1) from e

    reporter = ResultReporter(console, quiet=quiet)
    runner = PipelineRunner(config=config, observers=[reporter])

    try:
        result = asyncio.run(runner.run(pipeline_file, target_dir=target_dir, timeout=timeout))
    except HexBuildError as e:
        console.print(f"[red]✗ {type(e).__name__}:[/red] {escape(str(e))}")
        raise typer.Exit(1) from e
    except KeyboardInterrupt as e:
        console.print("[yellow]Interrupted, build cancelled[/yellow]")
        raise typer.Exit(130) from e

    if json_out:
        reporter.render_json(result)
    else:
        console.print()
        reporter.render(result)

    if not result.succeeded:
        raise typer.Exit(1)
