"""Pipeline validation command for hexbuild CLI."""

from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console
from rich.markup import escape

from hexbuild.cli.reporter import ResultReporter
from hexbuild.kernel.context import ExecutionContext
from hexbuild.kernel.pipeline_runner import PipelineRunner

app = typer.Typer()
console = Console()


@app.command()
def validate(
    pipeline_file: Annotated[
        Path,
        typer.Argument(
            help="Path to the pipeline definition to validate",
            exists=True,
            file_okay=True,
            dir_okay=False,
            readable=True,
        ),
    ],
    explain: Annotated[
        bool,
        typer.Option("--explain", "-e", help="Show declared symbols and resolved steps"),
    ] = False,
    check_commands: Annotated[
        bool,
        typer.Option("--check-commands", help="Fail when a step command is not on PATH"),
    ] = False,
) -> None:
    """Validate a pipeline definition without running anything.

    This command validates:
    - JSON/YAML syntax and document shape
    - Step fields (command, arguments, exit codes, timeouts)
    - Placeholder references against declared symbols
    - That some step produces or mutates the declared artifact

    Examples
    --------
    hexbuild validate wasm.yaml
    hexbuild validate wasm.yaml --explain
    """
    runner = PipelineRunner()
    issues = runner.validate(pipeline_file, check_commands=check_commands)

    console.print()
    if issues:
        console.print(f"[red]✗ Validation failed:[/red] {escape(str(pipeline_file))}")
        for issue in issues:
            console.print(f"  [red]✗[/red] {escape(issue)}")
        console.print()
        raise typer.Exit(1)

    console.print(f"[green]✓ Validation successful:[/green] {escape(str(pipeline_file))}")

    if explain:
        pipeline = runner.load(pipeline_file)
        console.print()
        ResultReporter(console).render_plan(pipeline, ExecutionContext.declared(pipeline))

    console.print()
