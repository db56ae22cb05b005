"""Rich rendering of pipeline progress and results."""

from __future__ import annotations

import json
from typing import TYPE_CHECKING

from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from hexbuild.kernel.domain.results import PipelineFailure, PipelineSuccess
from hexbuild.kernel.orchestration.events import (
    Event,
    PipelineStarted,
    StepCompleted,
    StepFailed,
    StepStarted,
)

if TYPE_CHECKING:
    from hexbuild.kernel.context import ExecutionContext
    from hexbuild.kernel.domain.pipeline import Pipeline
    from hexbuild.kernel.domain.results import PipelineResult


class ResultReporter:
    """Surfaces step progress and the terminal result on a rich console.

    An instance is also an observer: pass it to the executor to get one line
    per step as the run progresses.
    """

    def __init__(self, console: Console | None = None, *, quiet: bool = False) -> None:
        self.console = console or Console()
        self.quiet = quiet

    def __call__(self, event: Event) -> None:
        if self.quiet:
            return
        match event:
            case PipelineStarted():
                self.console.print(
                    f"[bold cyan]▶ {escape(event.name)}[/bold cyan] "
                    f"[dim]({event.total_steps} steps → {escape(event.target_dir)})[/dim]"
                )
            case StepStarted():
                self.console.print(f"  [dim]{event.index}[/dim] {escape(event.name)} …")
            case StepCompleted():
                seconds = event.duration_ms / 1000
                self.console.print(
                    f"  [green]✓[/green] {escape(event.name)} [dim]{seconds:.2f}s[/dim]"
                )
            case StepFailed():
                self.console.print(
                    f"  [red]✗[/red] {escape(event.name)}: {escape(str(event.error))}"
                )

    def render(self, result: PipelineResult) -> None:
        """Print a summary table and, on failure, the stderr excerpt."""
        table = Table(show_header=True, border_style="cyan")
        table.add_column("#", style="dim", justify="right")
        table.add_column("Step", style="green")
        table.add_column("Exit", justify="right")
        table.add_column("Time", justify="right")

        for step_result in result.step_results:
            exit_code = "-" if step_result.exit_code is None else str(step_result.exit_code)
            table.add_row(
                str(step_result.step_index),
                escape(step_result.step_name),
                exit_code,
                f"{step_result.duration_ms / 1000:.2f}s",
            )
        self.console.print(table)

        if isinstance(result, PipelineSuccess):
            self.console.print(f"[green]✓ Artifact:[/green] {escape(result.artifact_path)}")
            return

        self._render_failure(result)

    def render_json(self, result: PipelineResult) -> None:
        self.console.out(json.dumps(result.to_dict(), indent=2), highlight=False)

    def render_plan(self, pipeline: Pipeline, context: ExecutionContext) -> None:
        """Print the resolved command line of every step."""
        self.console.print(Panel(f"[bold]{escape(pipeline.name)}[/bold]", border_style="blue"))

        symbols = Table(show_header=True, border_style="blue", title="Symbols")
        symbols.add_column("Symbol", style="green")
        symbols.add_column("Path", style="white")
        for name, value in context.items():
            symbols.add_row(escape(f"${{{name}}}"), escape(value))
        self.console.print(symbols)

        steps = Table(show_header=True, border_style="cyan", title="Steps")
        steps.add_column("#", style="dim", justify="right")
        steps.add_column("Step", style="green")
        steps.add_column("Command line", style="white")
        for index, step in enumerate(pipeline.steps):
            resolved = step.resolve(context)
            marker = " [yellow](artifact)[/yellow]" if step.produces_artifact else ""
            steps.add_row(
                str(index), escape(step.display_name) + marker, escape(" ".join(resolved.argv))
            )
        self.console.print(steps)

    def _render_failure(self, result: PipelineFailure) -> None:
        cause = result.cause
        self.console.print(
            f"[red]✗ Failed at step {result.failed_step_index}:[/red] "
            f"[bold]{type(cause).__name__}[/bold] {escape(str(cause))}"
        )
        if excerpt := result.stderr_excerpt.strip():
            self.console.print(Panel(escape(excerpt), title="stderr", border_style="red"))
