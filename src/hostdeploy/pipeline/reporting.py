"""Console announcements for a pipeline run.

The reporter is the only writer of step-start, skip and failure lines; the
collaborators log through :mod:`logging` instead.
"""

from __future__ import annotations

from rich.console import Console
from rich.markup import escape
from rich.panel import Panel

from hostdeploy.cli.ui import StepTracker
from hostdeploy.pipeline.errors import StepFailure
from hostdeploy.pipeline.models import DecisionState, Step, StepStatus

__all__ = ["RunReporter"]


class RunReporter:
    """Render step progress to a Rich console and keep a tracker tree."""

    def __init__(self, console: Console | None = None, title: str = "Deployment steps"):
        self.console = console or Console()
        self.tracker = StepTracker(title)

    @staticmethod
    def _key(step: Step) -> str:
        return str(step.index)

    def register(self, steps: list[Step]) -> None:
        for step in steps:
            self.tracker.add(self._key(step), f"{step.index}) {step.name}")

    def below_offset(self, step: Step, start_offset: int) -> None:
        self.tracker.mark(self._key(step), StepStatus.BELOW_OFFSET, f"before --from {start_offset}")

    def started(self, step: Step) -> None:
        self.tracker.mark(self._key(step), "running")
        self.console.print(f"\n[bold cyan]==> Step {step.index}:[/bold cyan] {step.name}")

    def gated(self, step: Step) -> None:
        reason = step.gate_reason or "not applicable"
        self.tracker.mark(self._key(step), StepStatus.GATED, reason)
        self.console.print(f"[yellow]Step {step.index} skipped:[/yellow] {reason}")

    def satisfied(self, step: Step) -> None:
        self.tracker.mark(self._key(step), StepStatus.SATISFIED)
        self.console.print(f"[dim]Step {step.index} already satisfied. Skipping.[/dim]")

    def note(self, step: Step, message: str) -> None:
        self.console.print(f"[yellow]Step {step.index}:[/yellow] {escape(message)}")

    def completed(self, step: Step) -> None:
        self.tracker.mark(self._key(step), StepStatus.EXECUTED)
        self.console.print(f"[green]✓[/green] Step {step.index} done")

    def decision(self, decision: DecisionState, *, replayed: bool = False) -> None:
        origin = " (resolved for resumed run)" if replayed else ""
        self.console.print(
            f"[cyan]Decision{origin}:[/cyan] frontend={decision.frontend_mode.value} "
            f"(frontend_detected={'y' if decision.frontend_detected else 'n'})"
        )

    def failed(self, failure: StepFailure) -> None:
        self.tracker.mark(str(failure.index), StepStatus.FAILED, type(failure.cause).__name__)
        body = (
            f"[bold]Step {failure.index}: {failure.name}[/bold]\n\n"
            f"{escape(str(failure.cause))}\n\n"
            f"Resume with: [bold]{failure.resume_command}[/bold]"
        )
        self.console.print()
        self.console.print(Panel(body, title="Deployment failed", border_style="red"))

    def summary(self) -> None:
        self.console.print()
        self.console.print(self.tracker.render())
