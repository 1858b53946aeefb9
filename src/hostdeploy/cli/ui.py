"""Terminal widgets: the step tracker tree and the arrow-key selector."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Mapping

import readchar
import typer
from rich.console import Console
from rich.live import Live
from rich.panel import Panel
from rich.table import Table
from rich.tree import Tree

# status -> (symbol, label style)
_STATUS_STYLES = {
    "pending": ("[green dim]○[/green dim]", "bright_black"),
    "running": ("[cyan]○[/cyan]", "white"),
    "executed": ("[green]●[/green]", "white"),
    "satisfied": ("[green]✓[/green]", "white"),
    "gated": ("[yellow]○[/yellow]", "white"),
    "below-offset": ("[bright_black]·[/bright_black]", "bright_black"),
    "failed": ("[red]●[/red]", "white"),
}


@dataclass
class TrackedStep:
    key: str
    label: str
    status: str = "pending"
    detail: str = ""


class StepTracker:
    """Per-step status for the end-of-run tree.

    Statuses are plain strings so the tracker stays independent of the
    pipeline models; unknown statuses render without a symbol.
    """

    def __init__(self, title: str):
        self.title = title
        self._steps: dict[str, TrackedStep] = {}

    def add(self, key: str, label: str) -> None:
        self._steps.setdefault(key, TrackedStep(key, label))

    def mark(self, key: str, status: str, detail: str = "") -> None:
        step = self._steps.setdefault(key, TrackedStep(key, key))
        step.status = status
        if detail:
            step.detail = detail

    def status_of(self, key: str) -> str | None:
        step = self._steps.get(key)
        return step.status if step else None

    def counts(self) -> dict[str, int]:
        totals: dict[str, int] = {}
        for step in self._steps.values():
            totals[step.status] = totals.get(step.status, 0) + 1
        return totals

    def render(self) -> Tree:
        summary = ", ".join(f"{count} {status}" for status, count in self.counts().items())
        tree = Tree(f"[cyan]{self.title}[/cyan] [dim]({summary})[/dim]", guide_style="grey50")
        for step in self._steps.values():
            symbol, style = _STATUS_STYLES.get(step.status, (" ", "white"))
            line = f"{symbol} [{style}]{step.label}[/{style}]"
            if step.detail:
                line += f" [bright_black]({step.detail.strip()})[/bright_black]"
            tree.add(line)
        return tree


def get_key() -> str:
    """Read one keypress and name the navigation keys."""
    key = readchar.readkey()

    if key in (readchar.key.UP, readchar.key.CTRL_P, "k"):
        return "up"
    if key in (readchar.key.DOWN, readchar.key.CTRL_N, "j"):
        return "down"
    if key == readchar.key.ENTER:
        return "enter"
    if key in (readchar.key.ESC, "\x1b"):
        return "escape"
    if key == readchar.key.CTRL_C:
        raise KeyboardInterrupt
    return key


def _selection_panel(options: Mapping[str, str], selected: int, title: str) -> Panel:
    table = Table.grid(padding=(0, 2))
    table.add_column(style="cyan", justify="left", width=3)
    table.add_column(style="white", justify="left")

    for i, (key, description) in enumerate(options.items()):
        marker = "▶" if i == selected else " "
        table.add_row(marker, f"[cyan]{i + 1}. {key}[/cyan] [dim]({description})[/dim]")

    table.add_row("", "")
    table.add_row("", "[dim]↑/↓ or number to choose, Enter to select, Esc to cancel[/dim]")
    return Panel(table, title=f"[bold]{title}[/bold]", border_style="cyan", padding=(1, 2))


def select_with_arrows(
    options: Mapping[str, str],
    prompt_text: str = "Select an option",
    default_key: str | None = None,
    console: Console | None = None,
) -> str:
    """Pick one key of ``options`` with the arrow keys.

    Digit keys jump straight to the matching entry. Esc or Ctrl+C exits
    with status 1.
    """
    console = console or Console()
    keys = list(options)
    selected = keys.index(default_key) if default_key in keys else 0

    console.print()
    with Live(
        _selection_panel(options, selected, prompt_text),
        console=console,
        transient=True,
        auto_refresh=False,
    ) as live:
        while True:
            try:
                key = get_key()
            except KeyboardInterrupt:
                key = "escape"

            if key == "enter":
                break
            if key == "escape":
                console.print("\n[yellow]Selection cancelled[/yellow]")
                raise typer.Exit(1)
            if key == "up":
                selected = (selected - 1) % len(keys)
            elif key == "down":
                selected = (selected + 1) % len(keys)
            elif key.isdigit() and 1 <= int(key) <= len(keys):
                selected = int(key) - 1
            live.update(_selection_panel(options, selected, prompt_text), refresh=True)

    choice = keys[selected]
    console.print(f"[cyan]{prompt_text}:[/cyan] {choice}")
    return choice


__all__ = [
    "StepTracker",
    "TrackedStep",
    "get_key",
    "select_with_arrows",
]
