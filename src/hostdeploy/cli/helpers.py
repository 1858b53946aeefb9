"""Console rendering shared by the CLI entry point."""

from __future__ import annotations

from rich.align import Align
from rich.console import Console
from rich.table import Table
from rich.text import Text

from hostdeploy.core.config import DeployConfig
from hostdeploy.pipeline.steps import STEP_DEFINITIONS, StepDefinition

console = Console()

BANNER = r"""
 _               _      _            _
| |__   ___  ___| |_ __| | ___ _ __ | | ___  _   _
| '_ \ / _ \/ __| __/ _` |/ _ \ '_ \| |/ _ \| | | |
| | | | (_) \__ \ || (_| |  __/ |_) | | (_) | |_| |
|_| |_|\___/|___/\__\__,_|\___| .__/|_|\___/ \__, |
                              |_|            |___/
"""

TAGLINE = "hostdeploy - resumable Node.js deployment for a fresh Ubuntu host"


def show_banner(target: Console | None = None) -> None:
    """Display the ASCII art banner."""
    out = target or console
    banner_lines = BANNER.strip("\n").split("\n")
    colors = ["bright_blue", "blue", "cyan", "bright_cyan", "white", "bright_white"]

    styled_banner = Text()
    for i, line in enumerate(banner_lines):
        styled_banner.append(line + "\n", style=colors[i % len(colors)])

    out.print(Align.center(styled_banner))
    out.print(Align.center(Text(TAGLINE, style="italic bright_yellow")))
    out.print()


def step_table(definitions: tuple[StepDefinition, ...] = STEP_DEFINITIONS) -> Table:
    table = Table(title="Deployment steps", show_lines=False, header_style="bold cyan")
    table.add_column("#", justify="right", style="cyan", no_wrap=True)
    table.add_column("Step", style="white")
    table.add_column("Guard (skip when)", style="dim")
    table.add_column("Branch", style="yellow")
    for definition in definitions:
        table.add_row(str(definition.index), definition.name, definition.guard, definition.branch)
    return table


def config_table(config: DeployConfig) -> Table:
    """Two-column summary of the snapshot about to be deployed."""
    table = Table.grid(padding=(0, 2))
    table.add_column(style="cyan", justify="right")
    table.add_column(style="white")
    for key, value in config.as_dict().items():
        table.add_row(key, value)
    return table


__all__ = [
    "BANNER",
    "TAGLINE",
    "config_table",
    "console",
    "show_banner",
    "step_table",
]
