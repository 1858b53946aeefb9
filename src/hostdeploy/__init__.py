"""
hostdeploy - resumable deployment of a Node.js application to an Ubuntu host.

Usage:
    hostdeploy                 # gather configuration, run steps 1..10
    hostdeploy --from 7        # resume at step 7
    hostdeploy --steps         # list the steps and exit
"""

from __future__ import annotations

import logging
from importlib.metadata import PackageNotFoundError, version
from pathlib import Path

import typer
from rich.panel import Panel

from hostdeploy.cli.helpers import config_table, console, show_banner, step_table
from hostdeploy.cli.prompts import gather_config
from hostdeploy.collaborators import default_collaborators
from hostdeploy.core.config import ConfigError, default_config_path, load_answers_file, save_config
from hostdeploy.core.constants import PROGRAM_NAME
from hostdeploy.operator import InteractiveOperator, PresetOperator, is_interactive
from hostdeploy.pipeline.errors import StepFailure
from hostdeploy.pipeline.orchestrator import Orchestrator
from hostdeploy.pipeline.reporting import RunReporter
from hostdeploy.pipeline.steps import STEP_DEFINITIONS, DeployPipeline

try:
    __version__ = version(PROGRAM_NAME)
except PackageNotFoundError:
    __version__ = "0.0.0-dev"

logger = logging.getLogger(__name__)

app = typer.Typer(
    name=PROGRAM_NAME,
    help="Deploy a Node.js backend (and optional frontend) behind nginx and pm2",
    add_completion=False,
)


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
        force=True,
    )


def _version_callback(value: bool) -> None:
    if value:
        console.print(f"{PROGRAM_NAME} {__version__}")
        raise typer.Exit()


def _load_preset(config_path: Path | None) -> tuple[dict, dict[str, bool]]:
    """Read the answers file given on the command line, or the default one if present."""
    if config_path is not None:
        return load_answers_file(config_path)
    default_path = default_config_path()
    if default_path.is_file():
        logger.debug("Using answers file %s", default_path)
        return load_answers_file(default_path)
    return {}, {}


@app.command(context_settings={"allow_extra_args": True, "ignore_unknown_options": True})
def deploy(
    ctx: typer.Context,
    start_offset: int = typer.Option(
        1,
        "--from",
        min=1,
        max=len(STEP_DEFINITIONS),
        help="Start (or resume) at this step; earlier steps are neither checked nor run",
    ),
    steps: bool = typer.Option(False, "--steps", help="List the deployment steps and exit"),
    config_path: Path = typer.Option(
        None,
        "--config",
        help="YAML answers file (default: $HOSTDEPLOY_CONFIG or the user config dir)",
    ),
    non_interactive: bool = typer.Option(
        False, "--non-interactive", help="Never prompt; take values and answers from the answers file"
    ),
    save_config_path: Path = typer.Option(
        None, "--save-config", help="Write the gathered configuration to this YAML file"
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show debug logging"),
    show_version: bool = typer.Option(
        False, "--version", callback=_version_callback, is_eager=True, help="Show the version and exit"
    ),
):
    """
    Provision the host and deploy the application in ten resumable steps.

    Each step checks whether its work is already done and skips itself if so.
    On failure the run stops and prints the command that resumes at the
    failing step.

    Examples:
        hostdeploy
        hostdeploy --from 6
        hostdeploy --config deploy.yaml --non-interactive
        hostdeploy --steps
    """
    _configure_logging(verbose)

    for extra in ctx.args:
        console.print(f"[yellow]Warning:[/yellow] ignoring unrecognised argument '{extra}'")

    if steps:
        console.print(step_table())
        raise typer.Exit(0)

    show_banner()
    interactive = not non_interactive and is_interactive()

    try:
        preset, answers = _load_preset(config_path)
        config = gather_config(preset, interactive=interactive, console=console)
    except ConfigError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1)

    if save_config_path is not None:
        save_config(save_config_path, config, answers or None)
        console.print(f"[dim]Saved configuration to {save_config_path}[/dim]")

    console.print(Panel(config_table(config), title="Configuration", border_style="cyan"))
    if start_offset > 1:
        console.print(f"[cyan]Resuming from step {start_offset}[/cyan]")

    operator = InteractiveOperator(console) if interactive else PresetOperator(answers, console)
    pipeline = DeployPipeline(default_collaborators(), operator)
    reporter = RunReporter(console)
    orchestrator = Orchestrator(pipeline.build(), config, reporter)

    try:
        report = orchestrator.run(start_offset)
    except StepFailure:
        reporter.summary()
        raise typer.Exit(1)

    reporter.summary()
    console.print("\n[bold green]Deployment complete.[/bold green]")
    if config.enable_proxy:
        host = "<server-ip>" if config.server_name == "_" else config.server_name
        console.print(f"Site: http://{host}/")
        if report.decision is not None and report.decision.mern_enabled:
            console.print(f"API:  http://{host}/api/")
    console.print(f"[dim]Logs: pm2 logs {config.app_name}[/dim]")


def main():
    app()


if __name__ == "__main__":
    main()
