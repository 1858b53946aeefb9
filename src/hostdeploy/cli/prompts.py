"""Configuration gathering.

Values come from the answers file when one is loaded, otherwise from the
:class:`DeployConfig` defaults. In interactive mode each value is offered as a
prompt default; unattended runs take them as they are.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Callable, Mapping

import typer
from rich.console import Console

from hostdeploy.cli.ui import select_with_arrows
from hostdeploy.collaborators.ssh import is_http_url
from hostdeploy.core.config import AppMode, ConfigError, DeployConfig, StartMethod

logger = logging.getLogger(__name__)

__all__ = ["MODE_OPTIONS", "gather_config"]

MODE_OPTIONS = {
    AppMode.AUTO.value: "detect a frontend after the fetch, then ask",
    AppMode.API_ONLY.value: "backend only: no frontend build, nginx proxies everything",
    AppMode.FRONTEND_ENABLED.value: "build the frontend, serve it from nginx, proxy /api",
}


def _ask_text(label: str, default: str, *, required: bool = False) -> str:
    if required and not default:
        return typer.prompt(label).strip()
    return str(typer.prompt(label, default=default)).strip()


def _ask_choice(label: str, choices: list[str], default: str) -> str:
    while True:
        answer = _ask_text(f"{label} ({'/'.join(choices)})", default).lower()
        if answer in choices:
            return answer
        typer.echo(f"Please answer one of: {', '.join(choices)}")


def _ask_port(label: str, default: int) -> int:
    while True:
        answer = typer.prompt(label, default=default, type=int)
        if 1 <= answer <= 65535:
            return answer
        typer.echo("Port must be between 1 and 65535")


def _interactive_values(
    base: DeployConfig,
    preset: Mapping[str, Any],
    console: Console,
    select_mode: Callable[..., str],
) -> dict[str, Any]:
    values: dict[str, Any] = {}

    values["mode"] = select_mode(
        MODE_OPTIONS,
        "Deployment mode",
        default_key=base.mode.value,
        console=console,
    )

    values["repo_url"] = _ask_text(
        "Repository URL (SSH preferred: git@github.com:org/repo.git)",
        base.repo_url,
        required=True,
    )
    values["branch"] = _ask_text("Git branch to deploy", base.branch)
    values["app_dir"] = _ask_text("Install path on server", str(base.app_dir))
    values["app_name"] = _ask_text("PM2/nginx app name", base.app_name)

    values["use_ssh_key"] = typer.confirm("Use an SSH deploy key for repository access?", default=base.use_ssh_key)
    if values["use_ssh_key"]:
        if is_http_url(values["repo_url"]):
            console.print("[yellow]The repository URL is HTTPS; a deploy key only works over SSH.[/yellow]")
            if typer.confirm("Switch to an SSH repository URL now?", default=True):
                values["repo_url"] = _ask_text(
                    "SSH repository URL (git@github.com:org/repo.git)", "", required=True
                )
        # Key path and comment follow the app name unless pinned in the answers file.
        key_default = preset.get("ssh_key_path") or Path.home() / ".ssh" / f"deploy_key_{values['app_name']}"
        values["ssh_key_path"] = _ask_text("SSH key path (private key file)", str(key_default))
        comment_default = preset.get("ssh_key_comment") or DeployConfig(app_name=values["app_name"]).ssh_key_comment
        values["ssh_key_comment"] = _ask_text("SSH key comment label", str(comment_default))
        values["wait_for_key"] = typer.confirm(
            "Pause until the deploy key is added to the repository host?", default=base.wait_for_key
        )

    values["server_dir"] = _ask_text("Backend folder (relative to repo root; '.' if root)", base.server_dir)
    values["server_entry"] = _ask_text("Backend entry (file or npm script target)", base.server_entry)
    values["start_method"] = _ask_choice(
        "Backend start method", [m.value for m in StartMethod], base.start_method.value
    )
    values["server_port"] = _ask_port("Backend internal port", base.server_port)

    values["client_dir"] = _ask_text("Frontend folder (relative to repo root)", base.client_dir)
    values["client_build_dir"] = _ask_text(
        "Frontend build output dir (CRA=build, Vite=dist)", base.client_build_dir
    )

    values["server_name"] = _ask_text("nginx server_name ('_' for IP only)", base.server_name)
    values["enable_proxy"] = typer.confirm("Configure nginx?", default=base.enable_proxy)
    values["enable_firewall"] = typer.confirm("Enable UFW firewall?", default=base.enable_firewall)
    values["skip_upgrade"] = typer.confirm("Skip 'apt-get upgrade'?", default=base.skip_upgrade)
    values["offer_express"] = typer.confirm(
        "Offer a minimal Express scaffold when the backend is missing?", default=base.offer_express
    )
    return values


def gather_config(
    preset: Mapping[str, Any] | None = None,
    *,
    interactive: bool,
    console: Console | None = None,
    select_mode: Callable[..., str] = select_with_arrows,
) -> DeployConfig:
    """Build the run's configuration snapshot.

    Args:
        preset: Values from the answers file; they override the defaults.
        interactive: Prompt for every value when True.
        console: Console for notices.
        select_mode: Arrow-key selector for the mode prompt.

    Raises:
        ConfigError: if a preset value cannot be parsed.
    """
    preset = dict(preset or {})
    console = console or Console()
    base = DeployConfig.from_mapping(preset)

    if not interactive:
        if not base.repo_url:
            logger.warning("No repo_url configured; step 6 will fail until one is set")
        return base

    values = {**preset, **_interactive_values(base, preset, console, select_mode)}
    try:
        return DeployConfig.from_mapping(values)
    except ConfigError:
        logger.error("Gathered configuration is invalid")
        raise
