"""systemd services and the ufw firewall."""

from __future__ import annotations

import logging

from hostdeploy.collaborators.shell import CommandRunner
from hostdeploy.pipeline.errors import AmbiguousState

logger = logging.getLogger(__name__)

__all__ = ["SystemdServiceManager", "UfwFirewall"]


class SystemdServiceManager:
    name = "systemctl"

    def __init__(self, runner: CommandRunner):
        self.runner = runner

    def is_active(self, service: str) -> bool:
        result = self.runner.run(["systemctl", "is-active", service])
        if result.returncode == 127:
            raise AmbiguousState(f"systemctl unavailable while checking {service}")
        return result.stdout.strip() == "active"

    def enable(self, service: str) -> None:
        self.runner.check(["systemctl", "enable", service], collaborator=self.name, sudo=True)

    def start(self, service: str) -> bool:
        """Start, falling back to restart. Failure of both is logged only."""
        if self.runner.run(["systemctl", "start", service], sudo=True).ok:
            return True
        result = self.runner.best_effort(
            ["systemctl", "restart", service], what=f"Starting {service}", sudo=True
        )
        return result.ok

    def reload_or_restart(self, service: str) -> None:
        if self.runner.run(["systemctl", "reload", service], sudo=True).ok:
            return
        self.runner.check(["systemctl", "restart", service], collaborator=self.name, sudo=True)


class UfwFirewall:
    """Best-effort ufw configuration; nothing here fails a step."""

    name = "ufw"

    def __init__(self, runner: CommandRunner):
        self.runner = runner

    def is_enabled(self) -> bool:
        result = self.runner.run(["ufw", "status"], sudo=True)
        if not result.ok:
            raise AmbiguousState(f"ufw status unavailable: {result.diagnostic}")
        return "Status: active" in result.stdout

    def allow(self, rule: str) -> None:
        self.runner.best_effort(["ufw", "allow", rule], what=f"ufw allow {rule}", sudo=True)

    def enable(self) -> None:
        self.runner.best_effort(["ufw", "--force", "enable"], what="ufw enable", sudo=True)

    def status(self) -> str | None:
        result = self.runner.best_effort(
            ["ufw", "status", "verbose"], what="ufw status query", sudo=True
        )
        return result.stdout if result.ok else None
