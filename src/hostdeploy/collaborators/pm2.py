"""PM2 process supervision for the backend."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Mapping

from hostdeploy.collaborators.node import NvmRuntime
from hostdeploy.core.config import StartMethod

logger = logging.getLogger(__name__)

__all__ = ["Pm2Supervisor"]


class Pm2Supervisor:
    name = "pm2"

    def __init__(self, runtime: NvmRuntime):
        self.runtime = runtime

    def is_available(self) -> bool:
        return self.runtime.has_command("pm2")

    def install(self) -> None:
        self.runtime.check(["npm", "install", "-g", "pm2"], collaborator=self.name)
        version = self.runtime.run(["pm2", "-v"]).stdout.strip()
        logger.info("PM2 installed: %s", version or "unknown version")

    def is_registered(self, process_name: str) -> bool:
        return self.runtime.run(["pm2", "describe", process_name]).ok

    def start_or_restart(
        self,
        process_name: str,
        entry: str,
        env: Mapping[str, str],
        *,
        cwd: Path,
        method: StartMethod = StartMethod.FILE,
    ) -> str:
        """Restart a registered process or start a new one.

        Returns:
            ``"restarted"`` or ``"started"``.
        """
        if self.is_registered(process_name):
            self.runtime.check(
                ["pm2", "restart", process_name, "--update-env"],
                collaborator=self.name,
                cwd=cwd,
                env=env,
            )
            return "restarted"

        if method == StartMethod.NPM:
            command = ["pm2", "start", "npm", "--name", process_name, "--update-env", "--", "start"]
        else:
            command = ["pm2", "start", entry, "--name", process_name, "--update-env"]
        self.runtime.check(command, collaborator=self.name, cwd=cwd, env=env)
        return "started"

    def persist(self, user: str, home: Path) -> None:
        """Save the process list and register the boot hook (best effort)."""
        saved = self.runtime.run(["pm2", "save"])
        if not saved.ok:
            logger.warning("pm2 save failed (non-fatal): %s", saved.diagnostic)

        startup = self.runtime.run(["pm2", "startup", "systemd", "-u", user, "--hp", str(home)])
        lines = [line.strip() for line in startup.stdout.splitlines() if line.strip()]
        hook = lines[-1] if lines else ""
        # pm2 prints the privileged command to run when it cannot do it itself.
        if hook.startswith("sudo "):
            self.runtime.runner.best_effort(["bash", "-c", hook], what="pm2 startup hook")
        elif not startup.ok:
            logger.warning("pm2 startup failed (non-fatal): %s", startup.diagnostic)
