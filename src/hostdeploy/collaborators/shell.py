"""Subprocess execution shared by every collaborator."""

from __future__ import annotations

import logging
import os
import shlex
import shutil
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Sequence

from hostdeploy.pipeline.errors import CollaboratorFailure

logger = logging.getLogger(__name__)

__all__ = ["CommandResult", "CommandRunner", "DEFAULT_TIMEOUT"]

# apt upgrades and npm builds can be slow on small hosts.
DEFAULT_TIMEOUT = 1800


@dataclass
class CommandResult:
    returncode: int
    stdout: str
    stderr: str

    @property
    def ok(self) -> bool:
        return self.returncode == 0

    @property
    def diagnostic(self) -> str:
        return self.stderr.strip() or self.stdout.strip()


def _running_as_root() -> bool:
    return hasattr(os, "geteuid") and os.geteuid() == 0


class CommandRunner:
    """Run external commands and normalize their failure shape.

    ``sudo=True`` on a call prefixes ``sudo`` unless the process already runs
    as root (or ``use_sudo`` was disabled).
    """

    def __init__(self, *, use_sudo: bool | None = None, timeout: int = DEFAULT_TIMEOUT):
        self.use_sudo = (not _running_as_root()) if use_sudo is None else use_sudo
        self.timeout = timeout

    def which(self, name: str) -> bool:
        return shutil.which(name) is not None

    def _execute(
        self,
        argv: list[str],
        *,
        cwd: Path | None,
        env: Mapping[str, str] | None,
        input: str | None,
        timeout: int,
    ) -> CommandResult:
        merged_env = None
        if env:
            merged_env = {**os.environ, **env}
        try:
            completed = subprocess.run(
                argv,
                cwd=str(cwd) if cwd else None,
                env=merged_env,
                input=input,
                capture_output=True,
                text=True,
                encoding="utf-8",
                errors="replace",
                check=False,
                timeout=timeout,
            )
            return CommandResult(
                returncode=completed.returncode,
                stdout=completed.stdout or "",
                stderr=completed.stderr or "",
            )
        except FileNotFoundError:
            return CommandResult(
                returncode=127,
                stdout="",
                stderr=f"{argv[0]} executable not found on PATH",
            )
        except subprocess.TimeoutExpired:
            return CommandResult(
                returncode=124,
                stdout="",
                stderr=f"command timed out after {timeout}s: {shlex.join(argv)}",
            )

    def run(
        self,
        args: Sequence[str],
        *,
        cwd: Path | None = None,
        env: Mapping[str, str] | None = None,
        sudo: bool = False,
        input: str | None = None,
        timeout: int | None = None,
    ) -> CommandResult:
        argv = list(args)
        if sudo and self.use_sudo:
            argv = ["sudo", *argv]
        logger.debug("Running: %s (cwd=%s)", shlex.join(argv), cwd)
        result = self._execute(
            argv,
            cwd=cwd,
            env=env,
            input=input,
            timeout=timeout or self.timeout,
        )
        if not result.ok:
            logger.debug("Command exited %d: %s", result.returncode, result.diagnostic)
        return result

    def check(
        self,
        args: Sequence[str],
        *,
        collaborator: str,
        **kwargs,
    ) -> CommandResult:
        """Run a command and raise :class:`CollaboratorFailure` on non-zero exit."""
        result = self.run(args, **kwargs)
        if not result.ok:
            raise CollaboratorFailure(
                collaborator,
                shlex.join(list(args)),
                result.returncode,
                result.diagnostic,
            )
        return result

    def best_effort(self, args: Sequence[str], *, what: str, **kwargs) -> CommandResult:
        """Run a command whose failure is logged and otherwise ignored."""
        result = self.run(args, **kwargs)
        if not result.ok:
            logger.warning("%s failed (non-fatal): %s", what, result.diagnostic or result.returncode)
        return result
