"""Working-copy management for the deployed repository."""

from __future__ import annotations

import logging
import shlex
from dataclasses import dataclass
from pathlib import Path

from hostdeploy.collaborators.shell import CommandResult, CommandRunner
from hostdeploy.pipeline.errors import AmbiguousState, CollaboratorFailure

logger = logging.getLogger(__name__)

__all__ = ["GitSourceControl", "SourceRef"]

_NETWORK_TIMEOUT = 600


@dataclass(frozen=True)
class SourceRef:
    """What to fetch and where to put it."""

    url: str
    branch: str
    path: Path
    ssh_command: str | None = None

    def env(self) -> dict[str, str]:
        return {"GIT_SSH_COMMAND": self.ssh_command} if self.ssh_command else {}


def _first_line(text: str) -> str:
    for line in text.splitlines():
        stripped = line.strip()
        if stripped:
            return stripped
    return ""


class GitSourceControl:
    name = "git"

    def __init__(self, runner: CommandRunner, owner: str | None = None):
        self.runner = runner
        self.owner = owner

    def _git(self, ref: SourceRef, args: list[str], *, cwd: Path | None = None) -> CommandResult:
        return self.runner.run(["git", *args], cwd=cwd, env=ref.env(), timeout=_NETWORK_TIMEOUT)

    def _check(self, ref: SourceRef, args: list[str], *, cwd: Path | None = None) -> CommandResult:
        result = self._git(ref, args, cwd=cwd)
        if not result.ok:
            raise CollaboratorFailure(
                self.name, shlex.join(["git", *args]), result.returncode, result.diagnostic
            )
        return result

    @staticmethod
    def has_working_copy(path: Path) -> bool:
        return (path / ".git").is_dir()

    def is_current(self, ref: SourceRef) -> bool:
        """True when the working copy is clean and at the remote branch head."""
        if not self.has_working_copy(ref.path):
            return False

        origin = self._git(ref, ["remote", "get-url", "origin"], cwd=ref.path)
        if not origin.ok:
            raise AmbiguousState(f"cannot read origin: {_first_line(origin.stderr)}")
        if origin.stdout.strip() != ref.url:
            logger.info("Origin %s differs from %s", origin.stdout.strip(), ref.url)
            return False

        branch = self._git(ref, ["rev-parse", "--abbrev-ref", "HEAD"], cwd=ref.path)
        if not branch.ok or branch.stdout.strip() != ref.branch:
            return False

        status = self._git(ref, ["status", "--porcelain", "--untracked-files=no"], cwd=ref.path)
        if not status.ok:
            raise AmbiguousState(f"git status failed: {_first_line(status.stderr)}")
        if status.stdout.strip():
            return False

        head = self._git(ref, ["rev-parse", "HEAD"], cwd=ref.path)
        remote = self._git(ref, ["ls-remote", "origin", f"refs/heads/{ref.branch}"], cwd=ref.path)
        if not head.ok or not remote.ok or not remote.stdout.strip():
            detail = _first_line(remote.stderr) or "remote branch head unknown"
            raise AmbiguousState(f"cannot compare with origin/{ref.branch}: {detail}")

        remote_sha = remote.stdout.split()[0]
        return head.stdout.strip() == remote_sha

    def prepare_directory(self, path: Path) -> None:
        """Create the install path and hand it to the deploying user."""
        if not self.runner.use_sudo:
            path.mkdir(parents=True, exist_ok=True)
            return
        self.runner.check(["mkdir", "-p", str(path)], collaborator=self.name, sudo=True)
        if self.owner:
            self.runner.check(
                ["chown", "-R", f"{self.owner}:{self.owner}", str(path)],
                collaborator=self.name,
                sudo=True,
            )

    def clone_or_sync(self, ref: SourceRef) -> str:
        """Clone the repository or hard-reset an existing copy to the remote branch.

        Returns:
            ``"synced"`` or ``"cloned"``.
        """
        self.prepare_directory(ref.path)

        if self.has_working_copy(ref.path):
            origin = self._check(ref, ["remote", "get-url", "origin"], cwd=ref.path).stdout.strip()
            if origin != ref.url:
                logger.info("Repointing origin from %s to %s", origin, ref.url)
                self._check(ref, ["remote", "set-url", "origin", ref.url], cwd=ref.path)
            logger.info("Repo exists. Resetting to origin/%s", ref.branch)
            self._check(ref, ["fetch", "--all"], cwd=ref.path)
            self._check(ref, ["checkout", ref.branch], cwd=ref.path)
            self._check(ref, ["reset", "--hard", f"origin/{ref.branch}"], cwd=ref.path)
            return "synced"

        logger.info("Cloning %s into %s", ref.url, ref.path)
        self._check(ref, ["clone", ref.url, str(ref.path)])
        checkout = self._git(ref, ["checkout", ref.branch], cwd=ref.path)
        if not checkout.ok:
            self._check(ref, ["checkout", "-b", ref.branch, f"origin/{ref.branch}"], cwd=ref.path)
        return "cloned"
