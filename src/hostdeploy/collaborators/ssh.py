"""Deploy-key handling for the source fetch."""

from __future__ import annotations

import logging
import re
import shlex
from pathlib import Path
from urllib.parse import urlparse

from hostdeploy.collaborators.shell import CommandRunner
from hostdeploy.pipeline.errors import CollaboratorFailure

logger = logging.getLogger(__name__)

__all__ = [
    "SshDeployKeys",
    "git_ssh_command",
    "is_http_url",
    "ssh_host_of",
]

_SCP_LIKE = re.compile(r"^(?:(?P<user>[^@/]+)@)?(?P<host>[^:/]+):(?!//)")


def is_http_url(url: str) -> bool:
    return bool(re.match(r"^https?://", url.strip(), re.IGNORECASE))


def ssh_host_of(url: str) -> str | None:
    """Return the host of an SSH-style repository URL, if it is one."""
    url = url.strip()
    if url.startswith("ssh://"):
        return urlparse(url).hostname
    if is_http_url(url):
        return None
    match = _SCP_LIKE.match(url)
    return match.group("host") if match else None


def git_ssh_command(key_path: Path) -> str:
    return (
        f"ssh -i {shlex.quote(str(key_path))} "
        "-o IdentitiesOnly=yes -o StrictHostKeyChecking=yes"
    )


class SshDeployKeys:
    name = "ssh"

    def __init__(self, runner: CommandRunner, ssh_dir: Path | None = None):
        self.runner = runner
        self.ssh_dir = ssh_dir or Path.home() / ".ssh"

    @property
    def known_hosts(self) -> Path:
        return self.ssh_dir / "known_hosts"

    @staticmethod
    def public_path(key_path: Path) -> Path:
        return key_path.with_name(key_path.name + ".pub")

    def key_exists(self, key_path: Path) -> bool:
        return key_path.is_file() and self.public_path(key_path).is_file()

    def ensure_key(self, key_path: Path, comment: str) -> str:
        """Create an ed25519 key pair unless both halves exist.

        Returns:
            The public key text.
        """
        self.ssh_dir.mkdir(parents=True, exist_ok=True)
        self.ssh_dir.chmod(0o700)
        key_path.parent.mkdir(parents=True, exist_ok=True)

        if self.key_exists(key_path):
            logger.info("SSH key already exists at %s. Skipping creation.", key_path)
        else:
            # ssh-keygen prompts before overwriting a lone half of a pair.
            key_path.unlink(missing_ok=True)
            self.public_path(key_path).unlink(missing_ok=True)
            logger.info("Creating SSH deploy key at %s", key_path)
            self.runner.check(
                ["ssh-keygen", "-t", "ed25519", "-f", str(key_path), "-N", "", "-C", comment],
                collaborator=self.name,
            )
            key_path.chmod(0o600)
            self.public_path(key_path).chmod(0o644)

        public = self.public_path(key_path)
        try:
            return public.read_text(encoding="utf-8").strip()
        except UnicodeDecodeError as e:
            raise CollaboratorFailure(self.name, f"read {public}", 1, f"{public} is not valid UTF-8: {e}") from e

    def trust_host(self, host: str) -> None:
        """Add ``host`` to known_hosts once (best effort)."""
        if self.known_hosts.is_file():
            lookup = self.runner.run(["ssh-keygen", "-F", host, "-f", str(self.known_hosts)])
            if lookup.ok and lookup.stdout.strip():
                return
        scan = self.runner.best_effort(["ssh-keyscan", "-H", host], what=f"ssh-keyscan {host}", timeout=30)
        if scan.ok and scan.stdout.strip():
            with self.known_hosts.open("a", encoding="utf-8") as handle:
                handle.write(scan.stdout if scan.stdout.endswith("\n") else scan.stdout + "\n")

    def probe(self, host: str, key_path: Path) -> bool:
        """Try an authenticated connection; failure is reported, never raised."""
        result = self.runner.run(
            [
                "ssh",
                "-o",
                "StrictHostKeyChecking=yes",
                "-o",
                "BatchMode=yes",
                "-i",
                str(key_path),
                "-T",
                f"git@{host}",
            ],
            timeout=30,
        )
        output = f"{result.stdout}\n{result.stderr}"
        # GitHub exits 1 even when authentication succeeds.
        authenticated = result.ok or "successfully authenticated" in output.lower()
        if authenticated:
            logger.info("SSH authentication to %s succeeded", host)
        else:
            logger.warning("SSH probe to %s failed (non-fatal): %s", host, result.diagnostic)
        return authenticated
