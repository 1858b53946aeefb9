"""Node.js runtime (nvm) plus npm dependency installs and builds."""

from __future__ import annotations

import logging
import os
import shlex
import ssl
from pathlib import Path
from typing import Mapping, Sequence

import httpx
import truststore

from hostdeploy.collaborators.shell import CommandResult, CommandRunner
from hostdeploy.core.constants import NVM_INSTALL_URL
from hostdeploy.pipeline.errors import CollaboratorFailure

logger = logging.getLogger(__name__)

__all__ = [
    "NpmBuilder",
    "NpmDependencyInstaller",
    "NvmRuntime",
    "default_nvm_dir",
    "download_text",
]

ssl_context = truststore.SSLContext(ssl.PROTOCOL_TLS_CLIENT)


def default_nvm_dir() -> Path:
    if env_dir := os.environ.get("NVM_DIR"):
        return Path(env_dir)
    return Path.home() / ".nvm"


def download_text(url: str, client: httpx.Client | None = None, *, collaborator: str = "http") -> str:
    """Fetch a small text resource, raising CollaboratorFailure on any error."""
    owns_client = client is None
    if client is None:
        client = httpx.Client(verify=ssl_context)
    try:
        response = client.get(url, timeout=60, follow_redirects=True)
    except httpx.HTTPError as e:
        raise CollaboratorFailure(collaborator, f"GET {url}", -1, str(e)) from e
    finally:
        if owns_client:
            client.close()

    if response.status_code != 200:
        raise CollaboratorFailure(
            collaborator,
            f"GET {url}",
            response.status_code,
            response.text[:400],
        )
    return response.text


class NvmRuntime:
    """Node version manager living in ``$NVM_DIR``.

    nvm is a shell function, so every node/npm/pm2 command runs through
    ``bash -c`` after sourcing ``nvm.sh`` when it exists.
    """

    name = "nvm"

    def __init__(
        self,
        runner: CommandRunner,
        nvm_dir: Path | None = None,
        client: httpx.Client | None = None,
        installer_url: str = NVM_INSTALL_URL,
    ):
        self.runner = runner
        self.nvm_dir = nvm_dir or default_nvm_dir()
        self.client = client
        self.installer_url = installer_url

    @property
    def script(self) -> Path:
        return self.nvm_dir / "nvm.sh"

    def is_present(self) -> bool:
        return self.nvm_dir.is_dir() and self.script.is_file()

    def _shell_argv(self, args: Sequence[str]) -> list[str]:
        command = shlex.join(list(args))
        if self.script.is_file():
            command = f". {shlex.quote(str(self.script))} && {command}"
        return ["bash", "-c", command]

    def _env(self, env: Mapping[str, str] | None) -> dict[str, str]:
        return {"NVM_DIR": str(self.nvm_dir), **(env or {})}

    def run(
        self,
        args: Sequence[str],
        *,
        cwd: Path | None = None,
        env: Mapping[str, str] | None = None,
    ) -> CommandResult:
        return self.runner.run(self._shell_argv(args), cwd=cwd, env=self._env(env))

    def check(
        self,
        args: Sequence[str],
        *,
        collaborator: str,
        cwd: Path | None = None,
        env: Mapping[str, str] | None = None,
    ) -> CommandResult:
        result = self.run(args, cwd=cwd, env=env)
        if not result.ok:
            raise CollaboratorFailure(
                collaborator, shlex.join(list(args)), result.returncode, result.diagnostic
            )
        return result

    def has_command(self, command: str) -> bool:
        return self.run(["command", "-v", command]).ok

    def install(self) -> None:
        """Download and run the pinned nvm installer."""
        logger.info("Installing nvm into %s", self.nvm_dir)
        script = download_text(self.installer_url, self.client, collaborator=self.name)
        # The installer refuses an explicit NVM_DIR that does not exist yet.
        self.nvm_dir.mkdir(parents=True, exist_ok=True)
        self.runner.check(
            ["bash", "-s"],
            collaborator=self.name,
            input=script,
            env={"NVM_DIR": str(self.nvm_dir), "PROFILE": "/dev/null"},
        )
        if not self.script.is_file():
            raise CollaboratorFailure(
                self.name,
                "bash -s < install.sh",
                1,
                f"nvm installer finished but {self.script} is missing",
            )

    def install_lts(self) -> str:
        """Install the current LTS Node and make it the default."""
        self.check(["nvm", "install", "--lts"], collaborator=self.name)
        self.check(["nvm", "alias", "default", "lts/*"], collaborator=self.name)
        node = self.run(["node", "-v"]).stdout.strip()
        npm = self.run(["npm", "-v"]).stdout.strip()
        logger.info("Node: %s, npm: %s", node, npm)
        return node


class NpmDependencyInstaller:
    name = "npm"

    def __init__(self, runtime: NvmRuntime):
        self.runtime = runtime

    def ensure(self, path: Path) -> bool:
        """Install dependencies unless ``node_modules`` already exists."""
        if (path / "node_modules").is_dir():
            logger.info("%s/node_modules exists. Skipping install.", path)
            return False
        command = ["npm", "ci"] if (path / "package-lock.json").is_file() else ["npm", "install"]
        self.runtime.check(command, collaborator=self.name, cwd=path)
        return True

    def add(self, path: Path, *packages: str) -> None:
        self.runtime.check(["npm", "install", *packages], collaborator=self.name, cwd=path)


class NpmBuilder:
    name = "npm"

    def __init__(self, runtime: NvmRuntime):
        self.runtime = runtime

    def build(self, path: Path, output_dir: Path) -> None:
        self.runtime.check(["npm", "run", "build"], collaborator=self.name, cwd=path)
        if not output_dir.is_dir():
            raise CollaboratorFailure(
                self.name,
                "npm run build",
                0,
                f"build finished but {output_dir} was not produced; check client_build_dir",
            )
