"""Debian package management through apt/dpkg."""

from __future__ import annotations

import logging

from hostdeploy.collaborators.shell import CommandRunner
from hostdeploy.pipeline.errors import AmbiguousState

logger = logging.getLogger(__name__)

__all__ = ["AptPackageInstaller", "apt_get"]


def apt_get(*args: str) -> list[str]:
    # sudo resets the environment, so pass the frontend setting on argv.
    return ["env", "DEBIAN_FRONTEND=noninteractive", "apt-get", *args]


class AptPackageInstaller:
    """Install packages only when dpkg does not already report them."""

    name = "apt"

    def __init__(self, runner: CommandRunner):
        self.runner = runner

    def is_installed(self, package: str) -> bool:
        result = self.runner.run(["dpkg", "-s", package])
        if result.returncode == 127:
            raise AmbiguousState(f"dpkg unavailable while checking {package}")
        installed = result.ok and "install ok installed" in result.stdout
        logger.debug("Package %s installed: %s", package, installed)
        return installed

    def refresh(self, *, upgrade: bool = True) -> None:
        self.runner.check(apt_get("update", "-y"), collaborator=self.name, sudo=True)
        if upgrade:
            self.runner.check(apt_get("upgrade", "-y"), collaborator=self.name, sudo=True)
        else:
            logger.info("Skipping apt upgrade")

    def ensure(self, package: str) -> bool:
        """Install ``package`` if missing.

        Returns:
            True when an install happened, False when it was already present.
        """
        try:
            if self.is_installed(package):
                logger.info("%s already installed. Skipping.", package)
                return False
        except AmbiguousState as exc:
            logger.warning("%s; installing anyway", exc)

        logger.info("Installing %s", package)
        self.runner.check(apt_get("update", "-y"), collaborator=self.name, sudo=True)
        self.runner.check(apt_get("install", "-y", package), collaborator=self.name, sudo=True)
        return True
