"""External tools driven by the deployment steps."""

from __future__ import annotations

import getpass
from dataclasses import dataclass

from .apt import AptPackageInstaller
from .base import (
    Builder,
    DependencyInstaller,
    DeployKeyManager,
    Firewall,
    PackageInstaller,
    ProcessSupervisor,
    ReverseProxy,
    RuntimeManager,
    ServiceManager,
    SourceControl,
)
from .git import GitSourceControl, SourceRef
from .nginx import NginxReverseProxy, SiteConfig, render_site
from .node import NpmBuilder, NpmDependencyInstaller, NvmRuntime
from .pm2 import Pm2Supervisor
from .shell import CommandResult, CommandRunner
from .ssh import SshDeployKeys
from .system import SystemdServiceManager, UfwFirewall


@dataclass
class Collaborators:
    packages: PackageInstaller
    services: ServiceManager
    firewall: Firewall
    runtime: RuntimeManager
    dependencies: DependencyInstaller
    builder: Builder
    source: SourceControl
    keys: DeployKeyManager
    proxy: ReverseProxy
    supervisor: ProcessSupervisor


def default_collaborators(runner: CommandRunner | None = None) -> Collaborators:
    """Wire the real apt/systemd/nvm/git/nginx/pm2 implementations."""
    runner = runner or CommandRunner()
    services = SystemdServiceManager(runner)
    runtime = NvmRuntime(runner)
    npm = NpmDependencyInstaller(runtime)
    return Collaborators(
        packages=AptPackageInstaller(runner),
        services=services,
        firewall=UfwFirewall(runner),
        runtime=runtime,
        dependencies=npm,
        builder=NpmBuilder(runtime),
        source=GitSourceControl(runner, owner=getpass.getuser()),
        keys=SshDeployKeys(runner),
        proxy=NginxReverseProxy(runner, services),
        supervisor=Pm2Supervisor(runtime),
    )


__all__ = [
    "AptPackageInstaller",
    "Collaborators",
    "CommandResult",
    "CommandRunner",
    "GitSourceControl",
    "NginxReverseProxy",
    "NpmBuilder",
    "NpmDependencyInstaller",
    "NvmRuntime",
    "Pm2Supervisor",
    "SiteConfig",
    "SourceRef",
    "SshDeployKeys",
    "SystemdServiceManager",
    "UfwFirewall",
    "default_collaborators",
    "render_site",
]
