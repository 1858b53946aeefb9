"""Interfaces the step pipeline consumes.

Each implementation raises :class:`~hostdeploy.pipeline.errors.CollaboratorFailure`
on non-success and :class:`~hostdeploy.pipeline.errors.AmbiguousState` from a
probe that cannot decide.
"""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING, Mapping, Protocol

from hostdeploy.core.config import StartMethod

if TYPE_CHECKING:
    from hostdeploy.collaborators.git import SourceRef
    from hostdeploy.collaborators.nginx import SiteConfig

__all__ = [
    "Builder",
    "DependencyInstaller",
    "DeployKeyManager",
    "Firewall",
    "PackageInstaller",
    "ProcessSupervisor",
    "ReverseProxy",
    "RuntimeManager",
    "ServiceManager",
    "SourceControl",
]


class PackageInstaller(Protocol):
    def is_installed(self, package: str) -> bool: ...

    def ensure(self, package: str) -> bool: ...

    def refresh(self, *, upgrade: bool = True) -> None: ...


class ServiceManager(Protocol):
    def is_active(self, service: str) -> bool: ...

    def enable(self, service: str) -> None: ...

    def start(self, service: str) -> bool: ...


class Firewall(Protocol):
    def is_enabled(self) -> bool: ...

    def allow(self, rule: str) -> None: ...

    def enable(self) -> None: ...

    def status(self) -> str | None: ...


class RuntimeManager(Protocol):
    def is_present(self) -> bool: ...

    def install(self) -> None: ...

    def install_lts(self) -> str: ...


class DependencyInstaller(Protocol):
    def ensure(self, path: Path) -> bool: ...

    def add(self, path: Path, *packages: str) -> None: ...


class Builder(Protocol):
    def build(self, path: Path, output_dir: Path) -> None: ...


class SourceControl(Protocol):
    def is_current(self, ref: "SourceRef") -> bool: ...

    def clone_or_sync(self, ref: "SourceRef") -> str: ...


class DeployKeyManager(Protocol):
    def key_exists(self, key_path: Path) -> bool: ...

    def ensure_key(self, key_path: Path, comment: str) -> str: ...

    def trust_host(self, host: str) -> None: ...

    def probe(self, host: str, key_path: Path) -> bool: ...


class ReverseProxy(Protocol):
    def apply(self, site: "SiteConfig") -> bool: ...


class ProcessSupervisor(Protocol):
    def is_available(self) -> bool: ...

    def install(self) -> None: ...

    def start_or_restart(
        self,
        process_name: str,
        entry: str,
        env: Mapping[str, str],
        *,
        cwd: Path,
        method: StartMethod = StartMethod.FILE,
    ) -> str: ...

    def persist(self, user: str, home: Path) -> None: ...
