"""Shared fixtures: a scripted command runner and an in-memory host."""

from __future__ import annotations

import io
import json
from pathlib import Path
from typing import Callable, Mapping

import pytest
from rich.console import Console

from hostdeploy.collaborators import Collaborators, CommandResult, CommandRunner
from hostdeploy.collaborators.git import SourceRef
from hostdeploy.collaborators.nginx import SiteConfig
from hostdeploy.core.config import DeployConfig, StartMethod
from hostdeploy.operator import PresetOperator
from hostdeploy.pipeline.orchestrator import Orchestrator
from hostdeploy.pipeline.reporting import RunReporter
from hostdeploy.pipeline.steps import DeployPipeline


# ---------------------------------------------------------------------------
# Scripted command runner
# ---------------------------------------------------------------------------


class FakeRunner(CommandRunner):
    """CommandRunner that records argv and answers from a script.

    ``script(prefix, result)`` registers a response for any argv that starts
    with ``prefix``; the most recently registered match wins. Unscripted
    commands succeed with empty output.
    """

    def __init__(self, *, use_sudo: bool = False):
        super().__init__(use_sudo=use_sudo, timeout=5)
        self.calls: list[list[str]] = []
        self.inputs: list[str | None] = []
        self.envs: list[Mapping[str, str] | None] = []
        self._script: list[tuple[tuple[str, ...], CommandResult | Callable[[list[str]], CommandResult]]] = []

    def script(self, prefix, result=None, *, stdout: str = "", stderr: str = "", returncode: int = 0):
        if result is None:
            result = CommandResult(returncode=returncode, stdout=stdout, stderr=stderr)
        self._script.append((tuple(prefix), result))

    def _execute(self, argv, *, cwd, env, input, timeout):
        self.calls.append(list(argv))
        self.inputs.append(input)
        self.envs.append(env)
        for prefix, result in reversed(self._script):
            if tuple(argv[: len(prefix)]) == prefix:
                return result(list(argv)) if callable(result) else result
        return CommandResult(returncode=0, stdout="", stderr="")

    def commands(self) -> list[str]:
        return [" ".join(call) for call in self.calls]


@pytest.fixture
def fake_runner() -> FakeRunner:
    return FakeRunner()


@pytest.fixture
def make_runner() -> Callable[..., FakeRunner]:
    return FakeRunner


# ---------------------------------------------------------------------------
# In-memory host
# ---------------------------------------------------------------------------


SERVER_MANIFEST = {"name": "server", "dependencies": {"express": "^4.19.0"}}
REACT_MANIFEST = {
    "name": "client",
    "dependencies": {"react": "^18.2.0", "react-dom": "^18.2.0"},
    "devDependencies": {"vite": "^5.0.0"},
}
PLAIN_CLIENT_MANIFEST = {"name": "client", "dependencies": {"lodash": "^4.17.21"}}


class FakeHost:
    """Simulated machine shared by the fake collaborators.

    Every mutating call is appended to ``log`` as ``"<area>.<verb>:<arg>"``.
    ``fail(name, exc)`` makes the named call raise ``exc``.
    """

    def __init__(self, repo_files: Mapping[str, str] | None = None):
        self.repo_files = dict(repo_files or {})
        self.log: list[str] = []
        self.installed: set[str] = set()
        self.active: set[str] = set()
        self.firewall_on = False
        self.rules: list[str] = []
        self.nvm = False
        self.pm2 = False
        self.processes: dict[str, dict[str, str]] = {}
        self.remote_moved = False
        self.sites: dict[str, str] = {}
        self.site_changes = 0
        self.failures: dict[str, Exception] = {}

    def fail(self, name: str, exc: Exception) -> None:
        self.failures[name] = exc

    def _hit(self, name: str, arg: object = "") -> None:
        if name in self.failures:
            raise self.failures[name]
        self.log.append(f"{name}:{arg}" if arg != "" else name)

    def calls(self, prefix: str) -> list[str]:
        return [entry for entry in self.log if entry.startswith(prefix)]

    def collaborators(self) -> Collaborators:
        return Collaborators(
            packages=_Packages(self),
            services=_Services(self),
            firewall=_Firewall(self),
            runtime=_Runtime(self),
            dependencies=_Dependencies(self),
            builder=_Builder(self),
            source=_Source(self),
            keys=_Keys(self),
            proxy=_Proxy(self),
            supervisor=_Supervisor(self),
        )


class _Packages:
    def __init__(self, host: FakeHost):
        self.host = host

    def is_installed(self, package: str) -> bool:
        return package in self.host.installed

    def refresh(self, *, upgrade: bool = True) -> None:
        self.host._hit("packages.refresh", "upgrade" if upgrade else "no-upgrade")

    def ensure(self, package: str) -> bool:
        if package in self.host.installed:
            return False
        self.host._hit("packages.install", package)
        self.host.installed.add(package)
        return True


class _Services:
    def __init__(self, host: FakeHost):
        self.host = host

    def is_active(self, service: str) -> bool:
        return service in self.host.active

    def enable(self, service: str) -> None:
        self.host._hit("services.enable", service)

    def start(self, service: str) -> bool:
        self.host._hit("services.start", service)
        self.host.active.add(service)
        return True

    def reload_or_restart(self, service: str) -> None:
        self.host._hit("services.reload", service)


class _Firewall:
    def __init__(self, host: FakeHost):
        self.host = host

    def is_enabled(self) -> bool:
        return self.host.firewall_on

    def allow(self, rule: str) -> None:
        self.host._hit("firewall.allow", rule)
        if rule not in self.host.rules:
            self.host.rules.append(rule)

    def enable(self) -> None:
        self.host._hit("firewall.enable")
        self.host.firewall_on = True

    def status(self) -> str | None:
        return "Status: active" if self.host.firewall_on else "Status: inactive"


class _Runtime:
    def __init__(self, host: FakeHost):
        self.host = host

    def is_present(self) -> bool:
        return self.host.nvm

    def install(self) -> None:
        self.host._hit("runtime.install")
        self.host.nvm = True

    def install_lts(self) -> str:
        self.host._hit("runtime.lts")
        return "v20.11.0"


class _Dependencies:
    def __init__(self, host: FakeHost):
        self.host = host

    def ensure(self, path: Path) -> bool:
        if (path / "node_modules").is_dir():
            return False
        self.host._hit("dependencies.ensure", path.name)
        (path / "node_modules").mkdir(parents=True)
        return True

    def add(self, path: Path, *packages: str) -> None:
        self.host._hit("dependencies.add", ",".join(packages))
        (path / "node_modules").mkdir(parents=True, exist_ok=True)


class _Builder:
    def __init__(self, host: FakeHost):
        self.host = host

    def build(self, path: Path, output_dir: Path) -> None:
        self.host._hit("builder.build", path.name)
        output_dir.mkdir(parents=True, exist_ok=True)
        (output_dir / "index.html").write_text("<html></html>", encoding="utf-8")


class _Source:
    def __init__(self, host: FakeHost):
        self.host = host

    def is_current(self, ref: SourceRef) -> bool:
        return (ref.path / ".git").is_dir() and not self.host.remote_moved

    def clone_or_sync(self, ref: SourceRef) -> str:
        outcome = "synced" if (ref.path / ".git").is_dir() else "cloned"
        self.host._hit(f"source.{outcome}", ref.branch)
        (ref.path / ".git").mkdir(parents=True, exist_ok=True)
        for relative, content in self.host.repo_files.items():
            target = ref.path / relative
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_text(content, encoding="utf-8")
        self.host.remote_moved = False
        return outcome


class _Keys:
    def __init__(self, host: FakeHost):
        self.host = host
        self.created: set[Path] = set()
        self.authorized = False

    def key_exists(self, key_path: Path) -> bool:
        return key_path in self.created

    def ensure_key(self, key_path: Path, comment: str) -> str:
        if key_path not in self.created:
            self.host._hit("keys.create", key_path.name)
            self.created.add(key_path)
        return f"ssh-ed25519 AAAAC3NzaFAKE {comment}"

    def trust_host(self, host: str) -> None:
        self.host._hit("keys.trust", host)

    def probe(self, host: str, key_path: Path) -> bool:
        self.host._hit("keys.probe", host)
        return self.authorized


class _Proxy:
    def __init__(self, host: FakeHost):
        self.host = host

    def apply(self, site: SiteConfig) -> bool:
        self.host._hit("proxy.apply", site.name)
        changed = self.host.sites.get(site.name) != site.content
        if changed:
            self.host.site_changes += 1
        self.host.sites[site.name] = site.content
        return changed


class _Supervisor:
    def __init__(self, host: FakeHost):
        self.host = host

    def is_available(self) -> bool:
        return self.host.pm2

    def install(self) -> None:
        self.host._hit("supervisor.install")
        self.host.pm2 = True

    def start_or_restart(self, process_name, entry, env, *, cwd, method=StartMethod.FILE) -> str:
        if process_name in self.host.processes:
            self.host._hit("supervisor.restart", process_name)
            self.host.processes[process_name] = dict(env)
            return "restarted"
        self.host._hit("supervisor.start", process_name)
        self.host.processes[process_name] = dict(env)
        return "started"

    def persist(self, user: str, home: Path) -> None:
        self.host._hit("supervisor.persist", user)


def repo_files(*, frontend: Mapping | None = REACT_MANIFEST, backend: bool = True) -> dict[str, str]:
    files: dict[str, str] = {"README.md": "# shop\n"}
    if backend:
        files["server/package.json"] = json.dumps(SERVER_MANIFEST)
        files["server/index.js"] = "require('express')\n"
    if frontend is not None:
        files["client/package.json"] = json.dumps(frontend)
    return files


@pytest.fixture
def make_host() -> Callable[..., FakeHost]:
    def _make(**kwargs) -> FakeHost:
        return FakeHost(repo_files(**kwargs))

    return _make


@pytest.fixture
def host(make_host) -> FakeHost:
    return make_host()


@pytest.fixture
def make_config(tmp_path: Path) -> Callable[..., DeployConfig]:
    def _make(**overrides) -> DeployConfig:
        values = {
            "repo_url": "git@github.com:acme/shop.git",
            "app_dir": tmp_path / "app",
            "app_name": "shop",
            "use_ssh_key": False,
            "ssh_key_path": tmp_path / "keys" / "deploy_key_shop",
            "ssh_key_comment": "shop@test-host",
        }
        values.update(overrides)
        return DeployConfig(**values)

    return _make


@pytest.fixture
def console() -> Console:
    return Console(file=io.StringIO(), width=120, force_terminal=False, color_system=None)


@pytest.fixture
def make_orchestrator(console: Console, tmp_path: Path):
    """Build an orchestrator over a FakeHost with a preset operator."""

    def _make(host: FakeHost, config: DeployConfig, answers: Mapping[str, bool] | None = None):
        operator = PresetOperator(answers or {}, console=console)
        pipeline = DeployPipeline(host.collaborators(), operator, user="deploy", home=tmp_path / "home")
        orchestrator = Orchestrator(pipeline.build(), config, RunReporter(console))
        return orchestrator, operator

    return _make
