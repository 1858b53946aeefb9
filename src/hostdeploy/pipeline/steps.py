"""The fixed ten-step deployment pipeline.

Each step pairs an action with a guard that inspects the host. Step 6 also
resolves the frontend decision, which gates step 8 and picks the nginx
template shape in step 9.
"""

from __future__ import annotations

import getpass
import logging
from dataclasses import dataclass
from pathlib import Path

from hostdeploy.collaborators import Collaborators, SourceRef, render_site
from hostdeploy.collaborators.scaffold import scaffold_express_backend
from hostdeploy.collaborators.ssh import git_ssh_command, is_http_url, ssh_host_of
from hostdeploy.core.config import DeployConfig
from hostdeploy.core.constants import FIREWALL_PACKAGE, PREREQUISITE_PACKAGES, PROXY_PACKAGE
from hostdeploy.operator import ENABLE_FRONTEND, SCAFFOLD_BACKEND, Operator
from hostdeploy.pipeline import decision as frontend_decision
from hostdeploy.pipeline.errors import PrerequisiteMissing
from hostdeploy.pipeline.guards import all_of, path_exists
from hostdeploy.pipeline.models import DecisionState, FrontendMode, RunContext, Step

logger = logging.getLogger(__name__)

__all__ = ["STEP_DEFINITIONS", "DeployPipeline", "StepDefinition"]


@dataclass(frozen=True)
class StepDefinition:
    index: int
    name: str
    guard: str
    branch: str = "—"


STEP_DEFINITIONS: tuple[StepDefinition, ...] = (
    StepDefinition(1, "environment refresh", "none (always re-runs)"),
    StepDefinition(2, "prerequisite tools present", "each tool checked with dpkg"),
    StepDefinition(3, "reverse-proxy + firewall active", "nginx installed and active, ufw installed and enabled"),
    StepDefinition(4, "managed runtime present", "nvm directory with nvm.sh exists"),
    StepDefinition(5, "process supervisor present", "pm2 resolvable"),
    StepDefinition(
        6,
        "source fetch + branch decision",
        "working copy clean and at the remote branch head",
        "produces decision",
    ),
    StepDefinition(
        7,
        "backend dependencies installed",
        "backend node_modules exists",
        "scaffold offer needs decision",
    ),
    StepDefinition(8, "frontend built", "build output exists", "runs only when frontend enabled"),
    StepDefinition(9, "reverse-proxy site configured", "none (validated, then reloaded)", "template shape"),
    StepDefinition(10, "backend process (re)started", "pm2 describe picks start or restart"),
)

_GITHUB = "github.com"


class DeployPipeline:
    """Bind the step actions and guards to a set of collaborators."""

    def __init__(
        self,
        collaborators: Collaborators,
        operator: Operator,
        *,
        user: str | None = None,
        home: Path | None = None,
    ):
        self.c = collaborators
        self.operator = operator
        self.user = user or getpass.getuser()
        self.home = home or Path.home()

    # ------------------------------------------------------------------ #
    # 1. environment refresh
    # ------------------------------------------------------------------ #

    def refresh_environment(self, ctx: RunContext) -> None:
        self.c.packages.refresh(upgrade=not ctx.config.skip_upgrade)

    # ------------------------------------------------------------------ #
    # 2. prerequisite tools
    # ------------------------------------------------------------------ #

    def tools_installed(self, ctx: RunContext) -> bool:
        return all_of(
            (lambda pkg=pkg: self.c.packages.is_installed(pkg)) for pkg in PREREQUISITE_PACKAGES
        )

    def install_tools(self, ctx: RunContext) -> None:
        for package in PREREQUISITE_PACKAGES:
            self.c.packages.ensure(package)

    # ------------------------------------------------------------------ #
    # 3. reverse proxy + firewall
    # ------------------------------------------------------------------ #

    def proxy_and_firewall_active(self, ctx: RunContext) -> bool:
        config = ctx.config
        checks = []
        if config.enable_proxy:
            checks.append(lambda: self.c.packages.is_installed(PROXY_PACKAGE))
            checks.append(lambda: self.c.services.is_active(PROXY_PACKAGE))
        if config.enable_firewall:
            checks.append(lambda: self.c.packages.is_installed(FIREWALL_PACKAGE))
            checks.append(self.c.firewall.is_enabled)
        return all_of(checks)

    def install_proxy_and_firewall(self, ctx: RunContext) -> None:
        config = ctx.config
        if config.enable_proxy:
            self.c.packages.ensure(PROXY_PACKAGE)
            self.c.services.enable(PROXY_PACKAGE)
            self.c.services.start(PROXY_PACKAGE)
        else:
            logger.info("nginx disabled. Skipping install.")

        if config.enable_firewall:
            self.c.packages.ensure(FIREWALL_PACKAGE)
            self.c.firewall.allow("OpenSSH")
            if config.enable_proxy:
                self.c.firewall.allow("Nginx Full")
            self.c.firewall.enable()
            status = self.c.firewall.status()
            if status:
                logger.info("ufw status:\n%s", status.strip())
        else:
            logger.info("UFW disabled.")

    # ------------------------------------------------------------------ #
    # 4. managed runtime
    # ------------------------------------------------------------------ #

    def runtime_present(self, ctx: RunContext) -> bool:
        return self.c.runtime.is_present()

    def install_runtime(self, ctx: RunContext) -> None:
        if not self.c.runtime.is_present():
            self.c.runtime.install()
        self.c.runtime.install_lts()

    # ------------------------------------------------------------------ #
    # 5. process supervisor
    # ------------------------------------------------------------------ #

    def supervisor_present(self, ctx: RunContext) -> bool:
        return self.c.supervisor.is_available()

    def install_supervisor(self, ctx: RunContext) -> None:
        self.c.supervisor.install()

    # ------------------------------------------------------------------ #
    # 6. source fetch + decision
    # ------------------------------------------------------------------ #

    @staticmethod
    def source_ref(config: DeployConfig) -> SourceRef:
        ssh_command = git_ssh_command(config.ssh_key_path) if config.use_ssh_key else None
        return SourceRef(
            url=config.repo_url,
            branch=config.branch,
            path=config.app_dir,
            ssh_command=ssh_command,
        )

    def source_current(self, ctx: RunContext) -> bool:
        if not ctx.config.repo_url:
            return False
        return self.c.source.is_current(self.source_ref(ctx.config))

    def _prepare_deploy_key(self, config: DeployConfig) -> None:
        url = config.repo_url
        key_path = config.ssh_key_path
        if is_http_url(url):
            logger.warning("SSH key selected but repo_url is HTTPS; the key is not used for HTTPS clones")

        key_existed = self.c.keys.key_exists(key_path)
        public_key = self.c.keys.ensure_key(key_path, config.ssh_key_comment)

        host = ssh_host_of(url)
        if host:
            self.c.keys.trust_host(host)

        probe = host == _GITHUB
        if key_existed and probe and self.c.keys.probe(host, key_path):
            return

        self.operator.show(
            "PUBLIC KEY (add it under repository settings → Deploy keys)",
            f"{public_key}\n\n"
            f"Title suggestion: {config.app_name}-deploy-key\n"
            "Tip: enable 'Allow write access' only if updates need to push tags/commits.",
        )
        if config.wait_for_key:
            self.operator.wait("Press ENTER after you add the deploy key...")

        if probe:
            self.c.keys.probe(host, key_path)
        else:
            logger.warning("Repo host %s is not github.com; skipping SSH test.", host or url)

    def fetch_source(self, ctx: RunContext) -> None:
        config = ctx.config
        if not config.repo_url:
            raise PrerequisiteMissing("repo_url is required to fetch the source")
        if config.use_ssh_key:
            self._prepare_deploy_key(config)
        outcome = self.c.source.clone_or_sync(self.source_ref(config))
        logger.info("Source %s at %s (%s)", outcome, config.app_dir, config.branch)

    def resolve_decision(self, ctx: RunContext) -> DecisionState:
        config = ctx.config

        def confirm() -> bool:
            logger.info("Frontend detected in '%s/'", config.client_dir)
            return self.operator.confirm(
                ENABLE_FRONTEND,
                f"Frontend detected in '{config.client_dir}/'. Enable frontend steps? "
                "(build frontend + nginx static + /api proxy)",
                default=True,
            )

        return frontend_decision.decide(config, confirm)

    # ------------------------------------------------------------------ #
    # 7. backend dependencies
    # ------------------------------------------------------------------ #

    def install_backend(self, ctx: RunContext) -> None:
        config = ctx.config
        backend = config.backend_path
        if not (backend / "package.json").is_file():
            offer = ctx.decision.mern_enabled and config.offer_express
            if offer and self.operator.confirm(
                SCAFFOLD_BACKEND,
                f"Backend package.json not found at {backend}. Scaffold a minimal Express backend now?",
                default=False,
            ):
                scaffold_express_backend(backend, self.c.dependencies)
            else:
                raise PrerequisiteMissing(f"No package.json found in backend path: {backend}")
        self.c.dependencies.ensure(backend)

    # ------------------------------------------------------------------ #
    # 8. frontend build
    # ------------------------------------------------------------------ #

    def frontend_enabled(self, ctx: RunContext) -> bool:
        return ctx.decision.mern_enabled

    def build_frontend(self, ctx: RunContext) -> None:
        config = ctx.config
        frontend = config.frontend_path
        if not frontend.is_dir():
            raise PrerequisiteMissing(f"Frontend dir not found: {frontend}")
        if not (frontend / "package.json").is_file():
            raise PrerequisiteMissing(f"No package.json found in frontend dir: {frontend}")
        self.c.dependencies.ensure(frontend)
        self.c.builder.build(frontend, config.build_output_path)

    # ------------------------------------------------------------------ #
    # 9. reverse-proxy site
    # ------------------------------------------------------------------ #

    def proxy_enabled(self, ctx: RunContext) -> bool:
        return ctx.config.enable_proxy

    def configure_proxy(self, ctx: RunContext) -> None:
        config = ctx.config
        mode = ctx.decision.frontend_mode
        if mode == FrontendMode.FRONTEND_ENABLED and not config.build_output_path.is_dir():
            raise PrerequisiteMissing(f"Frontend build dir missing: {config.build_output_path}")
        self.c.proxy.apply(render_site(config, mode))

    # ------------------------------------------------------------------ #
    # 10. backend process
    # ------------------------------------------------------------------ #

    def start_backend(self, ctx: RunContext) -> None:
        config = ctx.config
        backend = config.backend_path
        if not backend.is_dir():
            raise PrerequisiteMissing(f"Backend path not found: {backend}")
        env = {"PORT": str(config.server_port), "NODE_ENV": "production"}
        outcome = self.c.supervisor.start_or_restart(
            config.app_name,
            config.server_entry,
            env,
            cwd=backend,
            method=config.start_method,
        )
        logger.info("Backend %s %s", config.app_name, outcome)
        self.c.supervisor.persist(self.user, self.home)

    # ------------------------------------------------------------------ #

    def build(self) -> list[Step]:
        d = {definition.index: definition for definition in STEP_DEFINITIONS}

        def step(index: int, **kwargs) -> Step:
            return Step(index=index, name=d[index].name, guard_description=d[index].guard, **kwargs)

        return [
            step(1, action=self.refresh_environment),
            step(2, action=self.install_tools, guard=self.tools_installed),
            step(3, action=self.install_proxy_and_firewall, guard=self.proxy_and_firewall_active),
            step(4, action=self.install_runtime, guard=self.runtime_present),
            step(5, action=self.install_supervisor, guard=self.supervisor_present),
            step(6, action=self.fetch_source, guard=self.source_current, decide=self.resolve_decision),
            step(
                7,
                action=self.install_backend,
                guard=path_exists(lambda ctx: ctx.config.backend_path / "node_modules"),
                consumes_decision=True,
            ),
            step(
                8,
                action=self.build_frontend,
                guard=path_exists(lambda ctx: ctx.config.build_output_path),
                gate=self.frontend_enabled,
                gate_reason="frontend not enabled",
                consumes_decision=True,
            ),
            step(
                9,
                action=self.configure_proxy,
                gate=self.proxy_enabled,
                gate_reason="reverse proxy disabled",
                consumes_decision=True,
            ),
            step(10, action=self.start_backend),
        ]
