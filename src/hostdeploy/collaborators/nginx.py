"""nginx site rendering and validated activation."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path

from hostdeploy.collaborators.shell import CommandRunner
from hostdeploy.collaborators.system import SystemdServiceManager
from hostdeploy.core.config import DeployConfig
from hostdeploy.core.constants import NGINX_SITES_AVAILABLE, NGINX_SITES_ENABLED
from hostdeploy.pipeline.errors import CollaboratorFailure
from hostdeploy.pipeline.models import FrontendMode

logger = logging.getLogger(__name__)

__all__ = ["NginxReverseProxy", "SiteConfig", "render_site"]

_PROXY_HEADERS = """\
    proxy_http_version 1.1;
    proxy_set_header Upgrade $http_upgrade;
    proxy_set_header Connection "upgrade";
    proxy_set_header Host $host;
    proxy_cache_bypass $http_upgrade;"""

_API_ONLY_TEMPLATE = """\
server {{
  listen 80;
  server_name {server_name};

  location / {{
    proxy_pass {upstream};
{headers}
  }}
}}
"""

_FRONTEND_TEMPLATE = """\
server {{
  listen 80;
  server_name {server_name};

  root {web_root};
  index index.html;

  location / {{
    try_files $uri /index.html;
  }}

  location /api/ {{
    proxy_pass {upstream}/;
{headers}
  }}
}}
"""


@dataclass(frozen=True)
class SiteConfig:
    name: str
    content: str


@dataclass(frozen=True)
class _EnabledState:
    """What ``apply`` may change, captured before it touches anything."""

    content: str | None
    link_existed: bool
    default_target: Path | None
    default_content: str | None


def render_site(config: DeployConfig, mode: FrontendMode) -> SiteConfig:
    """Render the site for the chosen branch.

    ``API_ONLY`` proxies everything to the backend; ``FRONTEND_ENABLED``
    serves the build output and proxies ``/api/``.
    """
    if mode == FrontendMode.FRONTEND_ENABLED:
        content = _FRONTEND_TEMPLATE.format(
            server_name=config.server_name,
            web_root=config.build_output_path,
            upstream=config.upstream,
            headers=_PROXY_HEADERS,
        )
    else:
        content = _API_ONLY_TEMPLATE.format(
            server_name=config.server_name,
            upstream=config.upstream,
            headers=_PROXY_HEADERS,
        )
    return SiteConfig(name=config.app_name, content=content)


class NginxReverseProxy:
    """Write, link, validate and only then reload an nginx site.

    If ``nginx -t`` rejects the candidate, the previous site file, its link
    and the ``default`` site link are restored and nginx is not reloaded.
    """

    name = "nginx"

    def __init__(
        self,
        runner: CommandRunner,
        services: SystemdServiceManager,
        sites_available: Path = Path(NGINX_SITES_AVAILABLE),
        sites_enabled: Path = Path(NGINX_SITES_ENABLED),
    ):
        self.runner = runner
        self.services = services
        self.sites_available = sites_available
        self.sites_enabled = sites_enabled

    # File operations go through sudo unless we can write directly.

    def _write(self, path: Path, content: str) -> None:
        if not self.runner.use_sudo:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(content, encoding="utf-8")
            return
        self.runner.check(
            ["tee", str(path)], collaborator=self.name, sudo=True, input=content
        )

    def _link(self, target: Path, link: Path) -> None:
        if not self.runner.use_sudo:
            link.parent.mkdir(parents=True, exist_ok=True)
            if link.is_symlink() or link.exists():
                link.unlink()
            link.symlink_to(target)
            return
        self.runner.check(["ln", "-sf", str(target), str(link)], collaborator=self.name, sudo=True)

    def _remove(self, path: Path) -> None:
        if not self.runner.use_sudo:
            path.unlink(missing_ok=True)
            return
        self.runner.check(["rm", "-f", str(path)], collaborator=self.name, sudo=True)

    def site_paths(self, site_name: str) -> tuple[Path, Path]:
        return self.sites_available / site_name, self.sites_enabled / site_name

    @property
    def default_link(self) -> Path:
        return self.sites_enabled / "default"

    def current_content(self, site_name: str) -> str | None:
        target, _ = self.site_paths(site_name)
        if not target.is_file():
            return None
        return self._read(target)

    def _read(self, path: Path) -> str:
        try:
            return path.read_text(encoding="utf-8")
        except UnicodeDecodeError as e:
            raise CollaboratorFailure(self.name, f"read {path}", 1, f"{path} is not valid UTF-8: {e}") from e

    def validate(self) -> None:
        self.runner.check(["nginx", "-t"], collaborator=self.name, sudo=True)

    def _snapshot(self, site_name: str) -> _EnabledState:
        _, link = self.site_paths(site_name)
        default = self.default_link
        default_target = default.readlink() if default.is_symlink() else None
        default_content = self._read(default) if default_target is None and default.is_file() else None
        return _EnabledState(
            content=self.current_content(site_name),
            link_existed=link.is_symlink() or link.exists(),
            default_target=default_target,
            default_content=default_content,
        )

    def _restore(self, target: Path, link: Path, state: _EnabledState) -> None:
        if state.content is None:
            self._remove(target)
        else:
            self._write(target, state.content)
        if not state.link_existed:
            self._remove(link)
        if state.default_target is not None:
            self._link(state.default_target, self.default_link)
        elif state.default_content is not None:
            self._write(self.default_link, state.default_content)

    def apply(self, site: SiteConfig) -> bool:
        """Install ``site`` and reload nginx after a successful ``nginx -t``.

        Returns:
            True when the site content changed.
        """
        target, link = self.site_paths(site.name)
        state = self._snapshot(site.name)

        try:
            self._write(target, site.content)
            self._link(target, link)
            self._remove(self.default_link)
            self.validate()
        except (CollaboratorFailure, OSError):
            logger.error("Applying the %s site failed; restoring previous state", site.name)
            self._restore(target, link, state)
            raise

        self.services.reload_or_restart(self.name)
        changed = state.content != site.content
        logger.info("nginx site %s applied (%s)", site.name, "changed" if changed else "unchanged")
        return changed
