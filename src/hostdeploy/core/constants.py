"""Shared constants for hostdeploy."""

from __future__ import annotations

PROGRAM_NAME = "hostdeploy"

CONFIG_ENV_VAR = "HOSTDEPLOY_CONFIG"
CONFIG_FILENAME = "deploy.yaml"

# Packages installed by step 2, in install order.
PREREQUISITE_PACKAGES: tuple[str, ...] = (
    "git",
    "curl",
    "build-essential",
    "openssh-client",
)

PROXY_PACKAGE = "nginx"
FIREWALL_PACKAGE = "ufw"

NVM_VERSION = "v0.39.7"
NVM_INSTALL_URL = f"https://raw.githubusercontent.com/nvm-sh/nvm/{NVM_VERSION}/install.sh"

# Dependency names that mark a package.json as a buildable web frontend.
FRONTEND_MARKERS: tuple[str, ...] = (
    "react",
    "react-dom",
    "react-scripts",
    "vite",
    "@vitejs/plugin-react",
    "next",
)

NGINX_SITES_AVAILABLE = "/etc/nginx/sites-available"
NGINX_SITES_ENABLED = "/etc/nginx/sites-enabled"

__all__ = [
    "CONFIG_ENV_VAR",
    "CONFIG_FILENAME",
    "FIREWALL_PACKAGE",
    "FRONTEND_MARKERS",
    "NGINX_SITES_AVAILABLE",
    "NGINX_SITES_ENABLED",
    "NVM_INSTALL_URL",
    "NVM_VERSION",
    "PREREQUISITE_PACKAGES",
    "PROGRAM_NAME",
    "PROXY_PACKAGE",
]
