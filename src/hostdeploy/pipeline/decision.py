"""Frontend detection and the frontend/backend-only decision.

``resolve_frontend`` is pure apart from the ``confirm`` callable it may
invoke; ``decide`` combines it with the manifest probe and is called once per
run, its result cached in :class:`~hostdeploy.pipeline.models.RunContext`.
"""

from __future__ import annotations

import json
import logging
import re
from pathlib import Path
from typing import Callable, Iterable

from hostdeploy.core.config import AppMode, DeployConfig
from hostdeploy.core.constants import FRONTEND_MARKERS
from hostdeploy.pipeline.models import DecisionState

logger = logging.getLogger(__name__)

__all__ = [
    "MANIFEST_NAME",
    "decide",
    "detect_frontend",
    "resolve_frontend",
]

MANIFEST_NAME = "package.json"

_DEPENDENCY_SECTIONS = ("dependencies", "devDependencies", "peerDependencies")


def resolve_frontend(
    mode: AppMode,
    frontend_detected: bool,
    confirm: Callable[[], bool],
) -> bool:
    """Decide whether the frontend branch is enabled.

    ``confirm`` is only invoked in auto mode when a frontend was detected.
    """
    if mode == AppMode.FRONTEND_ENABLED:
        return True
    if mode == AppMode.API_ONLY:
        return False
    if not frontend_detected:
        return False
    return bool(confirm())


def _declared_dependencies(manifest: dict) -> set[str]:
    names: set[str] = set()
    for section in _DEPENDENCY_SECTIONS:
        deps = manifest.get(section)
        if isinstance(deps, dict):
            names.update(str(name) for name in deps)
    return names


def _textual_marker_scan(text: str, markers: Iterable[str]) -> bool:
    for marker in markers:
        if re.search(rf'"{re.escape(marker)}"\s*:', text):
            return True
    return False


def detect_frontend(
    manifest_path: Path,
    markers: Iterable[str] = FRONTEND_MARKERS,
) -> bool:
    """Return True iff the manifest declares a known frontend framework.

    A missing manifest is a clean ``False``. A manifest that is not valid JSON
    is scanned textually for ``"<marker>":`` keys instead.
    """
    markers = tuple(markers)
    if not manifest_path.is_file():
        logger.debug("No frontend manifest at %s", manifest_path)
        return False

    text = manifest_path.read_text(encoding="utf-8", errors="replace")
    try:
        manifest = json.loads(text)
    except json.JSONDecodeError as exc:
        logger.warning("Unparseable %s (%s); falling back to text scan", manifest_path, exc)
        return _textual_marker_scan(text, markers)

    if not isinstance(manifest, dict):
        return False

    found = sorted(_declared_dependencies(manifest).intersection(markers))
    if found:
        logger.info("Frontend markers in %s: %s", manifest_path, ", ".join(found))
        return True
    return False


def decide(config: DeployConfig, confirm: Callable[[], bool]) -> DecisionState:
    """Probe the working copy and resolve the frontend branch."""
    detected = detect_frontend(config.frontend_path / MANIFEST_NAME)
    enabled = resolve_frontend(config.mode, detected, confirm)
    return DecisionState.from_resolution(detected, enabled)
