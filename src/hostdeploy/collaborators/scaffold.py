"""Minimal Express backend for repositories that ship only a frontend."""

from __future__ import annotations

import json
import logging
from pathlib import Path

from hostdeploy.collaborators.node import NpmDependencyInstaller
from hostdeploy.pipeline.errors import PrerequisiteMissing

logger = logging.getLogger(__name__)

__all__ = ["EXPRESS_ENTRY", "scaffold_express_backend"]

EXPRESS_ENTRY = """\
const express = require('express');
const app = express();

app.use(express.json());
app.get('/api/health', (req, res) => res.json({ ok: true }));

const port = process.env.PORT || 5000;
app.listen(port, () => console.log(`API listening on ${port}`));
"""


def _ensure_manifest(backend_path: Path) -> Path:
    manifest = backend_path / "package.json"
    if manifest.is_file():
        try:
            data = json.loads(manifest.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise PrerequisiteMissing(f"Cannot parse {manifest}: {e}") from e
        if not isinstance(data, dict):
            raise PrerequisiteMissing(f"{manifest} does not hold a JSON object")
    else:
        data = {
            "name": backend_path.name or "server",
            "version": "1.0.0",
            "private": True,
            "main": "index.js",
        }
    scripts = data.setdefault("scripts", {})
    scripts.setdefault("start", "node index.js")
    manifest.write_text(json.dumps(data, indent=2) + "\n", encoding="utf-8")
    return manifest


def scaffold_express_backend(backend_path: Path, npm: NpmDependencyInstaller) -> None:
    """Create ``package.json`` and ``index.js`` and install express.

    Existing files are kept; only a missing ``start`` script is added.
    """
    backend_path.mkdir(parents=True, exist_ok=True)
    _ensure_manifest(backend_path)

    entry = backend_path / "index.js"
    if entry.exists():
        logger.info("index.js exists; not overwriting.")
    else:
        entry.write_text(EXPRESS_ENTRY, encoding="utf-8")
        logger.info("Created minimal Express server at %s", entry)

    npm.add(backend_path, "express")
