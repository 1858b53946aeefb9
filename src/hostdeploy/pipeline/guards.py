"""Idempotency guards.

A guard answers "does the target state of this action already hold?" by
looking at the host directly: dpkg status, paths, resolvable binaries,
registered processes. Guards never consult in-memory flags, so a fresh
invocation after a crash or an explicit ``--from`` sees the same answer as
an uninterrupted run.

When a guard cannot decide it raises :class:`AmbiguousState` (or lets an
``OSError`` escape). :func:`evaluate_guard` turns both into "not satisfied"
so the action runs again: repeated work is acceptable, skipped work is not.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Callable, Iterable

from hostdeploy.pipeline.errors import AmbiguousState
from hostdeploy.pipeline.models import Predicate, RunContext

logger = logging.getLogger(__name__)

__all__ = [
    "all_of",
    "evaluate_guard",
    "path_exists",
]


def evaluate_guard(guard: Predicate | None, ctx: RunContext) -> tuple[bool, str]:
    """Evaluate a guard, failing open on ambiguity.

    Returns:
        ``(satisfied, note)``; ``note`` explains an ambiguous result.
    """
    if guard is None:
        return False, ""
    try:
        return bool(guard(ctx)), ""
    except AmbiguousState as exc:
        logger.warning("Guard undecided, re-running action: %s", exc)
        return False, f"state unclear ({exc}); re-running"
    except OSError as exc:
        logger.warning("Guard probe failed, re-running action: %s", exc)
        return False, f"probe failed ({exc}); re-running"


def path_exists(resolve: Callable[[RunContext], Path], *, kind: str = "dir") -> Predicate:
    """Guard satisfied when a path derived from the config exists."""

    def _check(ctx: RunContext) -> bool:
        path = resolve(ctx)
        if kind == "dir":
            return path.is_dir()
        return path.is_file()

    return _check


def all_of(checks: Iterable[Callable[[], bool]]) -> bool:
    """Evaluate every check (no short-circuit) so each one is logged."""
    results = [check() for check in checks]
    return all(results)
