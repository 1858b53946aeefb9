"""Operator interaction: confirmations, pauses and information panels.

Steps never prompt directly. They go through an :class:`Operator`, which is
either the terminal (:class:`InteractiveOperator`) or a set of pre-supplied
answers (:class:`PresetOperator`) when running unattended.
"""

from __future__ import annotations

import logging
import os
import sys
from typing import Mapping, Protocol

import typer
from rich.console import Console
from rich.panel import Panel

logger = logging.getLogger(__name__)

__all__ = [
    "ENABLE_FRONTEND",
    "InteractiveOperator",
    "Operator",
    "PresetOperator",
    "SCAFFOLD_BACKEND",
    "is_interactive",
]

# Question keys, also used under ``answers:`` in the answers file.
ENABLE_FRONTEND = "enable_frontend"
SCAFFOLD_BACKEND = "scaffold_backend"

_CI_ENV_VARS = [
    "CI",
    "GITHUB_ACTIONS",
    "JENKINS_HOME",
    "GITLAB_CI",
    "CIRCLECI",
    "TRAVIS",
    "BUILDKITE",
]


def is_interactive() -> bool:
    """Detect if running in an interactive terminal.

    Returns:
        False when stdin is not a TTY or a CI environment variable is set.
    """
    if not sys.stdin.isatty():
        return False

    for var in _CI_ENV_VARS:
        if os.getenv(var):
            return False

    return True


class Operator(Protocol):
    def confirm(self, key: str, question: str, default: bool = True) -> bool: ...

    def wait(self, message: str) -> None: ...

    def show(self, title: str, body: str) -> None: ...


class InteractiveOperator:
    """Blocking prompts on the controlling terminal."""

    def __init__(self, console: Console | None = None):
        self.console = console or Console()

    def confirm(self, key: str, question: str, default: bool = True) -> bool:
        answer = typer.confirm(question, default=default)
        logger.info("Operator answered %s=%s", key, answer)
        return answer

    def wait(self, message: str) -> None:
        typer.prompt(message, default="", show_default=False, prompt_suffix=" ")

    def show(self, title: str, body: str) -> None:
        self.console.print()
        self.console.print(Panel(body, title=title, border_style="cyan"))


class PresetOperator:
    """Answers questions from a mapping; unanswered questions take their default."""

    def __init__(self, answers: Mapping[str, bool] | None = None, console: Console | None = None):
        self.answers = dict(answers or {})
        self.console = console or Console()
        self.asked: list[str] = []

    def confirm(self, key: str, question: str, default: bool = True) -> bool:
        self.asked.append(key)
        answer = self.answers.get(key, default)
        logger.info("Non-interactive answer %s=%s (%s)", key, answer, question)
        return answer

    def wait(self, message: str) -> None:
        logger.info("Non-interactive mode: not waiting (%s)", message)

    def show(self, title: str, body: str) -> None:
        self.console.print(Panel(body, title=title, border_style="cyan"))
