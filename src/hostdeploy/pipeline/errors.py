"""Error taxonomy for the deployment pipeline.

Steps raise :class:`DeployError` subclasses; the orchestrator wraps the first
one it sees in a :class:`StepFailure` and halts the run. A negative operator
confirmation is not an error and has no exception type: it simply drives the
decision resolver down its ``False`` branch.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from hostdeploy.core.constants import PROGRAM_NAME

if TYPE_CHECKING:
    from hostdeploy.pipeline.models import RunReport

__all__ = [
    "AmbiguousState",
    "CollaboratorFailure",
    "DeployError",
    "PrerequisiteMissing",
    "StepFailure",
    "resume_command",
]


class DeployError(RuntimeError):
    """Base class for failures raised inside a step."""


class PrerequisiteMissing(DeployError):
    """A required input or path is absent at the point of use."""


class CollaboratorFailure(DeployError):
    """An external tool returned non-success.

    The collaborator's own diagnostic is kept verbatim so the operator sees
    exactly what apt, git, nginx or pm2 printed.
    """

    def __init__(
        self,
        collaborator: str,
        command: str,
        returncode: int,
        diagnostic: str = "",
    ) -> None:
        self.collaborator = collaborator
        self.command = command
        self.returncode = returncode
        self.diagnostic = diagnostic
        message = f"{collaborator}: `{command}` exited with {returncode}"
        if diagnostic.strip():
            message = f"{message}\n{diagnostic.rstrip()}"
        super().__init__(message)


class AmbiguousState(DeployError):
    """A guard could not tell whether its target state holds."""


def resume_command(index: int) -> str:
    return f"{PROGRAM_NAME} --from {index}"


class StepFailure(Exception):
    """Raised by the orchestrator when a step action fails."""

    def __init__(self, index: int, name: str, cause: BaseException) -> None:
        self.index = index
        self.name = name
        self.cause = cause
        # Filled in by the orchestrator with the partial run report.
        self.report: RunReport | None = None
        super().__init__(f"Step {index} ({name}) failed: {cause}")

    @property
    def resume_offset(self) -> int:
        return self.index

    @property
    def resume_command(self) -> str:
        return resume_command(self.index)

    def to_dict(self) -> dict[str, object]:
        return {
            "step": self.index,
            "name": self.name,
            "error": str(self.cause),
            "error_type": type(self.cause).__name__,
            "resume": self.resume_command,
        }
