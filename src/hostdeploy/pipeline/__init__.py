"""Resumable step pipeline: models, guards, decision and orchestration."""

from .decision import decide, detect_frontend, resolve_frontend
from .errors import (
    AmbiguousState,
    CollaboratorFailure,
    DeployError,
    PrerequisiteMissing,
    StepFailure,
    resume_command,
)
from .guards import all_of, evaluate_guard, path_exists
from .models import (
    DecisionState,
    FrontendMode,
    RunContext,
    RunReport,
    Step,
    StepRecord,
    StepStatus,
)
from .orchestrator import Orchestrator, validate_step_order

__all__ = [
    "AmbiguousState",
    "CollaboratorFailure",
    "DecisionState",
    "DeployError",
    "FrontendMode",
    "Orchestrator",
    "PrerequisiteMissing",
    "RunContext",
    "RunReport",
    "Step",
    "StepFailure",
    "StepRecord",
    "StepStatus",
    "all_of",
    "decide",
    "detect_frontend",
    "evaluate_guard",
    "path_exists",
    "resolve_frontend",
    "resume_command",
    "validate_step_order",
]
