"""Data structures shared by the orchestrator and the step pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from typing import Callable

from hostdeploy.core.config import DeployConfig

__all__ = [
    "DecisionState",
    "FrontendMode",
    "RunContext",
    "RunReport",
    "Step",
    "StepRecord",
    "StepStatus",
]


class FrontendMode(StrEnum):
    """Outcome of the frontend decision, threaded through steps 8 and 9."""

    API_ONLY = "api-only"
    FRONTEND_ENABLED = "frontend-enabled"


@dataclass(frozen=True)
class DecisionState:
    """Write-once result of the decision resolver for the current run."""

    frontend_detected: bool
    frontend_mode: FrontendMode

    @property
    def mern_enabled(self) -> bool:
        return self.frontend_mode is FrontendMode.FRONTEND_ENABLED

    @classmethod
    def from_resolution(cls, frontend_detected: bool, enabled: bool) -> "DecisionState":
        mode = FrontendMode.FRONTEND_ENABLED if enabled else FrontendMode.API_ONLY
        return cls(frontend_detected=frontend_detected, frontend_mode=mode)


@dataclass
class RunContext:
    """State owned by the orchestrator for one invocation.

    Nothing here is persisted; a resumed run rebuilds it from the start offset
    and from whatever the guards observe on the host.
    """

    config: DeployConfig
    start_offset: int = 1
    _decision: DecisionState | None = field(default=None, repr=False)

    @property
    def has_decision(self) -> bool:
        return self._decision is not None

    @property
    def decision(self) -> DecisionState:
        if self._decision is None:
            raise RuntimeError("Frontend decision read before it was resolved")
        return self._decision

    def record_decision(self, decision: DecisionState) -> None:
        if self._decision is not None:
            raise RuntimeError("Frontend decision already resolved for this run")
        self._decision = decision


Action = Callable[[RunContext], None]
Predicate = Callable[[RunContext], bool]
DecisionHook = Callable[[RunContext], DecisionState]


@dataclass(frozen=True)
class Step:
    """One numbered unit of the deployment pipeline.

    Attributes:
        index: Position in the fixed total order (1..N).
        name: Short human-readable name.
        action: Performs the work; raises ``DeployError`` on failure.
        guard: Returns True when the action's target state already holds.
        gate: Returns False when the step does not apply to this run
            (frontend branch, proxy toggle). Evaluated before the guard.
        decide: Produces the run's ``DecisionState``; set on exactly one step.
        consumes_decision: The gate or action reads ``ctx.decision``.
        guard_description: Shown by ``--steps``.
        gate_reason: Logged when the gate closes.
    """

    index: int
    name: str
    action: Action
    guard: Predicate | None = None
    gate: Predicate | None = None
    decide: DecisionHook | None = None
    consumes_decision: bool = False
    guard_description: str = "none (always re-runs)"
    gate_reason: str = ""

    @property
    def produces_decision_state(self) -> bool:
        return self.decide is not None


class StepStatus(StrEnum):
    EXECUTED = "executed"
    SATISFIED = "satisfied"
    BELOW_OFFSET = "below-offset"
    GATED = "gated"
    FAILED = "failed"


@dataclass(frozen=True)
class StepRecord:
    index: int
    name: str
    status: StepStatus
    detail: str = ""


@dataclass
class RunReport:
    """Ordered record of what happened to each step in one run."""

    start_offset: int
    records: list[StepRecord] = field(default_factory=list)
    decision: DecisionState | None = None

    def add(self, record: StepRecord) -> None:
        self.records.append(record)

    def indices_with(self, *statuses: StepStatus) -> list[int]:
        return [r.index for r in self.records if r.status in statuses]

    @property
    def executed(self) -> list[int]:
        return self.indices_with(StepStatus.EXECUTED)

    @property
    def attempted(self) -> list[int]:
        """Indices at or above the start offset, in the order they were visited."""
        return [r.index for r in self.records if r.status is not StepStatus.BELOW_OFFSET]

    @property
    def succeeded(self) -> bool:
        return not self.indices_with(StepStatus.FAILED)
