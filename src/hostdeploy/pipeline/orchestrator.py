"""Sequential, resumable execution of the deployment pipeline.

Semantics:
    - Steps run strictly by ascending index.
    - A step whose index is below the start offset is not guarded, not
      executed and has no side effect.
    - For every other step the gate is checked first, then the guard; a
      satisfied guard skips the action.
    - The first failing action halts the run. The raised
      :class:`StepFailure` names the step and the ``--from`` command that
      resumes at it.

Nothing about a run is persisted: resuming relies on the guards reading the
host and on the operator-supplied start offset.
"""

from __future__ import annotations

import logging
from typing import Iterable

from hostdeploy.core.config import DeployConfig
from hostdeploy.pipeline.errors import DeployError, StepFailure
from hostdeploy.pipeline.guards import evaluate_guard
from hostdeploy.pipeline.models import (
    RunContext,
    RunReport,
    Step,
    StepRecord,
    StepStatus,
)
from hostdeploy.pipeline.reporting import RunReporter

logger = logging.getLogger(__name__)

__all__ = ["Orchestrator", "validate_step_order"]


def validate_step_order(steps: list[Step]) -> None:
    """Ensure indices form the contiguous sequence 1..N and one step decides."""
    indices = [step.index for step in steps]
    expected = list(range(1, len(steps) + 1))
    if sorted(indices) != expected:
        raise ValueError(f"Step indices must be contiguous 1..{len(steps)}, got {indices}")

    deciders = [step.index for step in steps if step.produces_decision_state]
    if len(deciders) > 1:
        raise ValueError(f"Only one step may produce the decision state, got {deciders}")

    consumers = [step.index for step in steps if step.consumes_decision]
    if consumers and not deciders:
        raise ValueError(f"Steps {consumers} consume a decision no step produces")
    if consumers and min(consumers) < deciders[0]:
        raise ValueError(
            f"Step {min(consumers)} consumes the decision before step {deciders[0]} produces it"
        )


class Orchestrator:
    """Run an ordered list of steps against one configuration snapshot."""

    def __init__(
        self,
        steps: Iterable[Step],
        config: DeployConfig,
        reporter: RunReporter | None = None,
    ) -> None:
        ordered = sorted(steps, key=lambda step: step.index)
        validate_step_order(ordered)
        self.steps = ordered
        self.config = config
        self.reporter = reporter or RunReporter()

    @property
    def step_count(self) -> int:
        return len(self.steps)

    def _decider(self) -> Step | None:
        for step in self.steps:
            if step.produces_decision_state:
                return step
        return None

    def _record_decision(self, step: Step, ctx: RunContext, *, replayed: bool) -> None:
        decision = step.decide(ctx)
        ctx.record_decision(decision)
        logger.info(
            "Decision from step %d: frontend_mode=%s frontend_detected=%s",
            step.index,
            decision.frontend_mode,
            decision.frontend_detected,
        )
        self.reporter.decision(decision, replayed=replayed)

    def _replay_decision_if_needed(self, step: Step, ctx: RunContext) -> None:
        # The deciding step sits below the start offset, so resolve the branch
        # here, once, without repeating its fetch.
        if not step.consumes_decision or ctx.has_decision:
            return
        decider = self._decider()
        if decider is None or decider.index >= ctx.start_offset:
            return
        self._record_decision(decider, ctx, replayed=True)

    def _execute(self, step: Step, ctx: RunContext) -> StepRecord:
        self.reporter.started(step)
        self._replay_decision_if_needed(step, ctx)

        if step.gate is not None and not step.gate(ctx):
            self.reporter.gated(step)
            return StepRecord(step.index, step.name, StepStatus.GATED, step.gate_reason)

        satisfied, note = evaluate_guard(step.guard, ctx)
        if note:
            self.reporter.note(step, note)

        if satisfied:
            self.reporter.satisfied(step)
            status = StepStatus.SATISFIED
        else:
            step.action(ctx)
            status = StepStatus.EXECUTED

        if step.produces_decision_state:
            self._record_decision(step, ctx, replayed=False)

        if status is StepStatus.EXECUTED:
            self.reporter.completed(step)
        return StepRecord(step.index, step.name, status)

    def run(self, start_offset: int = 1) -> RunReport:
        """Execute every step with ``index >= start_offset``.

        Returns:
            RunReport describing each step.

        Raises:
            StepFailure: on the first failing step; later steps do not run.
            ValueError: if ``start_offset`` is outside ``1..N``.
        """
        if not 1 <= start_offset <= self.step_count:
            raise ValueError(f"Start offset must be between 1 and {self.step_count}, got {start_offset}")

        ctx = RunContext(config=self.config, start_offset=start_offset)
        report = RunReport(start_offset=start_offset)
        self.reporter.register(self.steps)

        for step in self.steps:
            if step.index < start_offset:
                self.reporter.below_offset(step, start_offset)
                report.add(StepRecord(step.index, step.name, StepStatus.BELOW_OFFSET))
                continue

            try:
                record = self._execute(step, ctx)
            except (DeployError, OSError) as exc:
                failure = StepFailure(step.index, step.name, exc)
                logger.error("Step %d (%s) failed: %s", step.index, step.name, exc)
                report.add(StepRecord(step.index, step.name, StepStatus.FAILED, str(exc)))
                report.decision = ctx.decision if ctx.has_decision else None
                self.reporter.failed(failure)
                failure.report = report
                raise failure from exc

            report.add(record)

        if ctx.has_decision:
            report.decision = ctx.decision
        return report
