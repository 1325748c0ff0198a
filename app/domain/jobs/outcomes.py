"""
Step outcomes of a job update run

Only the schedule/status step is fatal. Every other step is recorded for
diagnosis and never changes the verdict.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from .schemas import UpdateJobResult

logger = logging.getLogger(__name__)


class Step(str, Enum):
    SCHEDULE_STATUS = "schedule_status"
    DISPATCH = "dispatch"
    NOTE = "note"
    LINE_ITEMS = "line_items"
    MIRROR = "mirror"


FATAL_STEPS = frozenset({Step.SCHEDULE_STATUS})


@dataclass(frozen=True)
class StepOutcome:
    step: Step
    fatal: bool
    error: Optional[str] = None
    detail: Optional[str] = None  # e.g. which line item

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, step: Step, detail: Optional[str] = None) -> "StepOutcome":
        return cls(step=step, fatal=step in FATAL_STEPS, detail=detail)

    @classmethod
    def failure(cls, step: Step, error: str, detail: Optional[str] = None) -> "StepOutcome":
        return cls(step=step, fatal=step in FATAL_STEPS, error=error, detail=detail)


def derive_result(outcomes: list[StepOutcome]) -> UpdateJobResult:
    """The request fails only when a fatal step failed; the first such error is reported"""
    for outcome in outcomes:
        if outcome.fatal and not outcome.ok:
            return UpdateJobResult(success=False, error=outcome.error)
    return UpdateJobResult(success=True)


@dataclass
class RunReport:
    organization_id: str
    remote_job_id: str
    outcomes: list[StepOutcome] = field(default_factory=list)

    def record(self, outcome: StepOutcome) -> StepOutcome:
        self.outcomes.append(outcome)
        label = f"{outcome.step.value}" + (f" ({outcome.detail})" if outcome.detail else "")
        if outcome.ok:
            logger.info(f"✅ HCP job {self.remote_job_id}: {label} succeeded")
        elif outcome.fatal:
            logger.error(f"❌ HCP job {self.remote_job_id}: {label} failed: {outcome.error}")
        else:
            logger.warning(
                f"⚠️ HCP job {self.remote_job_id}: {label} failed (non-fatal): {outcome.error}"
            )
        return outcome

    def failures(self, step: Optional[Step] = None) -> list[StepOutcome]:
        return [o for o in self.outcomes if not o.ok and (step is None or o.step == step)]

    def steps_run(self) -> list[Step]:
        seen: list[Step] = []
        for outcome in self.outcomes:
            if outcome.step not in seen:
                seen.append(outcome.step)
        return seen

    @property
    def result(self) -> UpdateJobResult:
        return derive_result(self.outcomes)
