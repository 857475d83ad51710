"""Explicit results of the crash-recovery pipeline."""

from enum import Enum

from pydantic import BaseModel, Field


class StepStatus(str, Enum):
    SUCCEEDED = "succeeded"
    FAILED_CONTINUE = "failed_continue"
    SKIPPED = "skipped"


class RecoveryStep(BaseModel):
    """Outcome of one recovery action."""

    name: str
    status: StepStatus
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.status == StepStatus.SUCCEEDED


class RecoveryReport(BaseModel):
    """Outcome of all recovery actions after an unexpected failure."""

    cause: str
    steps: list[RecoveryStep] = Field(default_factory=list)

    def add(self, step: RecoveryStep) -> RecoveryStep:
        self.steps.append(step)
        return step

    def step(self, name: str) -> RecoveryStep | None:
        return next((s for s in self.steps if s.name == name), None)

    @property
    def fully_recovered(self) -> bool:
        return all(s.status != StepStatus.FAILED_CONTINUE for s in self.steps)
