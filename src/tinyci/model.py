# model.py
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional, Tuple, Union

MatrixValue = Union[str, int, float, bool]


# ----------------------------------------------------------------------
# Pipeline description (parsed once, read-only for the run)
# ----------------------------------------------------------------------

@dataclass(frozen=True)
class Step:
    """A single command (step) inside a CI job."""
    name: str
    run: str
    cwd: str | None = None
    timeout: float | None = None  # seconds; None -> settings.DEFAULT_STEP_TIMEOUT
    env: Dict[str, str] = field(default_factory=dict)
    shell: str | None = None      # None -> platform default shell


@dataclass
class Job:
    """
    A CI job: ordered steps, optional build matrix and the names of the jobs
    that must finish before it.
    """
    name: str
    steps: list[Step]
    needs: list[str] = field(default_factory=list)
    # axis name -> ordered values; insertion order is the axis order
    matrix: Dict[str, List[MatrixValue]] = field(default_factory=dict)
    env: Dict[str, str] = field(default_factory=dict)
    title: Optional[str] = None
    runs_on: Optional[str] = None

    @property
    def display_name(self) -> str:
        return self.title or self.name


@dataclass
class Pipeline:
    name: str
    jobs: list[Job]
    env: Dict[str, str] = field(default_factory=dict)
    # opaque: evaluated by whoever decides to invoke the runner
    triggers: Dict[str, object] = field(default_factory=dict)

    def job(self, name: str) -> Job:
        for j in self.jobs:
            if j.name == name:
                return j
        raise KeyError(name)


# ----------------------------------------------------------------------
# Expanded instances
# ----------------------------------------------------------------------

Assignment = Tuple[Tuple[str, MatrixValue], ...]


def format_value(value: MatrixValue) -> str:
    # YAML booleans should read the way they were written
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


@dataclass(frozen=True)
class JobInstance:
    """
    One concrete, matrix-bound execution of a job.

    `steps`, `env` and `runs_on` already have ${{ matrix.* }} references
    substituted for this instance's assignment.
    """
    job: str
    assignment: Assignment
    steps: Tuple[Step, ...]
    index: int = 0
    env: Tuple[Tuple[str, str], ...] = ()
    runs_on: Optional[str] = None
    title: Optional[str] = None

    @property
    def key(self) -> Tuple[str, Assignment]:
        return (self.job, self.assignment)

    @property
    def id(self) -> str:
        if not self.assignment:
            return self.job
        values = ", ".join(f"{k}={format_value(v)}" for k, v in self.assignment)
        return f"{self.job} ({values})"

    @property
    def matrix(self) -> Dict[str, MatrixValue]:
        return dict(self.assignment)

    @property
    def slug(self) -> str:
        """Filesystem-safe identifier, used for per-instance work dirs."""
        parts = [self.job] + [f"{k}-{format_value(v)}" for k, v in self.assignment]
        raw = "_".join(parts)
        return "".join(c if c.isalnum() or c in "-_." else "-" for c in raw)


# ----------------------------------------------------------------------
# Results (immutable once written)
# ----------------------------------------------------------------------

class StepOutcome(str, Enum):
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    TIMED_OUT = "timed_out"
    SKIPPED = "skipped"


class FailureCause(str, Enum):
    NON_ZERO_EXIT = "non_zero_exit"
    LAUNCH_ERROR = "launch_error"
    TIMEOUT = "timeout"


class JobOutcome(str, Enum):
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELLED = "cancelled"


class Verdict(str, Enum):
    SUCCESS = "success"
    FAILURE = "failure"


@dataclass(frozen=True)
class StepResult:
    name: str
    outcome: StepOutcome
    exit_code: Optional[int] = None
    output: Tuple[str, ...] = ()
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None
    cause: Optional[FailureCause] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.outcome == StepOutcome.SUCCEEDED

    @property
    def duration(self) -> Optional[float]:
        if self.started_at is None or self.finished_at is None:
            return None
        return (self.finished_at - self.started_at).total_seconds()

    @classmethod
    def skipped(cls, name: str) -> StepResult:
        return cls(name=name, outcome=StepOutcome.SKIPPED)


@dataclass(frozen=True)
class JobResult:
    instance: JobInstance
    outcome: JobOutcome
    steps: Tuple[StepResult, ...] = ()
    reason: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.outcome == JobOutcome.SUCCEEDED

    @property
    def failed_step(self) -> Optional[StepResult]:
        for s in self.steps:
            if s.outcome in (StepOutcome.FAILED, StepOutcome.TIMED_OUT):
                return s
        return None


@dataclass(frozen=True)
class PipelineResult:
    """Final result of a run: one JobResult per instance, in expansion order."""
    pipeline: str
    results: Dict[str, JobResult]
    verdict: Verdict

    @property
    def ok(self) -> bool:
        return self.verdict == Verdict.SUCCESS

    def by_outcome(self, outcome: JobOutcome) -> List[JobResult]:
        return [r for r in self.results.values() if r.outcome == outcome]
