# errors.py
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Optional


@dataclass(eq=False)
class CIError(Exception):
    """
    Structured CI error with enough context for:
      - clean CLI output
      - debugging without full tracebacks
    """
    kind: str
    job: str
    step: Optional[str]
    message: str
    details: Dict[str, Any] = field(default_factory=dict)

    def __str__(self) -> str:
        lines = [f"{self.kind}: {self.message}", f"job={self.job}"]
        if self.step:
            lines.append(f"step={self.step}")
        for k, v in self.details.items():
            lines.append(f"{k}={v}")
        return "\n".join(lines)


# ----------------------------------------------------------------------
# Configuration errors: raised before any step runs
# ----------------------------------------------------------------------

class SpecError(CIError):
    """The pipeline description cannot be executed. Nothing has run."""

    def __init__(self, message: str, *, job: str = "<pipeline>", details: Optional[Dict[str, Any]] = None):
        super().__init__(
            kind=type(self).__name__,
            job=job,
            step=None,
            message=message,
            details=details or {},
        )


class ParseError(SpecError):
    pass


class InvalidMatrix(SpecError):
    pass


class UnknownDependency(SpecError):
    pass


class CyclicDependency(SpecError):
    pass


# ----------------------------------------------------------------------
# Execution errors
# ----------------------------------------------------------------------

class LaunchError(CIError):
    """A step's command could not be started at all."""

    def __init__(self, job: str, step: str, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(
            kind="LaunchError",
            job=job,
            step=step,
            message=message,
            details=details or {},
        )
