"""Pytest configuration for tinyci tests."""

from __future__ import annotations

import threading
import time
from datetime import datetime, timezone
from typing import Dict, List, Tuple

import pytest

from tinyci.errors import LaunchError
from tinyci.executor import StepEnvironment
from tinyci.model import FailureCause, Job, Pipeline, Step, StepOutcome, StepResult
from tinyci.ui.console import Console, set_console


class FakeExecutor:
    """
    Deterministic stand-in for the shell executor.

    `script` maps (instance id, step name) to one of:
      - an int exit code
      - "timeout"  -> TIMED_OUT
      - "launch"   -> raises LaunchError
    Anything not scripted succeeds. Every call is recorded in `calls`.
    """

    def __init__(self, script: Dict[Tuple[str, str], object] | None = None, delay: float = 0.0):
        self.script = dict(script or {})
        self.delay = delay
        self.calls: List[Tuple[str, str]] = []
        self.envs: Dict[str, Dict[str, str]] = {}
        self._lock = threading.Lock()
        self._running = 0
        self.max_running = 0

    def ran(self, job_id: str) -> List[str]:
        return [step for jid, step in self.calls if jid == job_id]

    def __call__(self, step: Step, environment: StepEnvironment) -> StepResult:
        with self._lock:
            self.calls.append((environment.job, step.name))
            self.envs[environment.job] = dict(environment.env)
            self._running += 1
            self.max_running = max(self.max_running, self._running)
        try:
            started = datetime.now(timezone.utc)
            if self.delay:
                time.sleep(self.delay)
            action = self.script.get((environment.job, step.name), 0)
            finished = datetime.now(timezone.utc)
            if action == "launch":
                raise LaunchError(environment.job, step.name, "no such interpreter")
            if action == "timeout":
                return StepResult(
                    name=step.name,
                    outcome=StepOutcome.TIMED_OUT,
                    started_at=started,
                    finished_at=finished,
                    cause=FailureCause.TIMEOUT,
                )
            code = int(action)  # type: ignore[arg-type]
            return StepResult(
                name=step.name,
                outcome=StepOutcome.SUCCEEDED if code == 0 else StepOutcome.FAILED,
                exit_code=code,
                output=(f"ran {step.run}",),
                started_at=started,
                finished_at=finished,
                cause=None if code == 0 else FailureCause.NON_ZERO_EXIT,
            )
        finally:
            with self._lock:
                self._running -= 1


@pytest.fixture(autouse=True)
def quiet_console():
    """Fresh console per test so debug/stream flags never leak."""
    set_console(Console())
    yield
    set_console(None)


@pytest.fixture
def fake_executor():
    return FakeExecutor()


@pytest.fixture
def ci_pipeline() -> Pipeline:
    """fmt, build x3 OS, test x3 OS needing build."""
    oses = ["ubuntu", "macOS", "windows"]
    return Pipeline(
        name="CI",
        jobs=[
            Job(name="fmt", steps=[Step("Cargo fmt", "cargo fmt --all -- --check")]),
            Job(
                name="build",
                steps=[Step("Install", "rustup default stable"), Step("Build", "cargo build --all")],
                matrix={"os": list(oses)},
            ),
            Job(
                name="test",
                steps=[Step("Install", "rustup default stable"), Step("Test", "cargo test --all")],
                matrix={"os": list(oses)},
                needs=["build"],
            ),
        ],
    )
