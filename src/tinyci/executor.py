# executor.py
"""
Step execution.

A step executor is any callable `(Step, StepEnvironment) -> StepResult`.
The runner never spawns processes itself; it calls whichever executor the
run context selected for the job instance. `execute_step` is the default,
local one.
"""
from __future__ import annotations

import os
import shlex
import signal
import subprocess
import sys
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Dict, List, Optional

from . import settings
from .model import FailureCause, Step, StepOutcome, StepResult

LineCallback = Callable[[str], None]


@dataclass(frozen=True)
class StepEnvironment:
    """Where and with what environment a step runs."""
    cwd: Path
    env: Dict[str, str] = field(default_factory=dict)
    job: str = ""
    default_timeout: Optional[float] = None
    on_line: Optional[LineCallback] = None


StepExecutor = Callable[[Step, StepEnvironment], StepResult]


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _launch_failure(step: Step, started: datetime, message: str) -> StepResult:
    return StepResult(
        name=step.name,
        outcome=StepOutcome.FAILED,
        started_at=started,
        finished_at=_now(),
        cause=FailureCause.LAUNCH_ERROR,
        error=message,
    )


def _kill(proc: subprocess.Popen) -> None:
    # The shell may have spawned children holding our pipe open, so take
    # down the whole process group where we can.
    if sys.platform != "win32":
        try:
            os.killpg(proc.pid, signal.SIGKILL)
            return
        except (ProcessLookupError, PermissionError):
            pass
    proc.kill()


def _pump(stream, lines: List[str], on_line: Optional[LineCallback]) -> None:
    for raw in stream:
        line = raw.rstrip("\r\n")
        lines.append(line)
        if on_line is not None:
            on_line(line)
    stream.close()


def execute_step(step: Step, environment: StepEnvironment, *, command_prefix: str | None = None) -> StepResult:
    """
    Run one step to completion or timeout.

    stderr is redirected into stdout so the captured lines keep the order in
    which the process produced them. A step that cannot even be started
    (missing cwd, missing shell, permission denied) is reported as FAILED
    with cause LAUNCH_ERROR.
    """
    started = _now()

    cwd = (environment.cwd / step.cwd) if step.cwd else environment.cwd
    if not cwd.is_dir():
        return _launch_failure(step, started, f"working directory not found: {cwd}")

    env = dict(environment.env)
    env.update(step.env or {})

    command = step.run
    if command_prefix:
        command = f"{command_prefix} {shlex.quote(command)}"

    if step.shell:
        args: str | List[str] = [step.shell, "-c", command]
        use_shell = False
    else:
        args = command
        use_shell = True

    timeout = step.timeout
    if timeout is None:
        timeout = environment.default_timeout or settings.DEFAULT_STEP_TIMEOUT

    try:
        proc = subprocess.Popen(
            args,
            shell=use_shell,
            cwd=str(cwd),
            env=env,
            stdin=subprocess.DEVNULL,
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            text=True,
            errors="replace",
            bufsize=1,
            start_new_session=(sys.platform != "win32"),
        )
    except OSError as e:
        return _launch_failure(step, started, str(e))

    lines: List[str] = []
    reader = threading.Thread(target=_pump, args=(proc.stdout, lines, environment.on_line), daemon=True)
    reader.start()

    timed_out = False
    try:
        proc.wait(timeout=timeout)
    except subprocess.TimeoutExpired:
        timed_out = True
        _kill(proc)
        proc.wait()

    # orphaned grandchildren can keep the pipe open; don't wait on them forever
    reader.join(timeout=5)
    finished = _now()

    if timed_out:
        return StepResult(
            name=step.name,
            outcome=StepOutcome.TIMED_OUT,
            exit_code=proc.returncode,
            output=tuple(lines),
            started_at=started,
            finished_at=finished,
            cause=FailureCause.TIMEOUT,
            error=f"step exceeded timeout of {timeout:g}s",
        )

    if proc.returncode != 0:
        return StepResult(
            name=step.name,
            outcome=StepOutcome.FAILED,
            exit_code=proc.returncode,
            output=tuple(lines),
            started_at=started,
            finished_at=finished,
            cause=FailureCause.NON_ZERO_EXIT,
            error=f"command exited with code {proc.returncode}",
        )

    return StepResult(
        name=step.name,
        outcome=StepOutcome.SUCCEEDED,
        exit_code=0,
        output=tuple(lines),
        started_at=started,
        finished_at=finished,
    )


class ShellExecutor:
    """
    Executor backend that runs steps on the local host, optionally through a
    wrapper command (e.g. `ssh mac-builder` or `docker exec ci-win`), so one
    matrix value can be routed to a different machine.
    """

    def __init__(self, command_prefix: str | None = None):
        self.command_prefix = command_prefix

    def __call__(self, step: Step, environment: StepEnvironment) -> StepResult:
        return execute_step(step, environment, command_prefix=self.command_prefix)

    def __repr__(self) -> str:
        return f"ShellExecutor({self.command_prefix!r})"
