# runner.py
from __future__ import annotations

from pathlib import Path
from typing import Dict, List, Optional

from . import settings
from .context import RunContext
from .dag import schedule
from .errors import LaunchError
from .executor import StepEnvironment, StepExecutor
from .matrix import expand_pipeline
from .model import (
    FailureCause,
    JobInstance,
    JobOutcome,
    JobResult,
    Pipeline,
    PipelineResult,
    Step,
    StepOutcome,
    StepResult,
)
from .report import build_report
from .ui.console import get_console


# ----------------------------------------------------------------------
# Execution primitives
# ----------------------------------------------------------------------

def _run_step(executor: StepExecutor, step: Step, environment: StepEnvironment) -> StepResult:
    try:
        return executor(step, environment)
    except LaunchError as e:
        return StepResult(
            name=step.name,
            outcome=StepOutcome.FAILED,
            cause=FailureCause.LAUNCH_ERROR,
            error=e.message,
        )


def run_job(instance: JobInstance, ctx: RunContext) -> JobResult:
    """
    Run one job instance's steps strictly in order.

    The first step that does not succeed fails the job; every step after it
    is recorded as SKIPPED without being executed.
    """
    console = get_console()
    console.print_job_start(instance.id, instance.runs_on, instance.title)

    executor = ctx.executor_for(instance)
    environment = StepEnvironment(
        cwd=ctx.workdir_for(instance),
        env=ctx.env_for(instance),
        job=instance.id,
        default_timeout=ctx.default_timeout,
        on_line=lambda line: console.print_output_line(instance.id, line),
    )

    results: List[StepResult] = []
    failure: Optional[StepResult] = None

    for step in instance.steps:
        if failure is not None:
            results.append(StepResult.skipped(step.name))
            continue

        console.print_step(instance.id, step.name)
        result = _run_step(executor, step, environment)
        results.append(result)

        if result.outcome != StepOutcome.SUCCEEDED:
            failure = result
            tail = result.output[-settings.TAIL_LINES:] if settings.TAIL_LINES > 0 else ()
            console.print_step_failed(instance.id, result, tail=tail)

    job_result = JobResult(
        instance=instance,
        outcome=JobOutcome.FAILED if failure is not None else JobOutcome.SUCCEEDED,
        steps=tuple(results),
        reason=f"step '{failure.name}' {failure.outcome.value}" if failure is not None else None,
    )
    console.print_job_finished(job_result)
    return job_result


# ----------------------------------------------------------------------
# Public API
# ----------------------------------------------------------------------

def run_pipeline(
    pipeline: Pipeline,
    *,
    executor: Optional[StepExecutor] = None,
    backends: Optional[Dict[str, StepExecutor]] = None,
    backend_axis: Optional[str] = None,
    max_workers: Optional[int] = None,
    workspace: str | Path = ".",
    isolate: bool = False,
    default_timeout: Optional[float] = None,
) -> PipelineResult:
    """
    Public entry point for executing a CI pipeline.

    Expands matrices and validates the dependency graph first: a SpecError
    raised here means no step has run.
    """
    instances = expand_pipeline(pipeline)

    ctx = RunContext(
        pipeline=pipeline,
        instances=instances,
        workspace=Path(workspace).resolve(),
        max_workers=max_workers,
        backends=dict(backends or {}),
        backend_axis=backend_axis or settings.BACKEND_AXIS,
        isolate=isolate,
        default_timeout=default_timeout,
    )
    if executor is not None:
        ctx.executor = executor

    try:
        schedule(ctx, run_job)
    finally:
        ctx.close()

    return build_report(pipeline.name, instances, ctx.results)
