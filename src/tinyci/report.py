# report.py
from __future__ import annotations

from typing import Any, Dict, Iterable, List, Mapping

from .model import (
    JobInstance,
    JobOutcome,
    JobResult,
    PipelineResult,
    StepOutcome,
    Verdict,
)

_JOB_MARK = {
    JobOutcome.SUCCEEDED: "✓",
    JobOutcome.FAILED: "✗",
    JobOutcome.CANCELLED: "⊘",
}

_STEP_MARK = {
    StepOutcome.SUCCEEDED: "✓",
    StepOutcome.FAILED: "✗",
    StepOutcome.TIMED_OUT: "⏱",
    StepOutcome.SKIPPED: "⏭",
}


def verdict_of(instances: Iterable[JobInstance], results: Mapping[str, JobResult]) -> Verdict:
    """
    FAILURE if any instance failed, was cancelled, or never reached a
    terminal outcome. A graph that did not run to completion cannot be
    called successful.
    """
    for inst in instances:
        r = results.get(inst.id)
        if r is None or r.outcome != JobOutcome.SUCCEEDED:
            return Verdict.FAILURE
    return Verdict.SUCCESS


def build_report(
    pipeline: str,
    instances: Iterable[JobInstance],
    results: Mapping[str, JobResult],
) -> PipelineResult:
    """
    Aggregate job results into the final PipelineResult.

    Results are ordered by instance expansion order, never by arrival order,
    so the same set of results always gives the same report.
    """
    ordered = sorted(instances, key=lambda i: i.index)
    by_id: Dict[str, JobResult] = {}
    for inst in ordered:
        if inst.id in results:
            by_id[inst.id] = results[inst.id]
    return PipelineResult(
        pipeline=pipeline,
        results=by_id,
        verdict=verdict_of(ordered, results),
    )


def render_tree(result: PipelineResult) -> List[str]:
    """Per-job / per-step status tree, plus a summary line."""
    lines: List[str] = []
    for job_id, jr in result.results.items():
        label = f"{job_id} [{jr.instance.title}]" if jr.instance.title else job_id
        header = f"{_JOB_MARK[jr.outcome]} {label}: {jr.outcome.value.upper()}"
        if jr.reason and jr.outcome != JobOutcome.SUCCEEDED:
            header += f" ({jr.reason})"
        lines.append(header)
        for sr in jr.steps:
            line = f"    {_STEP_MARK[sr.outcome]} {sr.name}: {sr.outcome.value}"
            extras = []
            if sr.exit_code is not None and sr.outcome != StepOutcome.SUCCEEDED:
                extras.append(f"exit={sr.exit_code}")
            if sr.cause is not None:
                extras.append(sr.cause.value)
            if sr.duration is not None:
                extras.append(f"{sr.duration:.1f}s")
            if extras:
                line += f" [{', '.join(extras)}]"
            lines.append(line)

    counts = {o: len(result.by_outcome(o)) for o in JobOutcome}
    lines.append("")
    lines.append(
        f"{counts[JobOutcome.SUCCEEDED]} succeeded, "
        f"{counts[JobOutcome.FAILED]} failed, "
        f"{counts[JobOutcome.CANCELLED]} cancelled"
    )
    return lines


def to_dict(result: PipelineResult) -> Dict[str, Any]:
    """Plain, JSON-serialisable view of a PipelineResult."""
    jobs = []
    for job_id, jr in result.results.items():
        jobs.append({
            "id": job_id,
            "job": jr.instance.job,
            "title": jr.instance.title,
            "matrix": jr.instance.matrix,
            "outcome": jr.outcome.value,
            "reason": jr.reason,
            "steps": [
                {
                    "name": sr.name,
                    "outcome": sr.outcome.value,
                    "exit_code": sr.exit_code,
                    "cause": sr.cause.value if sr.cause else None,
                    "error": sr.error,
                    "duration": sr.duration,
                    "output": list(sr.output),
                }
                for sr in jr.steps
            ],
        })
    return {
        "pipeline": result.pipeline,
        "verdict": result.verdict.value,
        "jobs": jobs,
    }
