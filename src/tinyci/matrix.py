# matrix.py
from __future__ import annotations

import itertools
import re
from dataclasses import replace
from typing import Dict, List, Mapping, Optional

from .errors import InvalidMatrix
from .model import Assignment, Job, JobInstance, MatrixValue, Pipeline, Step, format_value

_MATRIX_REF = re.compile(r"\$\{\{\s*matrix\.([A-Za-z0-9_-]+)\s*\}\}")
_SCALARS = (str, int, float, bool)


def _validate_axes(job: Job) -> None:
    for axis, values in (job.matrix or {}).items():
        if not isinstance(values, (list, tuple)):
            raise InvalidMatrix(
                f"Matrix axis '{axis}' must be a list of values",
                job=job.name,
                details={"axis": axis, "got": type(values).__name__},
            )
        if len(values) == 0:
            raise InvalidMatrix(
                f"Matrix axis '{axis}' has no values",
                job=job.name,
                details={"axis": axis},
            )
        seen: Dict[str, MatrixValue] = {}
        for v in values:
            if not isinstance(v, _SCALARS):
                raise InvalidMatrix(
                    f"Matrix axis '{axis}' has a non-scalar value: {v!r}",
                    job=job.name,
                    details={"axis": axis},
                )
            # 3 and "3" would run the same variant under the same name
            rendered = format_value(v)
            if rendered in seen:
                raise InvalidMatrix(
                    f"Matrix axis '{axis}' repeats the value {rendered!r}",
                    job=job.name,
                    details={"axis": axis, "values": [seen[rendered], v]},
                )
            seen[rendered] = v


def interpolate(text: Optional[str], values: Mapping[str, MatrixValue], *, job: str) -> Optional[str]:
    """Substitute ${{ matrix.<axis> }} references in `text`."""
    if text is None:
        return None

    def _sub(m: re.Match) -> str:
        axis = m.group(1)
        if axis not in values:
            raise InvalidMatrix(
                f"Reference to unknown matrix axis '{axis}'",
                job=job,
                details={"text": text, "axes": sorted(values)},
            )
        return format_value(values[axis])

    return _MATRIX_REF.sub(_sub, text)


def _bind_step(step: Step, values: Mapping[str, MatrixValue], job: str) -> Step:
    return replace(
        step,
        name=interpolate(step.name, values, job=job),
        run=interpolate(step.run, values, job=job),
        cwd=interpolate(step.cwd, values, job=job),
        env={k: interpolate(v, values, job=job) for k, v in step.env.items()},
    )


def expand_job(job: Job, *, start: int = 0) -> List[JobInstance]:
    """
    Expand a job into its concrete instances.

    The Cartesian product iterates the last-declared axis fastest, so
    matrix {os: [a, b], py: [1, 2]} gives (a,1), (a,2), (b,1), (b,2).
    A job without a matrix expands to exactly one instance with an
    empty assignment.
    """
    _validate_axes(job)

    axes = list((job.matrix or {}).keys())
    value_lists = [list(job.matrix[a]) for a in axes]

    instances: List[JobInstance] = []
    for offset, combo in enumerate(itertools.product(*value_lists)):
        assignment: Assignment = tuple(zip(axes, combo))
        values: Dict[str, MatrixValue] = dict(assignment)
        instances.append(
            JobInstance(
                job=job.name,
                assignment=assignment,
                steps=tuple(_bind_step(s, values, job.name) for s in job.steps),
                index=start + offset,
                env=tuple((k, interpolate(v, values, job=job.name)) for k, v in job.env.items()),
                runs_on=interpolate(job.runs_on, values, job=job.name),
                title=interpolate(job.title, values, job=job.name),
            )
        )
    return instances


def expand_pipeline(pipeline: Pipeline) -> List[JobInstance]:
    """Expand every job, in pipeline order, numbering instances globally."""
    out: List[JobInstance] = []
    owners: Dict[str, str] = {}
    for job in pipeline.jobs:
        for inst in expand_job(job, start=len(out)):
            # results are keyed by instance id; duplicate job names are
            # reported by build_dag
            if owners.get(inst.id, job.name) != job.name:
                raise InvalidMatrix(
                    f"Job instance name '{inst.id}' is produced by more than one job",
                    job=job.name,
                    details={"jobs": [owners[inst.id], job.name]},
                )
            owners[inst.id] = job.name
            out.append(inst)
    return out
