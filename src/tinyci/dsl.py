# src/tinyci/dsl.py
from __future__ import annotations

from dataclasses import replace
from typing import Any, Dict, Iterable, List, Optional

from .model import Job, MatrixValue, Step


# ---------------------------------------------------------------------
# Step helper
# ---------------------------------------------------------------------

def sh(
    name: str,
    cmd: str,
    *,
    cwd: str | None = None,
    timeout: float | None = None,
    env: Optional[Dict[str, Any]] = None,
    shell: str | None = None,
) -> Step:
    """Create a shell step."""
    return Step(
        name=name,
        run=cmd,
        cwd=cwd,
        timeout=timeout,
        env={k: str(v) for k, v in (env or {}).items()},
        shell=shell,
    )


# ---------------------------------------------------------------------
# Matrix
# ---------------------------------------------------------------------

class Matrix:
    """
    Ordered set of matrix axes.

    Example:
        matrix("os", ["ubuntu", "macOS", "windows"]).axis("py", ["3.11", "3.12"])
    """
    def __init__(self, key: str, values: Iterable[MatrixValue]):
        self.axes: Dict[str, List[MatrixValue]] = {key: list(values)}

    def axis(self, key: str, values: Iterable[MatrixValue]) -> Matrix:
        self.axes[key] = list(values)
        return self


def matrix(key: str, values: Iterable[MatrixValue]) -> Matrix:
    return Matrix(key, values)


# ---------------------------------------------------------------------
# Functional Job helper
# ---------------------------------------------------------------------

def job(
    name: str,
    *steps: Step,  # allow: job("x", sh(...), sh(...))
    steps_list: Optional[List[Step]] = None,  # allow: job("x", steps_list=[...])
    needs: Optional[List[str]] = None,
    matrix: Matrix | Dict[str, Iterable[MatrixValue]] | None = None,
    env: Optional[Dict[str, Any]] = None,
    title: Optional[str] = None,
    runs_on: Optional[str] = None,
    cwd: str | None = None,  # default cwd applied to steps missing cwd
) -> Job:
    steps_final: List[Step] = []
    if steps_list:
        steps_final.extend(list(steps_list))
    steps_final.extend(list(steps))

    if not steps_final:
        raise ValueError(f"job({name!r}) must have at least one step")

    if cwd is not None:
        steps_final = [s if s.cwd is not None else replace(s, cwd=cwd) for s in steps_final]

    if isinstance(matrix, Matrix):
        axes = dict(matrix.axes)
    else:
        axes = {k: list(v) for k, v in (matrix or {}).items()}

    return Job(
        name=name,
        steps=steps_final,
        needs=list(needs or []),
        matrix=axes,
        env={k: str(v) for k, v in (env or {}).items()},
        title=title,
        runs_on=runs_on,
    )


# ---------------------------------------------------------------------
# Builder API
# ---------------------------------------------------------------------

class JobBuilder:
    def __init__(self, name: str):
        self.name = name
        self._needs: list[str] = []
        self._steps: list[Step] = []
        self._env: dict[str, str] = {}
        self._matrix: dict[str, list[MatrixValue]] = {}
        self._title: Optional[str] = None
        self._runs_on: Optional[str] = None

    def depends_on(self, *job_names: str):
        self._needs.extend(job_names)
        return self

    def define_step(self, name: str, run: str, cwd: str | None = None, timeout: float | None = None):
        self._steps.append(Step(name=name, run=run, cwd=cwd, timeout=timeout))
        return self

    def with_env(self, **env):
        self._env.update({k: str(v) for k, v in env.items()})
        return self

    def with_matrix(self, axis: str, values: Iterable[MatrixValue]):
        self._matrix[axis] = list(values)
        return self

    def titled(self, title: str):
        self._title = title
        return self

    def on(self, runs_on: str):
        self._runs_on = runs_on
        return self

    def build(self) -> Job:
        if not self._steps:
            raise ValueError(f"Job '{self.name}' has no steps")

        return Job(
            name=self.name,
            steps=list(self._steps),
            needs=list(self._needs),
            matrix=dict(self._matrix),
            env=dict(self._env),
            title=self._title,
            runs_on=self._runs_on,
        )


def build(name: str) -> JobBuilder:
    """Convenience: build('test').define_step(...).build()"""
    return JobBuilder(name)


# ---------------------------------------------------------------------
# Workflow helper (single-file story)
# ---------------------------------------------------------------------

def wf(*jobs: Job) -> List[Job]:
    """
    Workflow definition helper. Use this name so you can define your own
    def workflow(): return wf(job(...), job(...)).
    """
    return list(jobs)


workflow = wf  # avoid naming your own function workflow if you import this
