# context.py
from __future__ import annotations

import os
import shutil
import tempfile
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional

from . import settings
from .executor import StepExecutor, execute_step
from .model import JobInstance, JobResult, Pipeline


@dataclass
class RunContext:
    """
    Everything one pipeline run needs, passed explicitly to every component.

    Lives exactly as long as one `run_pipeline` call. The only mutable part
    is the result map, which is append-only and guarded by a lock.
    """
    pipeline: Pipeline
    instances: List[JobInstance] = field(default_factory=list)
    workspace: Path = field(default_factory=Path.cwd)
    max_workers: Optional[int] = None
    executor: StepExecutor = execute_step
    # value of `backend_axis` -> executor, e.g. {"windows": ShellExecutor("ssh win-box")}
    backends: Dict[str, StepExecutor] = field(default_factory=dict)
    backend_axis: str = settings.BACKEND_AXIS
    isolate: bool = False
    default_timeout: Optional[float] = None

    results: Dict[str, JobResult] = field(default_factory=dict, init=False)
    _lock: threading.Lock = field(default_factory=threading.Lock, init=False, repr=False)
    _scratch: Optional[Path] = field(default=None, init=False, repr=False)

    # ---- results ----

    def record(self, result: JobResult) -> bool:
        """Store a terminal result. Returns False if the instance already had one."""
        with self._lock:
            key = result.instance.id
            if key in self.results:
                return False
            self.results[key] = result
            return True

    def result_for(self, instance: JobInstance) -> Optional[JobResult]:
        with self._lock:
            return self.results.get(instance.id)

    # ---- execution environment ----

    def executor_for(self, instance: JobInstance) -> StepExecutor:
        value = instance.matrix.get(self.backend_axis)
        if value is not None and str(value) in self.backends:
            return self.backends[str(value)]
        return self.executor

    def workdir_for(self, instance: JobInstance) -> Path:
        if not self.isolate:
            return self.workspace
        with self._lock:
            if self._scratch is None:
                self._scratch = Path(tempfile.mkdtemp(prefix="tinyci-"))
            path = self._scratch / instance.slug
        path.mkdir(parents=True, exist_ok=True)
        return path

    def env_for(self, instance: JobInstance) -> Dict[str, str]:
        env = os.environ.copy()
        env.update(self.pipeline.env or {})
        env.update(dict(instance.env))
        env["CI"] = "true"
        env["TINYCI_WORKSPACE"] = str(self.workspace)
        env["TINYCI_JOB"] = instance.job
        env["TINYCI_JOB_INSTANCE"] = instance.id
        for axis, value in instance.assignment:
            env[f"TINYCI_MATRIX_{axis.upper().replace('-', '_')}"] = str(value)
        return env

    def close(self) -> None:
        if self._scratch is not None:
            shutil.rmtree(self._scratch, ignore_errors=True)
            self._scratch = None
