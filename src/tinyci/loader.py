"""Load and validate pipeline descriptions (YAML documents or Python workflow files)."""

from __future__ import annotations

import runpy
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from .errors import ParseError, SpecError
from .model import Job, Pipeline, Step

Scalar = Union[str, int, float, bool]


def _stringify_env(v: Optional[Dict[str, Scalar]]) -> Dict[str, str]:
    out: Dict[str, str] = {}
    for k, val in (v or {}).items():
        if isinstance(val, bool):
            out[str(k)] = "true" if val else "false"
        else:
            out[str(k)] = str(val)
    return out


# ----------------------------------------------------------------------
# Document schema
# ----------------------------------------------------------------------

class StepModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    name: Optional[str] = None
    run: Optional[str] = None
    uses: Optional[str] = None
    cwd: Optional[str] = Field(default=None, alias="working-directory")
    timeout: Optional[float] = Field(default=None, gt=0)
    timeout_minutes: Optional[float] = Field(default=None, gt=0, alias="timeout-minutes")
    env: Dict[str, Scalar] = {}
    shell: Optional[str] = None

    @model_validator(mode="after")
    def _check_command(self) -> StepModel:
        if self.uses is not None:
            raise ValueError(f"reusable actions are not supported (uses: {self.uses})")
        if not self.run or not self.run.strip():
            raise ValueError("step must define a non-empty 'run' command")
        return self

    def to_step(self) -> Step:
        timeout = self.timeout
        if timeout is None and self.timeout_minutes is not None:
            timeout = self.timeout_minutes * 60
        run = self.run or ""
        return Step(
            name=self.name or run.strip().splitlines()[0],
            run=run,
            cwd=self.cwd,
            timeout=timeout,
            env=_stringify_env(self.env),
            shell=self.shell,
        )


class StrategyModel(BaseModel):
    model_config = ConfigDict(extra="ignore")

    matrix: Dict[str, Any] = {}


class JobModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    name: Optional[str] = None
    steps: List[StepModel] = Field(min_length=1)
    needs: List[str] = []
    matrix: Optional[Dict[str, Any]] = None
    strategy: Optional[StrategyModel] = None
    env: Dict[str, Scalar] = {}
    runs_on: Optional[str] = Field(default=None, alias="runs-on")

    @field_validator("needs", mode="before")
    @classmethod
    def _needs_as_list(cls, v: Any) -> Any:
        if v is None:
            return []
        if isinstance(v, str):
            return [v]
        return v

    @model_validator(mode="after")
    def _one_matrix(self) -> JobModel:
        if self.matrix is not None and self.strategy is not None and self.strategy.matrix:
            raise ValueError("define the matrix either at 'matrix' or at 'strategy.matrix', not both")
        return self

    def to_job(self, key: str) -> Job:
        matrix = self.matrix
        if matrix is None and self.strategy is not None:
            matrix = self.strategy.matrix
        return Job(
            name=key,
            title=self.name,
            steps=[s.to_step() for s in self.steps],
            needs=list(self.needs),
            matrix=dict(matrix or {}),
            env=_stringify_env(self.env),
            runs_on=self.runs_on,
        )


class PipelineModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    name: str = "pipeline"
    triggers: Dict[str, Any] = Field(default_factory=dict, alias="on")
    env: Dict[str, Scalar] = {}
    jobs: Dict[str, JobModel] = Field(min_length=1)

    @field_validator("triggers", mode="before")
    @classmethod
    def _triggers_as_mapping(cls, v: Any) -> Any:
        # `on: push` / `on: [push, pull_request]` are valid shorthands
        if v is None:
            return {}
        if isinstance(v, str):
            return {v: None}
        if isinstance(v, list):
            return {str(t): None for t in v}
        return v

    def to_pipeline(self) -> Pipeline:
        return Pipeline(
            name=self.name,
            jobs=[jm.to_job(key) for key, jm in self.jobs.items()],
            env=_stringify_env(self.env),
            triggers=dict(self.triggers),
        )


# ----------------------------------------------------------------------
# Loading
# ----------------------------------------------------------------------

def parse_pipeline_dict(data: Any, *, source: str = "<pipeline>") -> Pipeline:
    """Validate an already-parsed document."""
    if not isinstance(data, dict):
        raise ParseError(f"Expected a mapping in {source}, got {type(data).__name__}")

    data = dict(data)
    # YAML 1.1 reads a bare `on:` key as boolean True
    if True in data:
        data.setdefault("on", data.pop(True))

    try:
        model = PipelineModel.model_validate(data)
    except ValidationError as e:
        raise ParseError(
            f"Validation failed for {source}",
            details={"errors": "; ".join(
                f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors()
            )},
        ) from e
    return model.to_pipeline()


def parse_pipeline(text: str, *, source: str = "<string>") -> Pipeline:
    """Parse a YAML pipeline document from a string."""
    if not text or not text.strip():
        raise ParseError(f"Empty pipeline document: {source}")
    try:
        data = yaml.safe_load(text)
    except yaml.YAMLError as e:
        raise ParseError(f"Invalid YAML in {source}: {e}") from e
    return parse_pipeline_dict(data, source=source)


def load_workflow(path: str | Path) -> Pipeline:
    """
    Load a pipeline from a python file path.

    The file must define either:
      - workflow() -> List[Job]
      - JOBS = [Job, ...]
    and may define NAME (the pipeline name) and ENV (pipeline-wide env).
    """
    wf_path = Path(path).expanduser().resolve()
    module_name = f"tinyci_workflow_{wf_path.stem}"
    try:
        globals_dict = runpy.run_path(str(wf_path), run_name=module_name)
    except SpecError:
        raise
    except Exception as e:
        raise ParseError(
            f"Cannot load workflow {wf_path}: {type(e).__name__}: {e}",
            details={"path": str(wf_path)},
        ) from e

    jobs = None
    if "workflow" in globals_dict and callable(globals_dict["workflow"]):
        try:
            jobs = globals_dict["workflow"]()
        except SpecError:
            raise
        except Exception as e:
            raise ParseError(
                f"workflow() in {wf_path} failed: {type(e).__name__}: {e}",
                details={"path": str(wf_path)},
            ) from e
    elif "JOBS" in globals_dict:
        jobs = globals_dict["JOBS"]

    if not isinstance(jobs, list) or not all(isinstance(j, Job) for j in jobs):
        raise ParseError(
            "Workflow must return/define a List[Job]. "
            "Define workflow() -> List[Job] or JOBS = [Job, ...].",
            details={"path": str(wf_path)},
        )

    return Pipeline(
        name=str(globals_dict.get("NAME", wf_path.stem)),
        jobs=jobs,
        env=_stringify_env(globals_dict.get("ENV")),
    )


def load_pipeline(path: str | Path) -> Pipeline:
    """Read a pipeline from a .yml/.yaml document or a .py workflow file."""
    p = Path(path)
    if not p.exists():
        raise ParseError(f"Pipeline file not found: {p}")
    if p.suffix == ".py":
        return load_workflow(p)

    try:
        raw = p.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        raise ParseError(f"Cannot read {p}: {e}") from e
    return parse_pipeline(raw, source=str(p))
