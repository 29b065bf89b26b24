from .dsl import job, sh, matrix, wf, workflow, JobBuilder, build
from .errors import CIError, SpecError, ParseError, InvalidMatrix, UnknownDependency, CyclicDependency, LaunchError
from .loader import load_pipeline, parse_pipeline
from .model import Job, Step, Pipeline, JobInstance, JobResult, StepResult, PipelineResult
from .runner import run_pipeline

__all__ = [
    "job", "sh", "matrix", "wf", "workflow", "JobBuilder", "build",
    "CIError", "SpecError", "ParseError", "InvalidMatrix", "UnknownDependency", "CyclicDependency", "LaunchError",
    "load_pipeline", "parse_pipeline",
    "Job", "Step", "Pipeline", "JobInstance", "JobResult", "StepResult", "PipelineResult",
    "run_pipeline",
]
