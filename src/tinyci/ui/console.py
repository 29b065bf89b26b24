"""Console output formatting utilities for tinyci."""

from __future__ import annotations

import sys
import threading
from typing import TYPE_CHECKING, List, Optional, Sequence

if TYPE_CHECKING:
    from ..model import JobResult, PipelineResult, StepResult


class Console:
    """
    Centralized console output formatting.

    Jobs report progress from worker threads, so every method writes its
    whole block under one lock to keep lines from different jobs apart.
    """

    def __init__(self, debug: bool = False, stream: bool = False):
        """
        Initialize console formatter.

        Args:
            debug: If True, show detailed output including stack traces
            stream: If True, echo every output line of running steps
        """
        self.debug = debug
        self.stream = stream
        self._lock = threading.RLock()

    def _emit(self, *lines: str, err: bool = False) -> None:
        with self._lock:
            out = sys.stderr if err else sys.stdout
            for line in lines:
                print(line, file=out)
            out.flush()

    def print_header(self, title: str) -> None:
        """Print a section header."""
        self._emit(f"\n{title}", "-" * len(title))

    def print_run_started(
        self,
        pipeline: str,
        source: str,
        job_count: int,
        instance_count: int,
        workers: Optional[int] = None,
    ) -> None:
        """Print run start information."""
        self._emit(
            "\nRUN STARTED",
            f"Pipeline: {pipeline}",
            f"Source: {source}",
            f"Jobs: {job_count} ({instance_count} instances)",
            f"Workers: {workers if workers else 'unbounded'}",
            "",
        )

    def print_plan(self, levels: Sequence[Sequence[str]]) -> None:
        """Print the stage view of the dependency graph."""
        lines = []
        for idx, level in enumerate(levels, start=1):
            lines.append(f"Stage {idx}:")
            lines.extend(f"  {name}" for name in level)
        self._emit(*lines)

    def print_job_start(self, name: str, runs_on: Optional[str] = None, title: Optional[str] = None) -> None:
        """Print job start message."""
        label = f"{name} [{title}]" if title else name
        suffix = f" on {runs_on}" if runs_on else ""
        self._emit(f"JOB STARTED: {label}{suffix}")

    def print_step(self, job: str, name: str) -> None:
        """Print step start message."""
        self._emit(f"[{job}] STEP: {name}")

    def print_output_line(self, job: str, line: str) -> None:
        if self.stream:
            self._emit(f"[{job}] | {line}")

    def print_step_failed(self, job: str, result: StepResult, tail: Sequence[str] = ()) -> None:
        """Print a failed step with the tail of its output."""
        lines = [f"[{job}] STEP FAILED: {result.name}"]
        if result.exit_code is not None:
            lines.append(f"[{job}] Exit code: {result.exit_code}")
        if result.error:
            lines.append(f"[{job}] Error: {result.error}")
        if tail and not self.stream:
            lines.append(f"[{job}] Last {len(tail)} line(s) of output:")
            lines.extend(f"[{job}] | {line}" for line in tail)
        self._emit(*lines)

    def print_job_finished(self, result: JobResult) -> None:
        """Print job completion message."""
        self._emit(f"JOB {result.outcome.value.upper()}: {result.instance.id}")

    def print_job_cancelled(self, name: str, reason: str) -> None:
        """Print job cancellation message."""
        self._emit(f"JOB CANCELLED: {name} ({reason})")

    def print_results(self, result: PipelineResult, tree: List[str]) -> None:
        """Print final results summary."""
        self._emit(
            "\n" + "=" * 40,
            "RESULTS",
            "=" * 40,
            *tree,
            "",
            f"VERDICT: {result.verdict.value.upper()}",
        )

    def print_error(
        self,
        title: str,
        message: str,
        details: Optional[list[str]] = None,
        suggestion: Optional[str] = None,
    ) -> None:
        """
        Print structured error message.

        Args:
            title: Error title
            message: Main error message
            details: Optional list of detail lines
            suggestion: Optional suggestion for user
        """
        lines = [f"\nERROR: {title}", message]
        if details:
            lines.extend(f"  {detail}" for detail in details)
        if suggestion:
            lines.append(f"\n{suggestion}")
        self._emit(*lines, err=True)

    def print_exception(self, exc: BaseException) -> None:
        """Print exception, with full traceback only in debug mode."""
        if self.debug:
            import traceback
            with self._lock:
                traceback.print_exception(type(exc), exc, exc.__traceback__)
        else:
            self._emit(f"Error: {exc}", err=True)

    def print_info(self, message: str) -> None:
        """Print informational message."""
        self._emit(message)

    def print_debug(self, message: str) -> None:
        """Print debug message (only if debug mode enabled)."""
        if self.debug:
            self._emit(f"[DEBUG] {message}", err=True)


# Global console instance (will be initialized by CLI)
_console: Optional[Console] = None


def get_console() -> Console:
    """Get the global console instance."""
    global _console
    if _console is None:
        _console = Console()
    return _console


def set_console(console: Optional[Console]) -> None:
    """Set the global console instance."""
    global _console
    _console = console
