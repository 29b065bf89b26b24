# cli.py
from __future__ import annotations

import json
import sys
from pathlib import Path
from typing import Dict, Tuple

import click

from tinyci import settings
from tinyci.dag import plan_levels
from tinyci.errors import SpecError
from tinyci.executor import ShellExecutor, StepExecutor
from tinyci.loader import load_pipeline
from tinyci.matrix import expand_pipeline
from tinyci.report import render_tree, to_dict
from tinyci.runner import run_pipeline
from tinyci.ui.console import Console, get_console, set_console


def _parse_backends(specs: Tuple[str, ...]) -> Dict[str, StepExecutor]:
    """`VALUE=PREFIX` pairs -> executor per backend-axis value."""
    backends: Dict[str, StepExecutor] = {}
    for spec in specs:
        value, sep, prefix = spec.partition("=")
        if not sep or not value.strip() or not prefix.strip():
            raise click.BadParameter(f"expected VALUE=COMMAND_PREFIX, got {spec!r}", param_hint="--backend")
        backends[value.strip()] = ShellExecutor(prefix.strip())
    return backends


def _spec_error(console: Console, path: str, e: SpecError) -> None:
    details = [f"{k}: {v}" for k, v in e.details.items()]
    console.print_error(
        f"Invalid pipeline ({e.kind})",
        f"{path}: {e.message}",
        details=details or None,
        suggestion="Nothing was executed. Fix the pipeline description and re-run.",
    )


@click.group()
@click.option(
    "--debug",
    is_flag=True,
    default=False,
    help="Enable debug mode (show stack traces and detailed output)",
)
def cli(debug):
    """tinyci: run a CI pipeline description locally."""
    set_console(Console(debug=debug))


@cli.command()
@click.argument("pipeline", type=click.Path(dir_okay=False, path_type=Path))
@click.option(
    "--workers", "-j",
    default=settings.MAX_WORKERS,
    type=click.IntRange(min=1),
    help="Maximum concurrently running job instances (default: unbounded)",
)
@click.option("--timeout", default=None, type=click.FloatRange(min=0, min_open=True),
              help="Default per-step timeout in seconds")
@click.option("--workspace", default=".", type=click.Path(file_okay=False, path_type=Path),
              show_default=True, help="Directory steps run in")
@click.option("--isolate/--no-isolate", default=False, show_default=True,
              help="Give every job instance its own scratch working directory")
@click.option("--backend", "backend_specs", multiple=True, metavar="VALUE=PREFIX",
              help="Route instances whose backend-axis value is VALUE through PREFIX (e.g. 'macOS=ssh mac-mini')")
@click.option("--backend-axis", default=settings.BACKEND_AXIS, show_default=True,
              help="Matrix axis that selects the executor backend")
@click.option("--stream/--no-stream", default=False, show_default=True, help="Echo step output while it runs")
@click.option("--json", "as_json", is_flag=True, default=False, help="Print the final report as JSON")
def run(pipeline, workers, timeout, workspace, isolate, backend_specs, backend_axis, stream, as_json):
    """Run a pipeline description (.yml/.yaml or .py workflow)."""
    console = get_console()
    console.stream = stream
    backends = _parse_backends(backend_specs)

    try:
        spec = load_pipeline(pipeline)
        instances = expand_pipeline(spec)
        plan_levels(spec.jobs, instances)  # validate before anything starts

        console.print_run_started(
            pipeline=spec.name,
            source=str(pipeline),
            job_count=len(spec.jobs),
            instance_count=len(instances),
            workers=workers,
        )

        result = run_pipeline(
            spec,
            backends=backends,
            backend_axis=backend_axis,
            max_workers=workers,
            workspace=workspace,
            isolate=isolate,
            default_timeout=timeout,
        )
    except SpecError as e:
        _spec_error(console, str(pipeline), e)
        sys.exit(settings.EXIT_CONFIG_ERROR)
    except KeyboardInterrupt:
        console.print_info("\nInterrupted by user")
        sys.exit(settings.EXIT_INTERRUPTED)

    if as_json:
        console.print_info(json.dumps(to_dict(result), indent=2))
    else:
        console.print_results(result, render_tree(result))

    sys.exit(settings.EXIT_OK if result.ok else settings.EXIT_FAILURE)


@cli.command()
@click.argument("pipeline", type=click.Path(dir_okay=False, path_type=Path))
def plan(pipeline):
    """Validate a pipeline and print its stages without running anything."""
    console = get_console()
    try:
        spec = load_pipeline(pipeline)
        instances = expand_pipeline(spec)
        levels = plan_levels(spec.jobs, instances)
    except SpecError as e:
        _spec_error(console, str(pipeline), e)
        sys.exit(settings.EXIT_CONFIG_ERROR)

    console.print_header(f"{spec.name}: {len(instances)} job instance(s)")
    console.print_plan(levels)


if __name__ == "__main__":
    cli()
