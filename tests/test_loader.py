"""Tests for pipeline document loading."""

from pathlib import Path

import pytest

from tinyci.errors import ParseError
from tinyci.loader import load_pipeline, parse_pipeline, parse_pipeline_dict

EXAMPLE = Path(__file__).resolve().parent.parent / "examples" / "ci.yml"


def test_example_document_loads():
    pipeline = load_pipeline(EXAMPLE)
    assert pipeline.name == "CI"
    assert [j.name for j in pipeline.jobs] == ["rustfmt", "build", "test"]
    assert "push" in pipeline.triggers

    rustfmt, build, test = pipeline.jobs
    assert rustfmt.display_name == "Rustfmt"
    assert build.matrix == {"os": ["ubuntu", "macOS", "windows"]}
    assert build.runs_on == "${{ matrix.os }}-latest"
    assert build.steps[0].shell == "bash"
    assert build.steps[1].timeout == 1800
    assert test.needs == ["build"]


def test_minimal_document():
    pipeline = parse_pipeline(
        """
jobs:
  fmt:
    steps:
      - run: cargo fmt --check
"""
    )
    job = pipeline.jobs[0]
    assert pipeline.name == "pipeline"
    assert job.name == "fmt"
    assert job.steps[0].name == "cargo fmt --check"
    assert job.matrix == {}
    assert job.needs == []


def test_needs_accepts_single_string_and_top_level_matrix():
    pipeline = parse_pipeline(
        """
jobs:
  build:
    matrix: {os: [linux]}
    steps: [{name: b, run: make}]
  test:
    needs: build
    env: {RETRIES: 3, VERBOSE: true}
    steps:
      - name: t
        run: make test
        working-directory: sub
"""
    )
    test = pipeline.job("test")
    assert test.needs == ["build"]
    assert test.env == {"RETRIES": "3", "VERBOSE": "true"}
    assert test.steps[0].cwd == "sub"
    assert pipeline.job("build").matrix == {"os": ["linux"]}


def test_trigger_shorthands():
    assert parse_pipeline("on: push\njobs: {a: {steps: [{run: x}]}}").triggers == {"push": None}
    assert set(parse_pipeline("on: [push, pull_request]\njobs: {a: {steps: [{run: x}]}}").triggers) == {
        "push",
        "pull_request",
    }


@pytest.mark.parametrize(
    "doc, match",
    [
        ("", "Empty"),
        ("jobs: [", "Invalid YAML"),
        ("- just\n- a list", "Expected a mapping"),
        ("name: x", "Validation failed"),
        ("jobs: {}", "Validation failed"),
        ("jobs: {a: {steps: []}}", "Validation failed"),
        ("jobs: {a: {steps: [{name: s}]}}", "Validation failed"),
    ],
)
def test_invalid_documents(doc, match):
    with pytest.raises(ParseError, match=match):
        parse_pipeline(doc)


def test_uses_steps_are_rejected():
    with pytest.raises(ParseError) as exc_info:
        parse_pipeline("jobs: {a: {steps: [{uses: actions/checkout@v1}]}}")
    assert "reusable actions" in exc_info.value.details["errors"]


def test_both_matrix_forms_rejected():
    with pytest.raises(ParseError):
        parse_pipeline_dict(
            {"jobs": {"a": {"matrix": {"x": [1]}, "strategy": {"matrix": {"y": [2]}}, "steps": [{"run": "x"}]}}}
        )


def test_missing_file():
    with pytest.raises(ParseError, match="not found"):
        load_pipeline("/definitely/not/here.yml")


def test_python_workflow(tmp_path):
    wf = tmp_path / "my_workflow.py"
    wf.write_text(
        "from tinyci.dsl import wf, job, sh, matrix\n"
        "NAME = 'py-ci'\n"
        "def workflow():\n"
        "    return wf(\n"
        "        job('build', sh('b', 'make'), matrix=matrix('os', ['a', 'b'])),\n"
        "        job('test', sh('t', 'make test'), needs=['build']),\n"
        "    )\n"
    )
    pipeline = load_pipeline(wf)
    assert pipeline.name == "py-ci"
    assert pipeline.job("build").matrix == {"os": ["a", "b"]}
    assert pipeline.job("test").needs == ["build"]


def test_python_workflow_must_return_jobs(tmp_path):
    wf = tmp_path / "bad_workflow.py"
    wf.write_text("JOBS = ['not a job']\n")
    with pytest.raises(ParseError, match="List\\[Job\\]"):
        load_pipeline(wf)


def test_python_workflow_errors_become_parse_errors(tmp_path):
    wf = tmp_path / "empty_workflow.py"
    wf.write_text(
        "from tinyci.dsl import wf, job\n"
        "def workflow():\n"
        "    return wf(job('empty'))\n"
    )
    with pytest.raises(ParseError, match="at least one step") as exc_info:
        load_pipeline(wf)
    assert isinstance(exc_info.value.__cause__, ValueError)


def test_python_workflow_import_error(tmp_path):
    wf = tmp_path / "imports_workflow.py"
    wf.write_text("import tinyci_no_such_module\n")
    with pytest.raises(ParseError, match="ModuleNotFoundError"):
        load_pipeline(wf)


def test_undecodable_document(tmp_path):
    doc = tmp_path / "ci.yml"
    doc.write_bytes(b"\xff\xfe")
    with pytest.raises(ParseError, match="Cannot read"):
        load_pipeline(doc)
