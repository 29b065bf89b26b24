"""Tests for the pipeline report."""

import random

from tinyci.matrix import expand_pipeline
from tinyci.model import (
    FailureCause,
    JobOutcome,
    JobResult,
    StepOutcome,
    StepResult,
    Verdict,
)
from tinyci.report import build_report, render_tree, to_dict


def _results(instances, outcomes=None):
    outcomes = outcomes or {}
    out = {}
    for inst in instances:
        outcome = outcomes.get(inst.id, JobOutcome.SUCCEEDED)
        steps = ()
        if outcome == JobOutcome.FAILED:
            steps = (
                StepResult("Install", StepOutcome.SUCCEEDED, exit_code=0),
                StepResult("Build", StepOutcome.FAILED, exit_code=101, cause=FailureCause.NON_ZERO_EXIT),
            )
        out[inst.id] = JobResult(instance=inst, outcome=outcome, steps=steps)
    return out


def test_success_verdict(ci_pipeline):
    instances = expand_pipeline(ci_pipeline)
    assert build_report("CI", instances, _results(instances)).verdict == Verdict.SUCCESS


def test_failed_instance_fails_pipeline(ci_pipeline):
    instances = expand_pipeline(ci_pipeline)
    results = _results(instances, {"build (os=ubuntu)": JobOutcome.FAILED})
    assert build_report("CI", instances, results).verdict == Verdict.FAILURE


def test_cancelled_alone_is_failure(ci_pipeline):
    instances = expand_pipeline(ci_pipeline)
    results = _results(instances, {"fmt": JobOutcome.CANCELLED})
    assert build_report("CI", instances, results).verdict == Verdict.FAILURE


def test_missing_result_is_failure(ci_pipeline):
    instances = expand_pipeline(ci_pipeline)
    results = _results(instances)
    del results["test (os=windows)"]
    assert build_report("CI", instances, results).verdict == Verdict.FAILURE


def test_report_independent_of_arrival_order(ci_pipeline):
    instances = expand_pipeline(ci_pipeline)
    results = _results(instances, {"build (os=macOS)": JobOutcome.FAILED})
    reference = build_report("CI", instances, results)

    rng = random.Random(7)
    for _ in range(10):
        items = list(results.items())
        rng.shuffle(items)
        shuffled_instances = list(instances)
        rng.shuffle(shuffled_instances)
        again = build_report("CI", shuffled_instances, dict(items))
        assert again.verdict == reference.verdict
        assert list(again.results) == list(reference.results)
        assert render_tree(again) == render_tree(reference)


def test_render_tree(ci_pipeline):
    instances = expand_pipeline(ci_pipeline)
    report = build_report("CI", instances, _results(instances, {"build (os=ubuntu)": JobOutcome.FAILED}))
    tree = render_tree(report)

    assert tree[0] == "✓ fmt: SUCCEEDED"
    assert tree[1] == "✗ build (os=ubuntu): FAILED"
    assert "    ✗ Build: failed [exit=101, non_zero_exit]" in tree
    assert tree[-1] == "6 succeeded, 1 failed, 0 cancelled"


def test_to_dict(ci_pipeline):
    instances = expand_pipeline(ci_pipeline)
    data = to_dict(build_report("CI", instances, _results(instances)))
    assert data["verdict"] == "success"
    assert len(data["jobs"]) == 7
    assert data["jobs"][1]["matrix"] == {"os": "ubuntu"}
