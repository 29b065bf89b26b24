"""Tests for matrix expansion."""

import pytest

from tinyci.errors import InvalidMatrix
from tinyci.matrix import expand_job, expand_pipeline, interpolate
from tinyci.model import Job, Pipeline, Step


def _job(matrix=None, **kw):
    return Job(name="build", steps=[Step("Build", "make")], matrix=matrix or {}, **kw)


def test_no_matrix_gives_single_instance():
    instances = expand_job(_job())
    assert len(instances) == 1
    assert instances[0].assignment == ()
    assert instances[0].id == "build"


@pytest.mark.parametrize("sizes", [(1,), (3,), (2, 3), (2, 2, 2), (1, 4, 1)])
def test_cartesian_product_size_and_distinctness(sizes):
    matrix = {f"axis{i}": [f"v{j}" for j in range(n)] for i, n in enumerate(sizes)}
    instances = expand_job(_job(matrix))

    expected = 1
    for n in sizes:
        expected *= n
    assert len(instances) == expected
    assert len({i.assignment for i in instances}) == expected


def test_last_axis_varies_fastest():
    instances = expand_job(_job({"os": ["linux", "mac"], "py": ["3.11", "3.12"]}))
    assert [i.matrix for i in instances] == [
        {"os": "linux", "py": "3.11"},
        {"os": "linux", "py": "3.12"},
        {"os": "mac", "py": "3.11"},
        {"os": "mac", "py": "3.12"},
    ]
    assert instances[1].id == "build (os=linux, py=3.12)"


def test_empty_axis_is_invalid():
    with pytest.raises(InvalidMatrix, match="no values"):
        expand_job(_job({"os": []}))


def test_non_scalar_axis_value_is_invalid():
    with pytest.raises(InvalidMatrix):
        expand_job(_job({"os": [{"name": "linux"}]}))


@pytest.mark.parametrize(
    "values",
    [["ubuntu", "ubuntu"], [3, "3"], [True, "true"]],
)
def test_repeated_axis_value_is_invalid(values):
    with pytest.raises(InvalidMatrix, match="repeats"):
        expand_job(_job({"os": values}))


def test_instance_ids_are_unique_across_jobs():
    jobs = [
        _job({"os": ["linux"]}),
        Job(name="build (os=linux)", steps=[Step("Build", "make")]),
    ]
    with pytest.raises(InvalidMatrix, match="more than one job"):
        expand_pipeline(Pipeline(name="p", jobs=jobs))


def test_boolean_values_render_like_yaml():
    instances = expand_job(_job({"debug": [True, False]}))
    assert [i.id for i in instances] == ["build (debug=true)", "build (debug=false)"]


def test_matrix_references_are_substituted():
    job = Job(
        name="test",
        steps=[Step("Test on ${{ matrix.os }}", "echo ${{matrix.os}}", env={"TARGET": "${{ matrix.os }}"})],
        matrix={"os": ["ubuntu", "windows"]},
        runs_on="${{ matrix.os }}-latest",
        env={"OS": "${{ matrix.os }}"},
    )
    first, second = expand_job(job)
    assert first.steps[0].name == "Test on ubuntu"
    assert first.steps[0].run == "echo ubuntu"
    assert first.steps[0].env == {"TARGET": "ubuntu"}
    assert first.runs_on == "ubuntu-latest"
    assert dict(second.env) == {"OS": "windows"}
    # the template is untouched
    assert job.steps[0].run == "echo ${{matrix.os}}"


def test_unknown_matrix_reference_is_invalid():
    job = Job(name="test", steps=[Step("x", "echo ${{ matrix.arch }}")], matrix={"os": ["ubuntu"]})
    with pytest.raises(InvalidMatrix, match="arch"):
        expand_job(job)


def test_interpolate_formats_booleans():
    assert interpolate("flag=${{ matrix.fast }}", {"fast": True}, job="j") == "flag=true"
    assert interpolate(None, {}, job="j") is None


def test_expand_pipeline_numbers_instances_in_declaration_order(ci_pipeline):
    instances = expand_pipeline(ci_pipeline)
    assert len(instances) == 7
    assert [i.index for i in instances] == list(range(7))
    assert [i.id for i in instances] == [
        "fmt",
        "build (os=ubuntu)",
        "build (os=macOS)",
        "build (os=windows)",
        "test (os=ubuntu)",
        "test (os=macOS)",
        "test (os=windows)",
    ]


def test_expansion_is_pure():
    pipeline = Pipeline(name="p", jobs=[_job({"os": ["a", "b"]})])
    assert [i.id for i in expand_pipeline(pipeline)] == [i.id for i in expand_pipeline(pipeline)]
