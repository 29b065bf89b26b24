# tinyci_workflow.py
# Workflow for checking tinyci itself
from __future__ import annotations
from tinyci.dsl import wf, job, sh, matrix

NAME = "tinyci"


def workflow():
    return wf(
        job(
            "lint",
            sh("Ruff check", "ruff check src tests"),
            sh("Ruff format check", "ruff format --check src tests"),
        ),
        job(
            "test",
            sh("Install package", "pip install -e '.[test]'"),
            sh("Run pytest", "pytest -q", env={"TINYCI_TEST_PY": "${{ matrix.python }}"}),
            matrix=matrix("python", ["3.10", "3.11", "3.12"]),
            needs=["lint"],
        ),
    )
