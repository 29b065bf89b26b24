# dag.py
from __future__ import annotations

import heapq
from collections import deque
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Callable, Dict, List, Optional, Set, Tuple

from .context import RunContext
from .errors import CyclicDependency, ParseError, UnknownDependency
from .model import Job, JobInstance, JobOutcome, JobResult
from .ui.console import get_console

RunFn = Callable[[JobInstance, RunContext], JobResult]


def build_dag(jobs: List[Job]) -> Tuple[Dict[str, Set[str]], Dict[str, int]]:
    """
    Build the job-level DAG.

    Returns (adj, indeg) where adj[dep] is the set of jobs that need `dep`
    and indeg[job] the number of distinct jobs it needs.
    """
    names = [j.name for j in jobs]
    if len(set(names)) != len(names):
        dupes = sorted({n for n in names if names.count(n) > 1})
        raise ParseError(f"Duplicate job names found: {dupes}", details={"duplicates": dupes})

    name_set = set(names)
    adj: Dict[str, Set[str]] = {n: set() for n in names}
    indeg: Dict[str, int] = {n: 0 for n in names}

    for job in jobs:
        for dep in job.needs or []:
            if dep == job.name:
                raise CyclicDependency(f"Job '{job.name}' needs itself", job=job.name)
            if dep not in name_set:
                raise UnknownDependency(
                    f"Job '{job.name}' needs missing job '{dep}'",
                    job=job.name,
                    details={"known_jobs": sorted(name_set)},
                )
            # edge dep -> job.name (dep must finish before job)
            if job.name not in adj[dep]:
                adj[dep].add(job.name)
                indeg[job.name] += 1

    return adj, indeg


def topo_levels(
    adj: Dict[str, Set[str]],
    indeg: Dict[str, int],
    order: Optional[Dict[str, int]] = None,
) -> List[List[str]]:
    """
    Convert DAG into topological "levels" (stages).
    Each stage can run in parallel. Nodes inside a stage keep `order`
    (declaration order) when given, otherwise they are sorted by name.
    """
    def key(n: str):
        return order[n] if order is not None else n

    indeg = dict(indeg)  # copy (we mutate it)
    q = deque(sorted([n for n, d in indeg.items() if d == 0], key=key))

    levels: List[List[str]] = []
    processed = 0

    while q:
        level = sorted(q, key=key)
        q.clear()
        processed += len(level)

        for node in level:
            for child in adj.get(node, set()):
                indeg[child] -= 1
                if indeg[child] == 0:
                    q.append(child)

        levels.append(level)

    if processed != len(indeg):
        remaining = sorted([n for n, d in indeg.items() if d > 0], key=key)
        raise CyclicDependency(
            f"Dependency cycle between jobs: {remaining}",
            details={"stuck": remaining},
        )

    return levels


def build_instance_graph(
    jobs: List[Job],
    instances: List[JobInstance],
) -> Tuple[Dict[str, List[str]], Dict[str, List[str]]]:
    """
    Build the instance-level graph.

    An instance of B depends on *every* instance of each job B needs,
    whatever their matrix values: `test (os=ubuntu)` waits for
    `build (os=ubuntu)`, `build (os=macOS)` and `build (os=windows)`.

    Returns (prereqs, dependents), both keyed by instance id and listing ids
    in expansion order. Raises a SpecError if the job graph is invalid.
    """
    adj, indeg = build_dag(jobs)
    order = {j.name: i for i, j in enumerate(jobs)}
    topo_levels(adj, indeg, order)  # raises on cycles

    by_job: Dict[str, List[str]] = {j.name: [] for j in jobs}
    for inst in sorted(instances, key=lambda i: i.index):
        by_job[inst.job].append(inst.id)

    needs = {j.name: list(dict.fromkeys(j.needs or [])) for j in jobs}
    prereqs: Dict[str, List[str]] = {}
    dependents: Dict[str, List[str]] = {i.id: [] for i in instances}

    for inst in sorted(instances, key=lambda i: i.index):
        pre: List[str] = []
        for dep in needs[inst.job]:
            pre.extend(by_job[dep])
        prereqs[inst.id] = pre
        for p in pre:
            dependents[p].append(inst.id)

    return prereqs, dependents


def plan_levels(jobs: List[Job], instances: List[JobInstance]) -> List[List[str]]:
    """Stage view of the instance graph (what `tinyci plan` prints)."""
    prereqs, dependents = build_instance_graph(jobs, instances)
    order = {i.id: i.index for i in instances}
    adj = {k: set(v) for k, v in dependents.items()}
    indeg = {k: len(v) for k, v in prereqs.items()}
    return topo_levels(adj, indeg, order)


def _cascade(
    failed: str,
    ctx: RunContext,
    dependents: Dict[str, List[str]],
    by_id: Dict[str, JobInstance],
) -> List[JobResult]:
    """Cancel every direct and transitive dependent of `failed`, depth-first."""
    cancelled: List[JobResult] = []
    stack = list(reversed(dependents[failed]))
    while stack:
        iid = stack.pop()
        result = JobResult(
            instance=by_id[iid],
            outcome=JobOutcome.CANCELLED,
            reason=f"prerequisite '{failed}' did not succeed",
        )
        if ctx.record(result):
            cancelled.append(result)
            stack.extend(reversed(dependents[iid]))
    return cancelled


def schedule(ctx: RunContext, run_fn: RunFn) -> Dict[str, JobResult]:
    """
    Run every instance in `ctx.instances`, respecting dependencies.

    - An instance is submitted as soon as all its prerequisites succeeded.
    - A prerequisite that did not succeed cancels all dependents without
      running any of their steps.
    - Failures never stop unrelated instances.
    - At most `ctx.max_workers` instances run at once (None: one worker per
      instance). Ready instances are submitted in expansion order.

    The job graph is validated before anything is submitted.
    """
    console = get_console()
    prereqs, dependents = build_instance_graph(ctx.pipeline.jobs, ctx.instances)
    by_id = {i.id: i for i in ctx.instances}

    pending: Dict[str, int] = {iid: len(p) for iid, p in prereqs.items()}
    ready: List[Tuple[int, str]] = [(by_id[iid].index, iid) for iid, n in pending.items() if n == 0]
    heapq.heapify(ready)

    max_workers = ctx.max_workers or max(1, len(ctx.instances))
    console.print_debug(f"scheduling {len(ctx.instances)} instance(s) on {max_workers} worker(s)")

    in_flight: Dict = {}

    with ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="tinyci-job") as pool:
        while ready or in_flight:
            # schedule all currently ready
            while ready:
                _, iid = heapq.heappop(ready)
                fut = pool.submit(run_fn, by_id[iid], ctx)
                in_flight[fut] = iid

            if not in_flight:
                break

            # wait for one completion, then loop to schedule newly-ready jobs
            fut = next(as_completed(list(in_flight.keys())))
            iid = in_flight.pop(fut)

            try:
                result = fut.result()
            except Exception as e:
                console.print_exception(e)
                result = JobResult(
                    instance=by_id[iid],
                    outcome=JobOutcome.FAILED,
                    reason=f"runner error: {type(e).__name__}: {e}",
                )
            ctx.record(result)

            # unlock dependents only on success
            if result.outcome == JobOutcome.SUCCEEDED:
                for nxt in dependents[iid]:
                    pending[nxt] -= 1
                    if pending[nxt] == 0 and ctx.result_for(by_id[nxt]) is None:
                        heapq.heappush(ready, (by_id[nxt].index, nxt))
            else:
                for cancelled in _cascade(iid, ctx, dependents, by_id):
                    console.print_job_cancelled(cancelled.instance.id, cancelled.reason or "")

    return dict(ctx.results)
