# pipeline.py
from __future__ import annotations

import threading
from concurrent.futures import ThreadPoolExecutor
from enum import Enum
from typing import Dict, Iterable, List, Optional, Sequence

from .environment import EnvironmentArena
from .errors import ConfigurationError
from .executor import Executor, SubprocessExecutor
from .model import DEFAULT_TRIGGERS, Job, JobResult, PipelineResult, Platform, Trigger, Triggers
from .runner import run_job
from .ui.console import Console, get_console


class PipelineState(str, Enum):
    IDLE = "idle"
    TRIGGERED = "triggered"
    RUNNING = "running"
    COMPLETED = "completed"


# ----------------------------------------------------------------------
# Configuration checks (all done before any unit starts)
# ----------------------------------------------------------------------

def validate_jobs(jobs: Sequence[Job]) -> None:
    for job in jobs:
        if not isinstance(job, Job):
            raise ConfigurationError(f"Expected Job, got {type(job).__name__}")

    names = [j.name for j in jobs]
    if len(set(names)) != len(names):
        dupes = sorted({n for n in names if names.count(n) > 1})
        raise ConfigurationError(f"Duplicate job names found: {dupes}")

    for job in jobs:
        if not job.name:
            raise ConfigurationError("Job name must not be empty")
        if not job.platforms:
            raise ConfigurationError(f"Job '{job.name}' declares no platforms", job=job.name)
        if len(set(job.platforms)) != len(job.platforms):
            raise ConfigurationError(f"Job '{job.name}' lists a platform twice", job=job.name)
        for p in job.platforms:
            if not isinstance(p, Platform):
                raise ConfigurationError(f"Job '{job.name}' has unknown platform {p!r}", job=job.name)
        if not job.steps:
            raise ConfigurationError(f"Job '{job.name}' has no steps", job=job.name)
        for step in job.steps:
            if not step.name:
                raise ConfigurationError(f"Job '{job.name}' has a step without a name", job=job.name)
            if (step.run is None) == (step.uses is None):
                raise ConfigurationError(
                    "Step must set exactly one of 'run' or 'uses'",
                    job=job.name,
                    step=step.name,
                )
            if step.run is not None and not step.run.strip():
                raise ConfigurationError("Step command is empty", job=job.name, step=step.name)


# ----------------------------------------------------------------------
# Coordinator
# ----------------------------------------------------------------------

class Pipeline:
    """
    One pipeline invocation.

    Idle -> Triggered -> Running -> Completed(pass|fail), or straight to
    Completed when the trigger does not activate the workflow. Completed
    is terminal: a Pipeline runs at most once.
    """

    def __init__(
        self,
        jobs: Iterable[Job],
        *,
        on: Triggers = DEFAULT_TRIGGERS,
        executor: Optional[Executor] = None,
        arena: Optional[EnvironmentArena] = None,
        fail_fast: bool = False,
        max_workers: Optional[int] = None,
        console: Optional[Console] = None,
    ):
        self.jobs: List[Job] = list(jobs)
        self.on = on
        self.executor = executor or SubprocessExecutor()
        self.arena = arena or EnvironmentArena()
        self.fail_fast = fail_fast
        self.max_workers = max_workers
        self.console = console or get_console()
        self.state = PipelineState.IDLE
        self.result: Optional[PipelineResult] = None
        self._lock = threading.Lock()

    def _advance(self, state: PipelineState) -> None:
        self.state = state
        self.console.print_debug(f"pipeline state: {state.value}")

    def run(self, trigger: Trigger) -> PipelineResult:
        with self._lock:
            if self.state is not PipelineState.IDLE:
                raise RuntimeError(f"Pipeline already {self.state.value}")
            validate_jobs(self.jobs)

            if not self.on.matches(trigger):
                self.result = PipelineResult(trigger=trigger, jobs={}, skipped=True)
                self._advance(PipelineState.COMPLETED)
                return self.result

            self._advance(PipelineState.TRIGGERED)
            self._advance(PipelineState.RUNNING)
            results = self._run_jobs()

            self.result = PipelineResult(trigger=trigger, jobs=results)
            self._advance(PipelineState.COMPLETED)
            return self.result

    def _run_jobs(self) -> Dict[str, JobResult]:
        if not self.jobs:
            return {}

        def one(job: Job) -> JobResult:
            return run_job(
                job,
                self.executor,
                arena=self.arena,
                fail_fast=self.fail_fast,
                max_workers=self.max_workers,
                console=self.console,
            )

        results: Dict[str, JobResult] = {}
        with ThreadPoolExecutor(max_workers=len(self.jobs), thread_name_prefix="matrixci-job") as pool:
            futures = {job.name: pool.submit(one, job) for job in self.jobs}
            # aggregated by job name in declaration order
            for name, fut in futures.items():
                results[name] = fut.result()
        return results


def run_pipeline(
    trigger: Trigger,
    jobs: Iterable[Job],
    *,
    on: Triggers = DEFAULT_TRIGGERS,
    executor: Optional[Executor] = None,
    arena: Optional[EnvironmentArena] = None,
    fail_fast: bool = False,
    max_workers: Optional[int] = None,
    console: Optional[Console] = None,
) -> PipelineResult:
    """
    Run all jobs under `trigger` and aggregate a single verdict.

    Raises ConfigurationError before anything runs if the jobs are
    malformed. A trigger that `on` does not match yields an empty,
    passing, skipped result.
    """
    pipeline = Pipeline(
        jobs,
        on=on,
        executor=executor,
        arena=arena,
        fail_fast=fail_fast,
        max_workers=max_workers,
        console=console,
    )
    return pipeline.run(trigger)
