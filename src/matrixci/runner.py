# runner.py
from __future__ import annotations

import os
import threading
from concurrent.futures import ThreadPoolExecutor
from typing import Dict, List, Optional

from .actions import resolve_action
from .environment import EnvironmentArena, UnitEnvironment
from .errors import CIError, ConfigurationError, ExecutionError, StepFailureError
from .executor import Executor, SubprocessExecutor
from .matrix import expand
from .model import ExecutionUnit, Job, JobResult, Platform, Step, StepResult, StepStatus, UnitResult, UnitStatus
from .ui.console import Console, get_console


def default_workers() -> int:
    c = os.cpu_count() or 2
    return max(1, c - 1)


# ----------------------------------------------------------------------
# Step runner (sequential fail-fast reducer, one unit)
# ----------------------------------------------------------------------

def _invoke(step: Step, env: UnitEnvironment, executor: Executor) -> StepResult:
    """Run one step; raises StepFailureError / ExecutionError on failure."""
    unit = env.unit

    if step.uses is not None:
        action = resolve_action(step.uses)
        code, output = action(step, env, executor)
    elif step.run is not None:
        code, output = executor.execute(step.run, env)
        if code != 0:
            raise StepFailureError(
                job=unit.job.name,
                step=step.name,
                platform=unit.platform.value,
                cmd=step.run,
                exit_status=code,
                output=output,
            )
    else:
        raise ExecutionError("step has neither 'run' nor 'uses'")

    return StepResult(step_name=step.name, exit_status=code, output=output)


def _error_result(step: Step, env: UnitEnvironment, err: Exception) -> StepResult:
    if isinstance(err, StepFailureError):
        return StepResult(
            step_name=step.name,
            exit_status=err.exit_status,
            output=err.output,
            status=StepStatus.FAILED,
        )

    if isinstance(err, CIError):
        err.job = err.job or env.unit.job.name
        err.step = err.step or step.name
        err.platform = err.platform or env.unit.platform.value
        message = err.message
        hint = err.details.get("hint")
        if hint:
            message = f"{message} (hint: {hint})"
        exit_status = getattr(err, "exit_status", 127)
        output = getattr(err, "output", b"")
    else:
        message = f"{type(err).__name__}: {err}"
        exit_status = 1
        output = b""

    return StepResult(
        step_name=step.name,
        exit_status=exit_status,
        output=output,
        status=StepStatus.ERROR,
        error=message,
    )


def run_steps(
    unit: ExecutionUnit,
    env: UnitEnvironment,
    executor: Executor,
    console: Optional[Console] = None,
) -> List[StepResult]:
    """
    Execute the unit's steps in declared order.

    Stops at the first failing step. Steps after it are not run and are
    absent from the returned list.
    """
    console = console or get_console()
    results: List[StepResult] = []

    for step in unit.job.steps:
        console.print_step(unit, step.name)
        try:
            result = _invoke(step, env, executor)
        except Exception as e:  # converted to data at the unit boundary
            result = _error_result(step, env, e)

        results.append(result)
        console.print_step_result(unit, result)
        if not result.passed:
            break

    return results


def _run_post_hooks(env: UnitEnvironment, console: Console) -> None:
    for name, hook in env.post_hooks:
        console.print_step(env.unit, f"Post: {name}")
        try:
            hook(env)
        except Exception as e:
            # post steps never change the unit verdict
            console.print_error(f"post step failed for {env.unit.label}", f"{name}: {e}")


def run_unit(
    unit: ExecutionUnit,
    arena: EnvironmentArena,
    executor: Executor,
    console: Optional[Console] = None,
) -> UnitResult:
    """Run one execution unit inside its own environment, then discard it."""
    console = console or get_console()
    console.print_unit_start(unit)

    try:
        env = arena.acquire(unit)
    except OSError as e:
        setup = StepResult(
            step_name="Set up environment",
            exit_status=1,
            status=StepStatus.ERROR,
            error=f"could not create workspace: {e}",
        )
        console.print_step_result(unit, setup)
        return UnitResult(platform=unit.platform, status=UnitStatus.FAILED, steps=(setup,))

    try:
        steps = run_steps(unit, env, executor, console)
        passed = bool(steps) and all(s.passed for s in steps)
        if passed:
            _run_post_hooks(env, console)
    finally:
        arena.release(unit)

    status = UnitStatus.PASSED if passed else UnitStatus.FAILED
    return UnitResult(platform=unit.platform, status=status, steps=tuple(steps))


# ----------------------------------------------------------------------
# Job orchestrator (fan-out / collect-all across units)
# ----------------------------------------------------------------------

def run_job(
    job: Job,
    executor: Optional[Executor] = None,
    *,
    arena: Optional[EnvironmentArena] = None,
    fail_fast: bool = False,
    max_workers: Optional[int] = None,
    console: Optional[Console] = None,
) -> JobResult:
    """
    Run every execution unit of a job and wait for all of them.

    With fail_fast=False (the default) a failing unit never affects its
    siblings. With fail_fast=True, units that have not started yet when a
    unit fails are recorded as cancelled; running units finish normally.
    A job-level `fail_fast` setting overrides the argument.
    """
    executor = executor or SubprocessExecutor()
    arena = arena or EnvironmentArena()
    console = console or get_console()
    if job.fail_fast is not None:
        fail_fast = job.fail_fast

    units = expand(job)
    if not job.steps:
        raise ConfigurationError(f"Job '{job.name}' has no steps", job=job.name)
    cancel = threading.Event()

    def work(unit: ExecutionUnit) -> UnitResult:
        if cancel.is_set():
            console.print_unit_cancelled(unit)
            return UnitResult(platform=unit.platform, status=UnitStatus.CANCELLED)
        result = run_unit(unit, arena, executor, console)
        if fail_fast and not result.passed:
            cancel.set()
        return result

    workers = max_workers or min(len(units), default_workers())
    collected: Dict[Platform, UnitResult] = {}
    with ThreadPoolExecutor(max_workers=workers, thread_name_prefix=f"matrixci-{job.name}") as pool:
        futures = {unit.platform: pool.submit(work, unit) for unit in units}
        # keyed by platform, in declaration order, regardless of completion order
        for platform, fut in futures.items():
            collected[platform] = fut.result()

    return JobResult(job_name=job.name, units=collected)
