"""Console output formatting utilities for matrixci."""

from __future__ import annotations

import sys
import threading
from typing import List, Optional

from ..model import ExecutionUnit, JobResult, PipelineResult, StepResult, Trigger


class Console:
    """Centralized console output formatting."""

    def __init__(self, debug: bool = False, stream=None, err_stream=None):
        """
        Initialize console formatter.

        Args:
            debug: If True, show detailed output including stack traces
                and the captured output of passing steps
        """
        self.debug = debug
        self._stream = stream
        self._err_stream = err_stream
        # units run concurrently; keep each message's lines together
        self._lock = threading.Lock()

    @property
    def out(self):
        return self._stream or sys.stdout

    @property
    def err(self):
        return self._err_stream or sys.stderr

    def _emit(self, *lines: str, err: bool = False) -> None:
        target = self.err if err else self.out
        with self._lock:
            for line in lines:
                print(line, file=target)

    def print_header(self, title: str) -> None:
        """Print a section header."""
        self._emit(f"\n{title}", "-" * len(title))

    def print_run_started(self, workflow: str, trigger: Trigger, job_count: int) -> None:
        """Print run start information."""
        self._emit(
            "\nRUN STARTED",
            f"Workflow: {workflow}",
            f"Trigger: {trigger.describe()}",
            f"Jobs: {job_count}",
            "",
        )

    def print_run_skipped(self, trigger: Trigger) -> None:
        self._emit(f"\nRUN SKIPPED: trigger {trigger.describe()} does not activate this workflow")

    def print_unit_start(self, unit: ExecutionUnit) -> None:
        self._emit(f"JOB STARTED: {unit.label}")

    def print_step(self, unit: ExecutionUnit, name: str) -> None:
        self._emit(f"[{unit.label}] STEP: {name}")

    def print_step_result(self, unit: ExecutionUnit, result: StepResult) -> None:
        if result.passed:
            if self.debug and result.output:
                self._emit(*[f"[{unit.label}]   {line}" for line in result.text.rstrip().splitlines()])
            return

        prefix = "STEP ERROR" if result.error else "STEP FAILED"
        lines = [f"[{unit.label}] {prefix}: {result.step_name}", f"Exit code: {result.exit_status}"]
        if result.error:
            lines.append(f"Error: {result.error}")
        tail = result.text.rstrip().splitlines()
        if not self.debug:
            tail = tail[-20:]
        lines.extend(f"  {line}" for line in tail)
        self._emit(*lines)

    def print_unit_cancelled(self, unit: ExecutionUnit) -> None:
        self._emit(f"[{unit.label}] CANCELLED (fail-fast)")

    def print_plan_unit(self, unit: ExecutionUnit) -> None:
        steps = ", ".join(s.name for s in unit.job.steps)
        self._emit(f"  {unit.label}: {steps}")

    def print_plan_job_skipped(self, name: str, reason: str) -> None:
        """Print job skipped in plan."""
        self._emit(f"  {name} (skipped: {reason})")

    def print_job_result(self, result: JobResult) -> None:
        for platform, unit in result.units.items():
            status = unit.status.value.upper()
            line = f"  {result.job_name} ({platform}): {status}"
            failed = unit.failed_step
            if failed is not None:
                line += f" at step '{failed.step_name}' (exit={failed.exit_status})"
            self._emit(line)

    def print_results(self, result: PipelineResult) -> None:
        """Print final results summary: one line per (job, platform)."""
        lines: List[str] = ["\n" + "=" * 40, "RESULTS", "=" * 40]
        self._emit(*lines)
        for job in result.jobs.values():
            self.print_job_result(job)
        verdict = "PASS" if result.overall else "FAIL"
        if result.skipped:
            verdict += " (skipped)"
        self._emit(f"\nPIPELINE: {verdict}")

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
            lines.extend(f"  {d}" for d in details)
        if suggestion:
            lines.append(f"\n{suggestion}")
        self._emit(*lines, err=True)

    def print_exception(self, exc: BaseException) -> None:
        """Print exception, with full traceback only in debug mode."""
        if self.debug:
            import traceback
            self._emit("".join(traceback.format_exception(type(exc), exc, exc.__traceback__)).rstrip(), err=True)
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


def set_console(console: Console) -> None:
    """Set the global console instance."""
    global _console
    _console = console
