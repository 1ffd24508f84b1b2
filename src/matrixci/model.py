# model.py
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple, Union


# ---------------------------------------------------------------------
# Triggers
# ---------------------------------------------------------------------

@dataclass(frozen=True)
class PullRequest:
    """A pull request was opened or updated."""

    def describe(self) -> str:
        return "pull_request"


@dataclass(frozen=True)
class PushToBranch:
    """A push landed on `branch`."""
    branch: str

    def describe(self) -> str:
        return f"push ({self.branch})"


@dataclass(frozen=True)
class OtherEvent:
    """Any other CI event (workflow_dispatch, schedule, ...). Never activates a workflow."""
    name: str

    def describe(self) -> str:
        return self.name


Trigger = Union[PullRequest, PushToBranch, OtherEvent]


@dataclass(frozen=True)
class Triggers:
    """
    Activation conditions of a workflow.

    Defaults mirror the usual verification gate: every pull request,
    plus pushes to main.
    """
    pull_request: bool = True
    push_branches: Tuple[str, ...] = ("main",)

    def matches(self, trigger: Trigger) -> bool:
        if isinstance(trigger, PullRequest):
            return self.pull_request
        if isinstance(trigger, PushToBranch):
            return trigger.branch in self.push_branches
        return False


DEFAULT_TRIGGERS = Triggers()


# ---------------------------------------------------------------------
# Platforms
# ---------------------------------------------------------------------

class Platform(str, Enum):
    LINUX = "linux"
    MACOS = "macos"
    WINDOWS = "windows"

    @classmethod
    def parse(cls, label: Union[str, "Platform"]) -> "Platform":
        """
        Accept a platform tag or a hosted-runner label.

            Platform.parse("ubuntu-latest")  -> Platform.LINUX
            Platform.parse("macOS-14")       -> Platform.MACOS
        """
        # Import here to avoid circular import
        from .errors import ConfigurationError

        if isinstance(label, Platform):
            return label
        key = str(label).strip().lower()
        for prefix, platform in _PLATFORM_PREFIXES:
            if key == prefix or key.startswith(prefix + "-"):
                return platform
        raise ConfigurationError(
            f"Unknown platform {label!r}",
            details={"known": ", ".join(p.value for p in cls)},
        )

    def __str__(self) -> str:
        return self.value


_PLATFORM_PREFIXES = [
    ("linux", Platform.LINUX),
    ("ubuntu", Platform.LINUX),
    ("macos", Platform.MACOS),
    ("darwin", Platform.MACOS),
    ("windows", Platform.WINDOWS),
    ("win", Platform.WINDOWS),
]


# ---------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------

@dataclass(frozen=True)
class Step:
    """
    A single step inside a CI job.

    Either `run` (a shell command) or `uses` (a built-in action name with
    its parameters in `with_`) is set, never both.
    """
    name: str
    run: Optional[str] = None
    uses: Optional[str] = None
    with_: Dict[str, Any] = field(default_factory=dict, hash=False, compare=False)

    @property
    def command(self) -> str:
        """Human-readable invocation, used in diagnostics."""
        if self.run is not None:
            return self.run
        return f"uses: {self.uses}"


@dataclass(frozen=True)
class Job:
    """
    A verification job: one step sequence, run once per platform.

    `fail_fast` overrides the pipeline-wide cross-platform policy when set.
    """
    name: str
    platforms: Tuple[Platform, ...]
    steps: Tuple[Step, ...]
    env: Dict[str, str] = field(default_factory=dict, hash=False, compare=False)
    fail_fast: Optional[bool] = None


@dataclass(frozen=True)
class Workflow:
    jobs: Tuple[Job, ...]
    on: Triggers = DEFAULT_TRIGGERS


@dataclass(frozen=True)
class ExecutionUnit:
    """One (job, platform) pairing: the unit of scheduling."""
    job: Job
    platform: Platform

    @property
    def key(self) -> Tuple[str, Platform]:
        return self.job.name, self.platform

    @property
    def label(self) -> str:
        return f"{self.job.name} ({self.platform})"


# ---------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------

class StepStatus(str, Enum):
    PASSED = "passed"
    FAILED = "failed"   # ran, returned a failing exit status
    ERROR = "error"     # could not be resolved or invoked


class UnitStatus(str, Enum):
    PASSED = "passed"
    FAILED = "failed"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class StepResult:
    step_name: str
    exit_status: int
    output: bytes = b""
    status: StepStatus = StepStatus.PASSED
    error: Optional[str] = None

    @property
    def passed(self) -> bool:
        return self.status is StepStatus.PASSED

    @property
    def text(self) -> str:
        return self.output.decode("utf-8", errors="replace")

    def to_dict(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {
            "step": self.step_name,
            "status": self.status.value,
            "exit_status": self.exit_status,
            "output": self.text[-4000:],
        }
        if self.error is not None:
            d["error"] = self.error
        return d


@dataclass(frozen=True)
class UnitResult:
    platform: Platform
    status: UnitStatus
    steps: Tuple[StepResult, ...] = ()

    @property
    def passed(self) -> bool:
        return self.status is UnitStatus.PASSED

    @property
    def failed_step(self) -> Optional[StepResult]:
        """The step that stopped the unit, if any (always the last one run)."""
        if self.steps and not self.steps[-1].passed:
            return self.steps[-1]
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "platform": self.platform.value,
            "status": self.status.value,
            "steps": [s.to_dict() for s in self.steps],
        }


@dataclass(frozen=True)
class JobResult:
    job_name: str
    units: Dict[Platform, UnitResult]

    @property
    def passed(self) -> bool:
        return all(u.passed for u in self.units.values())

    def to_dict(self) -> Dict[str, Any]:
        return {
            "job": self.job_name,
            "passed": self.passed,
            "platforms": {p.value: u.to_dict() for p, u in self.units.items()},
        }


@dataclass(frozen=True)
class PipelineResult:
    trigger: Trigger
    jobs: Dict[str, JobResult] = field(default_factory=dict)
    skipped: bool = False

    @property
    def overall(self) -> bool:
        return all(j.passed for j in self.jobs.values())

    @property
    def failed_jobs(self) -> List[str]:
        return [name for name, j in self.jobs.items() if not j.passed]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "trigger": self.trigger.describe(),
            "skipped": self.skipped,
            "overall": "pass" if self.overall else "fail",
            "jobs": {name: j.to_dict() for name, j in self.jobs.items()},
        }
