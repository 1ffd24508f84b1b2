# errors.py
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Optional


@dataclass(eq=False)
class CIError(Exception):
    """
    Structured CI error with enough context for:
      - clean CLI output
      - JSON reports
      - debugging without full tracebacks
    """
    kind: str
    message: str
    job: Optional[str] = None
    step: Optional[str] = None
    platform: Optional[str] = None
    details: Dict[str, str] = field(default_factory=dict)

    def __str__(self) -> str:
        lines = [f"{self.kind}: {self.message}"]
        if self.job:
            lines.append(f"job={self.job}")
        if self.platform:
            lines.append(f"platform={self.platform}")
        if self.step:
            lines.append(f"step={self.step}")
        for k, v in self.details.items():
            lines.append(f"{k}={v}")
        return "\n".join(lines)


class ConfigurationError(CIError):
    """Malformed or incomplete declarations. Fatal before any unit starts."""

    def __init__(self, message: str, *, job: str | None = None, step: str | None = None,
                 details: Dict[str, str] | None = None):
        super().__init__(kind="configuration_error", message=message, job=job, step=step,
                         details=details or {})


class ExecutionError(CIError):
    """A step's command or action could not be resolved or invoked."""

    def __init__(self, message: str, *, job: str | None = None, step: str | None = None,
                 platform: str | None = None, details: Dict[str, str] | None = None,
                 exit_status: int = 127, output: bytes = b""):
        super().__init__(kind="execution_error", message=message, job=job, step=step,
                         platform=platform, details=details or {})
        self.exit_status = exit_status
        self.output = output


class StepFailureError(CIError):
    """A step ran but returned a failing exit status."""

    def __init__(self, *, job: str, step: str, platform: str, cmd: str, exit_status: int,
                 output: bytes = b""):
        super().__init__(
            kind="step_failure",
            message=f"step '{step}' failed (exit={exit_status}): {cmd}",
            job=job,
            step=step,
            platform=platform,
            details={},
        )
        self.cmd = cmd
        self.exit_status = exit_status
        self.output = output


TOOL_HINTS = {
    "cargo": "Install Rust via rustup or fix PATH (~/.cargo/bin).",
    "rustup": "Install rustup from https://rustup.rs or fix PATH.",
    "rustc": "Install Rust via rustup or fix PATH.",
    "npm": "Install Node.js (includes npm) or fix PATH.",
    "node": "Install Node.js or fix PATH.",
    "pytest": "Install pytest (e.g., pip install pytest).",
    "ruff": "Install ruff (e.g., pip install ruff).",
    "git": "Install Git or fix PATH.",
    "python3": "Install Python 3 or fix PATH (python3).",
}


def hint_for(tool: str) -> str:
    return TOOL_HINTS.get(tool, f"Install {tool} or fix PATH.")
