from .dsl import cache, checkout, job, on, rust_cache, rust_toolchain, sh, toolchain, wf
from .errors import ConfigurationError, ExecutionError, StepFailureError
from .model import Job, OtherEvent, Platform, PullRequest, PushToBranch, Step, Workflow
from .pipeline import run_pipeline
from .runner import run_job

__all__ = [
    "cache", "checkout", "job", "on", "rust_cache", "rust_toolchain", "sh", "toolchain", "wf",
    "ConfigurationError", "ExecutionError", "StepFailureError",
    "Job", "OtherEvent", "Platform", "PullRequest", "PushToBranch", "Step", "Workflow",
    "run_pipeline", "run_job",
]
