# matrix.py
from __future__ import annotations

import sys
from dataclasses import replace
from typing import Iterable, List, Optional

from .errors import ConfigurationError
from .model import ExecutionUnit, Job, Platform


def expand(job: Job) -> List[ExecutionUnit]:
    """
    Expand a job's platform matrix into execution units.

    One unit per declared platform, in declaration order, so logs stay
    reproducible across runs.
    """
    if not job.platforms:
        raise ConfigurationError(f"Job '{job.name}' declares no platforms", job=job.name)
    return [ExecutionUnit(job=job, platform=p) for p in job.platforms]


def filter_platforms(job: Job, only: Optional[Iterable[Platform]]) -> Optional[Job]:
    """
    Restrict a job's matrix to `only`, keeping declaration order.

    Returns None when nothing is left (the job does not run here).
    """
    if not only:
        return job
    wanted = set(only)
    kept = tuple(p for p in job.platforms if p in wanted)
    if not kept:
        return None
    return replace(job, platforms=kept)


def host_platform() -> Platform:
    if sys.platform.startswith("win"):
        return Platform.WINDOWS
    if sys.platform == "darwin":
        return Platform.MACOS
    return Platform.LINUX
