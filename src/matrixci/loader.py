# loader.py
from __future__ import annotations

import runpy
from pathlib import Path
from typing import List

from .errors import ConfigurationError
from .model import DEFAULT_TRIGGERS, Job, Workflow


DEFAULT_WORKFLOW_FILE = "matrixci_workflow.py"


def find_workflow_files(directory: str | Path = ".") -> List[Path]:
    """`matrixci_workflow.py` first, then any other `*_workflow.py`."""
    current_dir = Path(directory)
    workflow_files = []

    default_workflow = current_dir / DEFAULT_WORKFLOW_FILE
    if default_workflow.exists():
        workflow_files.append(default_workflow)

    for path in sorted(current_dir.glob("*_workflow.py")):
        if path != default_workflow:
            workflow_files.append(path)

    return workflow_files


def _coerce(obj, source: Path) -> Workflow:
    if isinstance(obj, Workflow):
        return obj
    if isinstance(obj, (list, tuple)) and all(isinstance(j, Job) for j in obj):
        return Workflow(jobs=tuple(obj), on=DEFAULT_TRIGGERS)
    raise ConfigurationError(
        "Workflow must return/define a Workflow or a list of Job. "
        "Define workflow() -> wf(job(...), ...) or JOBS = [job(...), ...].",
        details={"file": str(source)},
    )


def load_workflow(path: str | Path) -> Workflow:
    """
    Load a workflow from a python file path.

    The file must define one of:
      - workflow() -> Workflow | List[Job]
      - WORKFLOW = wf(...)
      - JOBS = [Job, ...]
    """
    wf_path = Path(path).expanduser().resolve()
    if not wf_path.exists():
        raise ConfigurationError(f"Workflow file not found: {wf_path}")
    if wf_path.suffix != ".py":
        raise ConfigurationError(f"Workflow must be a .py file, got: {wf_path.name}")

    module_name = f"matrixci_workflow_{wf_path.stem}"
    try:
        globals_dict = runpy.run_path(str(wf_path), run_name=module_name)
    except ConfigurationError:
        raise
    except Exception as e:
        raise ConfigurationError(
            f"Workflow file raised {type(e).__name__}: {e}",
            details={"file": str(wf_path)},
        ) from e

    if "workflow" in globals_dict and callable(globals_dict["workflow"]):
        return _coerce(globals_dict["workflow"](), wf_path)
    if "WORKFLOW" in globals_dict:
        return _coerce(globals_dict["WORKFLOW"], wf_path)
    if "JOBS" in globals_dict:
        return _coerce(globals_dict["JOBS"], wf_path)

    raise ConfigurationError(
        "Workflow file defines neither workflow(), WORKFLOW nor JOBS",
        details={"file": str(wf_path)},
    )
