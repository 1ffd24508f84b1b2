# environment.py
from __future__ import annotations

import os
import shutil
import tempfile
import threading
from pathlib import Path
from typing import Callable, Dict, List, Optional, Tuple

from .model import ExecutionUnit, Platform


PostHook = Callable[["UnitEnvironment"], None]


class UnitEnvironment:
    """
    Transient environment owned by exactly one execution unit.

    Steps may mutate it (a toolchain step prepends to PATH, checkout fills
    the workspace); nothing here is visible to any other unit and all of it
    is thrown away when the unit finishes.
    """

    def __init__(
        self,
        unit: ExecutionUnit,
        workspace: Path,
        *,
        repo_root: Path,
        cache_root: Path,
        base_env: Optional[Dict[str, str]] = None,
    ):
        self.unit = unit
        self.workspace = workspace
        self.repo_root = repo_root
        self.cache_root = cache_root

        env = dict(os.environ if base_env is None else base_env)
        env.update(unit.job.env)
        env["MATRIXCI"] = "true"
        env["MATRIXCI_JOB"] = unit.job.name
        env["MATRIXCI_PLATFORM"] = unit.platform.value
        env["MATRIXCI_WORKSPACE"] = str(workspace)
        self.env: Dict[str, str] = env

        self._path_prefix: List[str] = []
        self._post_hooks: List[Tuple[str, PostHook]] = []

    # ---- PATH handling ----

    def prepend_path(self, directory: str | Path) -> None:
        d = str(Path(directory).expanduser())
        if d not in self._path_prefix:
            self._path_prefix.insert(0, d)

    @property
    def path(self) -> str:
        parts = list(self._path_prefix)
        base = self.env.get("PATH", "")
        if base:
            parts.append(base)
        return os.pathsep.join(parts)

    def as_env(self) -> Dict[str, str]:
        """Full environment for a command invocation."""
        env = dict(self.env)
        env["PATH"] = self.path
        return env

    # ---- post-unit hooks (e.g. cache save) ----

    def add_post_hook(self, name: str, hook: PostHook) -> None:
        self._post_hooks.append((name, hook))

    @property
    def post_hooks(self) -> List[Tuple[str, PostHook]]:
        return list(self._post_hooks)


class EnvironmentArena:
    """
    Independent environment handles indexed by (job, platform).

    Each handle gets its own temporary workspace under `root`; `release`
    deletes it. The arena itself only guards its index.
    """

    def __init__(
        self,
        *,
        repo_root: str | Path = ".",
        cache_root: str | Path = ".matrixci/cache",
        work_root: str | Path | None = None,
        base_env: Optional[Dict[str, str]] = None,
        keep_workspaces: bool = False,
    ):
        self.repo_root = Path(repo_root).resolve()
        self.cache_root = Path(cache_root).resolve()
        self.work_root = Path(work_root).resolve() if work_root is not None else None
        self.base_env = base_env
        self.keep_workspaces = keep_workspaces
        self._handles: Dict[Tuple[str, Platform], UnitEnvironment] = {}
        self._lock = threading.Lock()

    def acquire(self, unit: ExecutionUnit) -> UnitEnvironment:
        with self._lock:
            if unit.key in self._handles:
                raise RuntimeError(f"Environment for {unit.label} already in use")
            if self.work_root is not None:
                self.work_root.mkdir(parents=True, exist_ok=True)
            prefix = f"matrixci-{unit.job.name}-{unit.platform.value}-"
            workspace = Path(tempfile.mkdtemp(prefix=prefix, dir=self.work_root))
            handle = UnitEnvironment(
                unit,
                workspace,
                repo_root=self.repo_root,
                cache_root=self.cache_root,
                base_env=self.base_env,
            )
            self._handles[unit.key] = handle
            return handle

    def release(self, unit: ExecutionUnit) -> None:
        with self._lock:
            handle = self._handles.pop(unit.key, None)
        if handle is not None and not self.keep_workspaces:
            shutil.rmtree(handle.workspace, ignore_errors=True)

    def active(self) -> List[Tuple[str, Platform]]:
        with self._lock:
            return sorted(self._handles)
