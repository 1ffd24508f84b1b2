# actions.py
from __future__ import annotations

import shutil
from pathlib import Path
from typing import Callable, Dict, List, Tuple

from .cache import CacheStore, compute_unit_cache_key
from .environment import UnitEnvironment
from .errors import ExecutionError, StepFailureError
from .executor import Executor
from .model import Step


ActionFn = Callable[[Step, UnitEnvironment, Executor], Tuple[int, bytes]]

CHECKOUT_ALWAYS_IGNORE = (".git", ".matrixci")


def _fail(step: Step, env: UnitEnvironment, cmd: str, exit_status: int, output: bytes) -> StepFailureError:
    return StepFailureError(
        job=env.unit.job.name,
        step=step.name,
        platform=env.unit.platform.value,
        cmd=cmd,
        exit_status=exit_status,
        output=output,
    )


# ---------------------------------------------------------------------
# checkout
# ---------------------------------------------------------------------

def checkout_action(step: Step, env: UnitEnvironment, executor: Executor) -> Tuple[int, bytes]:
    """Copy the repository tree into the unit workspace."""
    src = (env.repo_root / step.with_.get("path", ".")).resolve()
    if not src.is_dir():
        raise ExecutionError(f"checkout source not found: {src}")

    patterns = list(CHECKOUT_ALWAYS_IGNORE) + list(step.with_.get("exclude") or [])
    base_ignore = shutil.ignore_patterns(*patterns)
    workspace = env.workspace.resolve()

    def ignore(directory: str, names: List[str]) -> set:
        skipped = set(base_ignore(directory, names))
        # never copy the workspace into itself when it lives inside the repo
        for name in names:
            if (Path(directory) / name).resolve() == workspace:
                skipped.add(name)
        return skipped

    shutil.copytree(src, workspace, symlinks=True, ignore=ignore, dirs_exist_ok=True)
    count = sum(1 for p in workspace.rglob("*") if p.is_file())
    return 0, f"checked out {src} ({count} files)\n".encode("utf-8")


# ---------------------------------------------------------------------
# cache
# ---------------------------------------------------------------------

def cache_action(step: Step, env: UnitEnvironment, executor: Executor) -> Tuple[int, bytes]:
    """
    Restore cached dirs for this (job, platform). On a miss, registers a
    post-unit hook that saves them once every step has passed.
    """
    dirs = list(step.with_.get("dirs") or [])
    inputs = list(step.with_.get("inputs") or [])
    keep = int(step.with_.get("keep", 3))

    store = CacheStore(env.cache_root)
    key, manifest = compute_unit_cache_key(env.unit, env.workspace, dirs=dirs, inputs=inputs)
    hit = store.restore(env.unit, env.workspace, key, manifest)

    if not hit.hit:
        def save(e: UnitEnvironment) -> None:
            store.save(e.unit, e.workspace, key, manifest, dirs=dirs)
            store.prune(e.unit, keep=keep)

        env.add_post_hook(f"save cache ({key[:12]})", save)

    return 0, f"cache: {hit.reason} ({key[:12]}...)\n".encode("utf-8")


# ---------------------------------------------------------------------
# toolchain
# ---------------------------------------------------------------------

def toolchain_action(step: Step, env: UnitEnvironment, executor: Executor) -> Tuple[int, bytes]:
    """Install (optionally) and expose a toolchain to the rest of the unit."""
    opts = step.with_
    output = b""

    install = opts.get("install")
    if install:
        code, out = executor.execute(install, env)
        output += out
        if code != 0:
            raise _fail(step, env, install, code, output)

    for d in opts.get("bin_dirs") or []:
        env.prepend_path(d)
    env.env.update({k: str(v) for k, v in (opts.get("env") or {}).items()})

    check = opts.get("check") or f"{opts['tool']} --version"
    code, out = executor.execute(check, env)
    output += out
    if code != 0:
        raise _fail(step, env, check, code, output)
    return code, output


ACTIONS: Dict[str, ActionFn] = {
    "checkout": checkout_action,
    "cache": cache_action,
    "toolchain": toolchain_action,
}


def resolve_action(name: str) -> ActionFn:
    try:
        return ACTIONS[name]
    except KeyError:
        raise ExecutionError(
            f"unknown action '{name}'",
            details={"known": ", ".join(sorted(ACTIONS))},
        ) from None
