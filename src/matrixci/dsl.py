# src/matrixci/dsl.py
from __future__ import annotations

from typing import Any, Dict, Iterable, List, Optional, Sequence, Union

from .errors import ConfigurationError
from .model import DEFAULT_TRIGGERS, Job, Platform, Step, Triggers, Workflow


ALL_PLATFORMS = (Platform.LINUX, Platform.MACOS, Platform.WINDOWS)


# ---------------------------------------------------------------------
# Step helpers
# ---------------------------------------------------------------------

def sh(name: str, cmd: str) -> Step:
    """Create a shell step."""
    return Step(name=name, run=cmd)


def checkout(name: str = "Checkout", *, path: str = ".", exclude: Sequence[str] = ()) -> Step:
    """Copy the repository (or `path` inside it) into the unit workspace."""
    return Step(name=name, uses="checkout", with_={"path": path, "exclude": list(exclude)})


def cache(
    name: str = "Restore cache",
    *,
    dirs: Sequence[str],
    inputs: Sequence[str] = (),
    keep: int = 3,
) -> Step:
    """
    Restore `dirs` for this (job, platform) from the cache store.

    The key is derived from the contents of `inputs` at the time the step
    runs, so put it after checkout. The dirs are saved back when every
    step of the unit passed.
    """
    if not dirs:
        raise ConfigurationError(f"cache step {name!r} needs at least one dir")
    return Step(name=name, uses="cache", with_={"dirs": list(dirs), "inputs": list(inputs), "keep": keep})


def rust_cache(name: str = "Setup Rust Cache") -> Step:
    return cache(name, dirs=["target"], inputs=["Cargo.lock", "Cargo.toml", "**/Cargo.toml"])


def toolchain(
    name: str,
    *,
    tool: str,
    check: Optional[str] = None,
    install: Optional[str] = None,
    bin_dirs: Sequence[str] = (),
    env: Optional[Dict[str, str]] = None,
) -> Step:
    """
    Make a toolchain available to the later steps of the same unit.

    `install` runs first (if given), then `bin_dirs` are prepended to PATH
    and `env` is merged in, then `check` (default: `<tool> --version`)
    must succeed.
    """
    return Step(
        name=name,
        uses="toolchain",
        with_={
            "tool": tool,
            "check": check or f"{tool} --version",
            "install": install,
            "bin_dirs": list(bin_dirs),
            "env": dict(env or {}),
        },
    )


def rust_toolchain(name: str = "Setup Rust", channel: str = "stable") -> Step:
    return toolchain(
        name,
        tool="cargo",
        install=f"rustup toolchain install {channel} --profile minimal",
        bin_dirs=["~/.cargo/bin"],
        env={"RUSTUP_TOOLCHAIN": channel},
    )


# ---------------------------------------------------------------------
# Job helper
# ---------------------------------------------------------------------

def job(
    name: str,
    *steps: Step,  # allow: job("x", sh(...), sh(...))
    platforms: Optional[Iterable[Union[str, Platform]]] = None,
    steps_list: Optional[List[Step]] = None,
    env: Optional[Dict[str, Any]] = None,
    fail_fast: Optional[bool] = None,
) -> Job:
    """
    Declare a job. Platforms accept tags or runner labels; the default is
    every supported platform.
    """
    steps_final: List[Step] = []
    if steps_list:
        steps_final.extend(list(steps_list))
    steps_final.extend(list(steps))

    if not steps_final:
        raise ConfigurationError(f"job({name!r}) must have at least one step", job=name)

    declared = list(platforms) if platforms is not None else list(ALL_PLATFORMS)
    if not declared:
        raise ConfigurationError(f"job({name!r}) must declare at least one platform", job=name)

    parsed: List[Platform] = []
    for label in declared:
        p = Platform.parse(label)
        if p in parsed:
            raise ConfigurationError(f"job({name!r}) lists platform {p} twice", job=name)
        parsed.append(p)

    return Job(
        name=name,
        platforms=tuple(parsed),
        steps=tuple(steps_final),
        # force values to str for env compatibility
        env={k: str(v) for k, v in (env or {}).items()},
        fail_fast=fail_fast,
    )


# ---------------------------------------------------------------------
# Triggers + workflow
# ---------------------------------------------------------------------

def on(*, pull_request: bool = True, push: Sequence[str] = ("main",)) -> Triggers:
    """on(pull_request=True, push=["main"])"""
    return Triggers(pull_request=pull_request, push_branches=tuple(push))


def wf(*jobs: Job, on: Triggers = DEFAULT_TRIGGERS) -> Workflow:
    """
    Workflow definition helper.

        from matrixci import wf, job, sh

        def workflow():
            return wf(
                job(...),
                job(...),
            )
    """
    return Workflow(jobs=tuple(jobs), on=on)
