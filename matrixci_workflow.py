# matrixci_workflow.py
# Verification gate for a Rust crate: formatting, clippy and tests on every
# pull request and every push to main.
from __future__ import annotations

from matrixci.dsl import checkout, job, on, rust_cache, rust_toolchain, sh, wf

ALL = ["ubuntu-latest", "windows-latest", "macOS-latest"]


def rust_job(name: str, command: str, *, step: str, platforms=ALL):
    return job(
        name,
        checkout(),
        rust_cache(),
        rust_toolchain(),
        sh(step, command),
        platforms=platforms,
    )


def workflow():
    return wf(
        rust_job("fmt", "cargo fmt --check", step="Run Check"),
        rust_job("clippy", "cargo clippy --all", step="Run Clippy"),
        # tests share on-disk state, keep them single-threaded
        rust_job("test", "cargo test -- --test-threads=1", step="Run Tests",
                 platforms=["ubuntu-latest", "macOS-latest"]),
        on=on(pull_request=True, push=["main"]),
    )
