from __future__ import annotations

import pytest

from matrixci.dsl import cache, checkout, job, on, rust_toolchain, sh, toolchain, wf
from matrixci.errors import ConfigurationError
from matrixci.model import Platform, PullRequest, PushToBranch


def test_job_defaults_to_every_platform() -> None:
    j = job("lint", sh("clippy", "cargo clippy --all"))

    assert j.platforms == (Platform.LINUX, Platform.MACOS, Platform.WINDOWS)
    assert [s.name for s in j.steps] == ["clippy"]


def test_job_without_steps_is_rejected() -> None:
    with pytest.raises(ConfigurationError):
        job("empty", platforms=["linux"])


def test_job_with_empty_platform_list_is_rejected() -> None:
    with pytest.raises(ConfigurationError):
        job("fmt", sh("check", "cargo fmt --check"), platforms=[])


def test_job_rejects_duplicate_platforms() -> None:
    with pytest.raises(ConfigurationError):
        job("fmt", sh("check", "x"), platforms=["ubuntu-latest", "linux"])


def test_job_env_values_are_strings() -> None:
    j = job("t", sh("t", "cargo test"), env={"RUST_BACKTRACE": 1})

    assert j.env == {"RUST_BACKTRACE": "1"}


def test_step_helpers_build_actions() -> None:
    assert checkout().uses == "checkout"
    c = cache(dirs=["target"], inputs=["Cargo.lock"])
    assert c.uses == "cache"
    assert c.with_["dirs"] == ["target"]

    t = toolchain("Setup Node", tool="node")
    assert t.with_["check"] == "node --version"

    r = rust_toolchain()
    assert r.with_["tool"] == "cargo"
    assert r.with_["env"] == {"RUSTUP_TOOLCHAIN": "stable"}


def test_cache_requires_dirs() -> None:
    with pytest.raises(ConfigurationError):
        cache(dirs=[])


def test_triggers_match_pull_requests_and_listed_branches() -> None:
    triggers = on(pull_request=True, push=["main"])

    assert triggers.matches(PullRequest())
    assert triggers.matches(PushToBranch("main"))
    assert not triggers.matches(PushToBranch("feature/x"))
    assert not on(pull_request=False, push=[]).matches(PullRequest())


def test_wf_collects_jobs_in_order() -> None:
    w = wf(job("a", sh("a", "true")), job("b", sh("b", "true")))

    assert [j.name for j in w.jobs] == ["a", "b"]
    assert w.on.push_branches == ("main",)
