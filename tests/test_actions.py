from __future__ import annotations

import tarfile
from pathlib import Path

from matrixci.dsl import cache, checkout, job, sh
from matrixci.model import Platform, StepStatus
from matrixci.runner import run_job

from conftest import SpyExecutor


def _seed_repo(repo: Path) -> None:
    (repo / "src").mkdir()
    (repo / "src" / "lib.rs").write_text("pub fn x() {}\n", encoding="utf-8")
    (repo / "Cargo.lock").write_text("# lock v1\n", encoding="utf-8")
    (repo / ".git").mkdir()
    (repo / ".git" / "HEAD").write_text("ref: refs/heads/main\n", encoding="utf-8")


def test_checkout_copies_the_repository_without_git_metadata(arena, console) -> None:
    _seed_repo(arena.repo_root)
    seen = {}

    def inspect(command, env):
        seen["lib"] = (env.workspace / "src" / "lib.rs").exists()
        seen["git"] = (env.workspace / ".git").exists()
        return 0, b""

    j = job("fmt", checkout(), sh("check", "inspect"), platforms=["linux"])
    result = run_job(j, SpyExecutor(responders={"inspect": inspect}), arena=arena, console=console)

    assert result.passed
    assert seen == {"lib": True, "git": False}


def _build_job():
    return job(
        "test",
        checkout(),
        cache(dirs=["target"], inputs=["Cargo.lock"]),
        sh("build", "cargo build"),
        platforms=["linux"],
    )


def _builder(record: list, exit_status: int = 0):
    def build(command, env):
        artifact = env.workspace / "target" / "debug" / "out.bin"
        record.append(artifact.exists())
        artifact.parent.mkdir(parents=True, exist_ok=True)
        artifact.write_bytes(b"\x00\x01")
        return exit_status, b"compiled\n"
    return build


def test_cache_is_saved_after_a_passing_unit_and_restored_next_time(arena, console) -> None:
    _seed_repo(arena.repo_root)
    existed_before_build: list = []
    spy = SpyExecutor(responders={"cargo build": _builder(existed_before_build)})

    first = run_job(_build_job(), spy, arena=arena, console=console)
    second = run_job(_build_job(), spy, arena=arena, console=console)

    assert first.passed and second.passed
    assert existed_before_build == [False, True]
    assert b"cache miss" in first.units[Platform.LINUX].steps[1].output
    assert b"cache hit" in second.units[Platform.LINUX].steps[1].output
    assert list((arena.cache_root / "test" / "linux").glob("*.tar.gz"))


def test_cache_key_changes_with_inputs(arena, console) -> None:
    _seed_repo(arena.repo_root)
    existed_before_build: list = []
    spy = SpyExecutor(responders={"cargo build": _builder(existed_before_build)})

    run_job(_build_job(), spy, arena=arena, console=console)
    (arena.repo_root / "Cargo.lock").write_text("# lock v2\n", encoding="utf-8")
    run_job(_build_job(), spy, arena=arena, console=console)

    assert existed_before_build == [False, False]


def test_failing_unit_does_not_save_cache(arena, console) -> None:
    _seed_repo(arena.repo_root)
    spy = SpyExecutor(responders={"cargo build": _builder([], exit_status=1)})

    result = run_job(_build_job(), spy, arena=arena, console=console)

    assert result.units[Platform.LINUX].failed_step.status is StepStatus.FAILED
    assert not list(arena.cache_root.rglob("*.tar.gz"))


def test_toolchain_install_failure_fails_the_step(arena, console) -> None:
    from matrixci.dsl import rust_toolchain

    install = "rustup toolchain install stable --profile minimal"
    j = job("clippy", rust_toolchain(), sh("clippy", "cargo clippy"), platforms=["linux"])
    spy = SpyExecutor({install: 1})

    result = run_job(j, spy, arena=arena, console=console)

    unit = result.units[Platform.LINUX]
    assert [s.step_name for s in unit.steps] == ["Setup Rust"]
    assert unit.steps[0].status is StepStatus.FAILED
    assert spy.commands_for("clippy", "linux") == [install]


def test_cache_save_leaves_only_the_artifact_and_manifest(arena, console) -> None:
    _seed_repo(arena.repo_root)
    seen = []

    def inspect(command, env):
        seen.extend(p.name for p in env.workspace.rglob("*"))
        return 0, b""

    spy = SpyExecutor(responders={"cargo build": _builder([]), "inspect": inspect})
    run_job(_build_job(), spy, arena=arena, console=console)
    restored = job(
        "test",
        checkout(),
        cache(dirs=["target"], inputs=["Cargo.lock"]),
        sh("build", "cargo build"),
        sh("inspect", "inspect"),
        platforms=["linux"],
    )

    unit_dir = arena.cache_root / "test" / "linux"
    files = sorted(p.name for p in unit_dir.iterdir())
    assert len(files) == 2
    assert files[0].endswith(".manifest.json")
    assert files[1].endswith(".tar.gz")
    assert not list(arena.cache_root.rglob("*.tmp"))
    with tarfile.open(str(unit_dir / files[1]), mode="r:gz") as tar:
        assert tar.getnames() == ["target/debug/out.bin"]

    # different steps give a different key, so seed that entry first
    run_job(restored, spy, arena=arena, console=console)
    seen.clear()
    result = run_job(restored, spy, arena=arena, console=console)

    assert result.passed
    assert b"cache hit" in result.units[Platform.LINUX].steps[1].output
    assert "out.bin" in seen
    assert not any("manifest" in name for name in seen)
