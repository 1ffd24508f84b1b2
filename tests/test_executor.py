from __future__ import annotations

import sys

import pytest

from matrixci.dsl import job, sh
from matrixci.environment import EnvironmentArena
from matrixci.errors import ExecutionError
from matrixci.executor import SubprocessExecutor, _program_of
from matrixci.matrix import expand
from matrixci.model import StepStatus
from matrixci.runner import run_unit

pytestmark = pytest.mark.skipif(sys.platform.startswith("win"), reason="POSIX shell commands")


@pytest.fixture
def env(tmp_path):
    arena = EnvironmentArena(repo_root=tmp_path, cache_root=tmp_path / "cache", work_root=tmp_path / "work")
    unit = expand(job("t", sh("t", "true"), platforms=["linux"], env={"GREETING": "hello"}))[0]
    handle = arena.acquire(unit)
    yield handle
    arena.release(unit)


def test_captures_output_and_exit_status(env) -> None:
    code, out = SubprocessExecutor().execute("echo $GREETING; exit 3", env)

    assert code == 3
    assert out == b"hello\n"


def test_runs_inside_the_unit_workspace(env) -> None:
    code, out = SubprocessExecutor().execute("pwd", env)

    assert code == 0
    assert out.decode().strip().endswith(env.workspace.name)


def test_stderr_is_merged_into_output(env) -> None:
    code, out = SubprocessExecutor().execute("echo oops 1>&2", env)

    assert code == 0
    assert b"oops" in out


def test_unknown_program_is_an_execution_error(env) -> None:
    with pytest.raises(ExecutionError) as exc:
        SubprocessExecutor().execute("definitely-not-a-real-tool --check", env)

    assert exc.value.details["tool"] == "definitely-not-a-real-tool"


def test_program_of_skips_env_assignments() -> None:
    assert _program_of("RUST_LOG=debug cargo test") == "cargo"
    assert _program_of("cargo fmt --check") == "cargo"
    assert _program_of("") is None


def _script(path, body: str):
    path.write_text(f"#!/bin/sh\n{body}\n", encoding="utf-8")
    path.chmod(0o755)
    return path


@pytest.mark.parametrize(
    "command",
    [
        "$SHELL -c true",
        "(mkdir -p sub && cd sub && true)",
        "{ true; }",
        "! false",
    ],
)
def test_shell_syntax_is_left_to_the_shell(env, command) -> None:
    env.env["SHELL"] = "/bin/sh"

    code, _ = SubprocessExecutor().execute(command, env)

    assert code == 0


def test_home_relative_programs_are_expanded_by_the_shell(env, tmp_path) -> None:
    home = tmp_path / "home"
    home.mkdir()
    _script(home / "build.sh", "echo built")
    env.env["HOME"] = str(home)

    for command in ("$HOME/build.sh", "~/build.sh"):
        code, out = SubprocessExecutor().execute(command, env)
        assert code == 0
        assert out == b"built\n"


def test_command_not_found_by_the_shell_keeps_its_output(env) -> None:
    with pytest.raises(ExecutionError) as exc:
        SubprocessExecutor().execute("true && nosuchtool_xyz", env)

    assert exc.value.exit_status == 127
    assert b"nosuchtool_xyz" in exc.value.output
    assert "nosuchtool_xyz" in exc.value.message


def test_command_not_found_output_reaches_the_step_result(tmp_path, console) -> None:
    arena = EnvironmentArena(repo_root=tmp_path, cache_root=tmp_path / "cache", work_root=tmp_path / "work")
    unit = expand(job("lint", sh("s", "true && nosuchtool_xyz"), platforms=["linux"]))[0]

    result = run_unit(unit, arena, SubprocessExecutor(), console)

    failed = result.failed_step
    assert failed is not None
    assert failed.status is StepStatus.ERROR
    assert failed.exit_status == 127
    assert "nosuchtool_xyz" in failed.text
