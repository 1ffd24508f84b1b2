# executor.py
from __future__ import annotations

import shlex
import shutil
import subprocess
from pathlib import Path
from typing import Protocol, Tuple

from .environment import UnitEnvironment
from .errors import ExecutionError, hint_for


# Words the shell resolves itself; never looked up on PATH.
SHELL_BUILTINS = frozenset({
    "cd", "echo", "exit", "export", "false", "printf", "pwd", "set", "test",
    "true", "unset", "[", ":", ".", "source", "type", "command", "if", "for",
    "while", "case", "exec", "eval", "read", "shift", "trap", "umask", "wait",
})

COMMAND_NOT_FOUND = 127


class Executor(Protocol):
    """
    Command-execution capability supplied by the host.

    Returns (exit_status, output). Raises ExecutionError when the command
    cannot be resolved or invoked at all.
    """

    def execute(self, command: str, environment: UnitEnvironment) -> Tuple[int, bytes]:
        ...


# Characters that make the first word something only the shell can resolve
# (expansions, subshells, groups, globs, redirections).
SHELL_SYNTAX = frozenset("$`(){}~*?;&|<>!")

SHELL_RESERVED = frozenset({"{", "}", "!", "[[", "until", "select", "function", "time", "coproc"})


def _program_of(command: str) -> str | None:
    try:
        parts = shlex.split(command)
    except ValueError:
        return None
    # skip leading VAR=value assignments
    for part in parts:
        if "=" in part and not part.startswith(("=", "/", ".")) and part.split("=", 1)[0].isidentifier():
            continue
        return part
    return None


class SubprocessExecutor:
    """Run step commands through the host shell, inside the unit workspace."""

    def execute(self, command: str, environment: UnitEnvironment) -> Tuple[int, bytes]:
        self._resolve(command, environment)

        try:
            proc = subprocess.run(
                command,
                shell=True,
                cwd=str(environment.workspace),
                env=environment.as_env(),
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
            )
        except OSError as e:
            raise ExecutionError(
                f"could not invoke command: {e}",
                details={"cmd": command},
                exit_status=1,
            ) from e

        if proc.returncode == COMMAND_NOT_FOUND:
            text = proc.stdout.decode("utf-8", errors="replace").strip()
            last = text.splitlines()[-1] if text else ""
            raise ExecutionError(
                f"command not found by the shell: {last}" if last else "command not found by the shell",
                details={"cmd": command},
                output=proc.stdout,
            )
        return proc.returncode, proc.stdout

    def _resolve(self, command: str, environment: UnitEnvironment) -> None:
        program = _program_of(command)
        if program is None:
            raise ExecutionError("empty or unparsable command", details={"cmd": command})
        if program in SHELL_BUILTINS or program in SHELL_RESERVED:
            return
        if any(ch in SHELL_SYNTAX for ch in program):
            # left to the shell; exit 127 still maps to ExecutionError
            return
        if "/" in program or "\\" in program:
            candidate = Path(program)
            if not candidate.is_absolute():
                candidate = environment.workspace / candidate
            if candidate.exists():
                return
        elif shutil.which(program, path=environment.path) is not None:
            return
        raise ExecutionError(
            f"{program} is not available",
            details={"tool": program, "hint": hint_for(program)},
        )
