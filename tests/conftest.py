from __future__ import annotations

import io
import threading
from typing import Callable, Dict, List, Optional, Tuple

import pytest

from matrixci.environment import EnvironmentArena, UnitEnvironment
from matrixci.errors import ExecutionError
from matrixci.ui.console import Console


Responder = Callable[[str, UnitEnvironment], Tuple[int, bytes]]


class SpyExecutor:
    """
    Records every command it is asked to run.

    `outcomes` maps (command, platform value) or just command to an exit
    status; `unknown` lists commands to reject as unresolvable;
    `responders` may run arbitrary code against the unit environment.
    """

    def __init__(
        self,
        outcomes: Optional[Dict] = None,
        *,
        unknown: Tuple[str, ...] = (),
        responders: Optional[Dict[str, Responder]] = None,
    ) -> None:
        self.outcomes = dict(outcomes or {})
        self.unknown = set(unknown)
        self.responders = dict(responders or {})
        self.calls: List[Tuple[str, str, str]] = []
        self.paths: List[Tuple[str, str, str]] = []
        self._lock = threading.Lock()

    def execute(self, command: str, environment: UnitEnvironment) -> Tuple[int, bytes]:
        unit = environment.unit
        with self._lock:
            self.calls.append((unit.job.name, unit.platform.value, command))
            self.paths.append((unit.job.name, unit.platform.value, environment.path))

        if command in self.unknown:
            raise ExecutionError(f"{command.split()[0]} is not available")
        if command in self.responders:
            return self.responders[command](command, environment)

        code = self.outcomes.get((command, unit.platform.value), self.outcomes.get(command, 0))
        return code, f"{command} on {unit.platform.value}\n".encode("utf-8")

    def commands_for(self, job: str, platform: str) -> List[str]:
        return [c for j, p, c in self.calls if j == job and p == platform]


@pytest.fixture
def console() -> Console:
    return Console(stream=io.StringIO(), err_stream=io.StringIO())


@pytest.fixture
def arena(tmp_path) -> EnvironmentArena:
    repo = tmp_path / "repo"
    repo.mkdir()
    return EnvironmentArena(
        repo_root=repo,
        cache_root=tmp_path / "cache",
        work_root=tmp_path / "work",
        base_env={"PATH": "/usr/bin"},
    )
