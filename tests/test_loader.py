from __future__ import annotations

from pathlib import Path

import pytest

from matrixci.errors import ConfigurationError
from matrixci.loader import find_workflow_files, load_workflow
from matrixci.model import Platform, PullRequest, PushToBranch

ROOT = Path(__file__).resolve().parents[1]


def test_loads_the_bundled_rust_workflow() -> None:
    wf = load_workflow(ROOT / "matrixci_workflow.py")

    assert [j.name for j in wf.jobs] == ["fmt", "clippy", "test"]
    assert wf.jobs[0].platforms == (Platform.LINUX, Platform.WINDOWS, Platform.MACOS)
    assert wf.jobs[2].platforms == (Platform.LINUX, Platform.MACOS)
    assert [s.name for s in wf.jobs[1].steps] == ["Checkout", "Setup Rust Cache", "Setup Rust", "Run Clippy"]
    assert wf.on.matches(PullRequest())
    assert wf.on.matches(PushToBranch("main"))


def test_loads_jobs_list(tmp_path) -> None:
    path = tmp_path / "lint_workflow.py"
    path.write_text(
        "from matrixci import job, sh\n"
        "JOBS = [job('lint', sh('ruff', 'ruff check .'), platforms=['linux'])]\n",
        encoding="utf-8",
    )

    wf = load_workflow(path)

    assert [j.name for j in wf.jobs] == ["lint"]


def test_wrong_return_type_is_a_configuration_error(tmp_path) -> None:
    path = tmp_path / "bad_workflow.py"
    path.write_text("def workflow():\n    return 42\n", encoding="utf-8")

    with pytest.raises(ConfigurationError):
        load_workflow(path)


def test_errors_inside_the_workflow_file_are_configuration_errors(tmp_path) -> None:
    path = tmp_path / "broken_workflow.py"
    path.write_text("from matrixci import job\nJOBS = [job('empty')]\n", encoding="utf-8")

    with pytest.raises(ConfigurationError) as exc:
        load_workflow(path)
    assert exc.value.job == "empty"


def test_missing_or_non_python_file(tmp_path) -> None:
    with pytest.raises(ConfigurationError):
        load_workflow(tmp_path / "nope.py")
    yml = tmp_path / "ci.yml"
    yml.write_text("jobs: {}\n", encoding="utf-8")
    with pytest.raises(ConfigurationError):
        load_workflow(yml)


def test_find_workflow_files_prefers_the_default_name(tmp_path) -> None:
    (tmp_path / "other_workflow.py").write_text("", encoding="utf-8")
    (tmp_path / "matrixci_workflow.py").write_text("", encoding="utf-8")

    found = find_workflow_files(tmp_path)

    assert [p.name for p in found] == ["matrixci_workflow.py", "other_workflow.py"]
