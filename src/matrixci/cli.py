# cli.py
from __future__ import annotations

import json
import os
import subprocess
import sys
from pathlib import Path
from typing import List, Optional, Tuple

import click

from matrixci.environment import EnvironmentArena
from matrixci.errors import ConfigurationError
from matrixci.git import current_branch
from matrixci.loader import DEFAULT_WORKFLOW_FILE, find_workflow_files, load_workflow
from matrixci.matrix import expand, filter_platforms, host_platform
from matrixci.model import Job, OtherEvent, Platform, PullRequest, PushToBranch, Trigger, Workflow
from matrixci.pipeline import run_pipeline, validate_jobs
from matrixci.ui.console import Console, get_console, set_console


EXIT_FAILED = 1
EXIT_CONFIG = 2
EXIT_INTERRUPTED = 130


def discover_workflow(workflow_arg: str | None) -> Path:
    """
    Resolve the workflow file from --workflow or by discovery in cwd.

    Raises ConfigurationError when nothing (or more than one candidate)
    is found.
    """
    if workflow_arg:
        workflow_path = Path(workflow_arg)
        if not workflow_path.exists() and workflow_path.suffix != ".py":
            workflow_path = Path(str(workflow_path) + ".py")
        if not workflow_path.exists():
            raise ConfigurationError(f"Could not find workflow file: {workflow_arg}")
        return workflow_path

    workflow_files = find_workflow_files()
    if not workflow_files:
        raise ConfigurationError(
            "No workflow file found",
            details={"looked_for": f"{DEFAULT_WORKFLOW_FILE}, *_workflow.py"},
        )
    if len(workflow_files) > 1 and workflow_files[0].name != DEFAULT_WORKFLOW_FILE:
        raise ConfigurationError(
            "Multiple workflow files found; pass --workflow",
            details={"found": ", ".join(str(f) for f in workflow_files)},
        )
    return workflow_files[0]


def detect_trigger(event: str | None, branch: str | None) -> Trigger:
    """
    Work out which event this run represents.

    Explicit --event wins; otherwise GITHUB_EVENT_NAME is honoured, and a
    plain local run counts as a push to the current branch. Any other
    event becomes an OtherEvent, which skips the run.
    """
    event = event or os.environ.get("GITHUB_EVENT_NAME") or "push"
    if event in ("pull_request", "pull_request_target"):
        return PullRequest()
    if event != "push":
        return OtherEvent(event)

    branch = branch or os.environ.get("GITHUB_REF_NAME")
    if not branch:
        try:
            branch = current_branch()
        except (subprocess.CalledProcessError, FileNotFoundError):
            branch = None
    if not branch:
        raise ConfigurationError("Could not determine the pushed branch; pass --branch")
    return PushToBranch(branch)


def _select_jobs(wf: Workflow, platforms: Tuple[str, ...], console: Console) -> List[Job]:
    only = [host_platform() if p == "host" else Platform.parse(p) for p in platforms]
    selected: List[Job] = []
    for job in wf.jobs:
        kept = filter_platforms(job, only)
        if kept is None:
            console.print_plan_job_skipped(job.name, "no matching platform")
            continue
        selected.append(kept)
    return selected


@click.group()
@click.option(
    "--debug",
    is_flag=True,
    default=False,
    help="Enable debug mode (show stack traces and full step output)",
)
@click.pass_context
def cli(ctx, debug):
    """matrixci: multi-platform build-verification runner."""
    console = Console(debug=debug)
    set_console(console)
    ctx.ensure_object(dict)
    ctx.obj["debug"] = debug


@cli.command()
@click.option("--workflow", default=None, help=f"Workflow file path (defaults to {DEFAULT_WORKFLOW_FILE} if present)")
@click.option("--event", type=click.Choice(["pull_request", "push"]), default=None, help="Triggering event")
@click.option("--branch", default=None, help="Pushed branch (defaults to $GITHUB_REF_NAME or the current git branch)")
@click.option("--platform", "platforms", multiple=True, help="Only run units for these platforms (repeatable; 'host' = this machine)")
@click.option("--workers", default=None, type=int, help="Parallel units per job")
@click.option("--fail-fast/--no-fail-fast", default=False, show_default=True,
              help="Cancel not-yet-started platform units once one fails")
@click.option("--repo-root", default=".", show_default=True, help="Repository checked out by checkout steps")
@click.option("--cache-dir", default=".matrixci/cache", show_default=True, help="Cache directory")
@click.option("--keep-workspaces", is_flag=True, default=False, help="Do not delete unit workspaces")
@click.option("--report", "report_path", default=None, type=click.Path(dir_okay=False),
              help="Write a JSON report of the run")
@click.pass_context
def run(ctx, workflow, event, branch, platforms, workers, fail_fast, repo_root, cache_dir,
        keep_workspaces, report_path):
    """Run a matrixci workflow and exit 0 iff every job passed."""
    console = get_console()

    try:
        workflow_path = discover_workflow(workflow)
        wf = load_workflow(workflow_path)
        validate_jobs(wf.jobs)
        trigger = detect_trigger(event, branch)
        jobs = _select_jobs(wf, platforms, console)

        if wf.on.matches(trigger):
            console.print_run_started(workflow=workflow_path.name, trigger=trigger, job_count=len(jobs))
        else:
            console.print_run_skipped(trigger)

        arena = EnvironmentArena(
            repo_root=repo_root,
            cache_root=cache_dir,
            keep_workspaces=keep_workspaces,
        )
        result = run_pipeline(
            trigger,
            jobs,
            on=wf.on,
            arena=arena,
            fail_fast=fail_fast,
            max_workers=workers,
            console=console,
        )
    except ConfigurationError as e:
        console.print_error("Invalid configuration", e.message, details=[f"{k}: {v}" for k, v in e.details.items()])
        if e.job:
            console.print_info(f"job={e.job}" + (f" step={e.step}" if e.step else ""))
        sys.exit(EXIT_CONFIG)
    except KeyboardInterrupt:
        console.print_info("\nInterrupted by user")
        sys.exit(EXIT_INTERRUPTED)
    except Exception as e:
        console.print_exception(e)
        sys.exit(EXIT_FAILED)

    console.print_results(result)

    if report_path:
        try:
            Path(report_path).write_text(json.dumps(result.to_dict(), indent=2), encoding="utf-8")
        except OSError as e:
            console.print_error("Could not write report", str(e), details=[f"path: {report_path}"])
            sys.exit(EXIT_FAILED)
        console.print_info(f"Report written to {report_path}")

    if not result.overall:
        sys.exit(EXIT_FAILED)


@cli.command()
@click.option("--workflow", default=None, help=f"Workflow file path (defaults to {DEFAULT_WORKFLOW_FILE} if present)")
@click.option("--platform", "platforms", multiple=True, help="Only show units for these platforms (repeatable; 'host' = this machine)")
def plan(workflow, platforms):
    """Print the execution units a run would schedule."""
    console = get_console()
    try:
        workflow_path = discover_workflow(workflow)
        wf = load_workflow(workflow_path)
        validate_jobs(wf.jobs)
        console.print_header(f"PLAN ({workflow_path.name})")
        on_desc = []
        if wf.on.pull_request:
            on_desc.append("pull_request")
        if wf.on.push_branches:
            on_desc.append(f"push ({', '.join(wf.on.push_branches)})")
        console.print_info(f"On: {', '.join(on_desc) or 'never'}")
        for job in _select_jobs(wf, platforms, console):
            for unit in expand(job):
                console.print_plan_unit(unit)
    except ConfigurationError as e:
        console.print_error("Invalid configuration", e.message, details=[f"{k}: {v}" for k, v in e.details.items()])
        sys.exit(EXIT_CONFIG)


def main(argv: Optional[List[str]] = None) -> None:
    cli(args=argv)


if __name__ == "__main__":
    main()
