# cli.py
from __future__ import annotations

import json
import subprocess
import sys
from pathlib import Path

import click

from matrixci import settings
from matrixci.cache import CacheCoordinator, CacheStore
from matrixci.errors import CacheUnavailable
from matrixci.git_facts.git import current_branch, repo_name
from matrixci.matrix import select
from matrixci.model import NOT_TRIGGERED
from matrixci.runner import load_workflow, run_pipeline
from matrixci.toolchain import toolchain_version
from matrixci.triggers import EVENT_KINDS, PULL_REQUEST, PUSH, Event
from matrixci.ui.console import Console, get_console, set_console


def find_workflow_files(root: Path = Path(".")) -> list[Path]:
    """
    Find all workflow files in a directory.

    Returns:
        List of Path objects for workflow files
    """
    workflow_files = []
    default_workflow = root / settings.DEFAULT_WORKFLOW
    if default_workflow.exists():
        workflow_files.append(default_workflow)

    for path in root.glob("*_workflow.py"):
        if path != default_workflow:
            workflow_files.append(path)

    return sorted(workflow_files)


def discover_workflow(workflow_arg: str | None) -> Path:
    """
    Discover workflow file from argument or default.

    Raises:
        SystemExit: If workflow cannot be found or multiple workflows exist
    """
    console = get_console()

    if workflow_arg:
        workflow_path = Path(workflow_arg)
        if not workflow_path.exists() and workflow_path.suffix != ".py":
            workflow_path = Path(str(workflow_path) + ".py")
        if not workflow_path.exists():
            console.print_error(
                "Workflow file not found",
                f"Could not find workflow file: {workflow_arg}",
                suggestion="Create a workflow file or specify a different path:\n  matrixci run --workflow my_workflow.py",
            )
            sys.exit(1)
        return workflow_path

    workflow_files = find_workflow_files()

    if len(workflow_files) == 0:
        console.print_error(
            "No workflow file found",
            "Could not find any workflow files.",
            details=["Looked for:", f"  {settings.DEFAULT_WORKFLOW}", "  *_workflow.py"],
            suggestion=f"Create a workflow file:\n  {settings.DEFAULT_WORKFLOW}",
        )
        sys.exit(1)

    if len(workflow_files) > 1:
        file_list = "\n".join(f"  {f}" for f in workflow_files)
        console.print_error(
            "Multiple workflow files found",
            "Found multiple workflow files. Please specify which one to use:",
            details=[file_list],
            suggestion=f"Specify a workflow explicitly:\n  matrixci run --workflow {settings.DEFAULT_WORKFLOW}",
        )
        sys.exit(1)

    return workflow_files[0]


def resolve_event(kind: str | None, branch: str | None, base: str | None) -> Event | None:
    """
    Build the triggering event from CLI options.

    No --event and no --branch: run unconditionally (local invocation).
    --branch alone: a push of that branch.
    """
    if kind is None and branch is None:
        return None

    if branch is None:
        try:
            branch = current_branch()
        except (subprocess.CalledProcessError, FileNotFoundError):
            raise click.UsageError("Could not determine the current git branch; pass --branch")

    kind = kind or PUSH
    if kind == PULL_REQUEST and base is None:
        base = settings.MAIN_BRANCH
    return Event(kind=kind, branch=branch, base=base)


def _load(ctx, workflow):
    console = get_console()
    workflow_path = discover_workflow(workflow)
    try:
        return workflow_path, load_workflow(workflow_path)
    except Exception as e:
        console.print_error(
            "Failed to load workflow",
            f"Could not load workflow from {workflow_path}",
            details=[str(e)],
        )
        if ctx.obj.get("debug", False):
            import traceback
            traceback.print_exc()
        sys.exit(1)


@click.group()
@click.option(
    "--debug",
    is_flag=True,
    default=False,
    help="Enable debug mode (show stack traces and detailed output)",
)
@click.pass_context
def cli(ctx, debug):
    """matrixci: matrix build-verification pipeline runner."""
    console = Console(debug=debug)
    set_console(console)
    ctx.ensure_object(dict)
    ctx.obj["debug"] = debug


@cli.command()
@click.option("--workflow", default=None, help=f"Workflow file path (defaults to {settings.DEFAULT_WORKFLOW} if present)")
@click.option("--workers", default=settings.WORKERS, type=int, help="Number of configurations run in parallel")
@click.option("--cache-dir", default=settings.CACHE_DIR, show_default=True, help="Cache directory")
@click.option("--cache/--no-cache", "use_cache", default=True, help="Restore and persist the toolchain cache")
@click.option("--workspace", default=".", show_default=True, help="Directory the steps run in")
@click.option("--event", "event_kind", type=click.Choice(EVENT_KINDS), default=None, help="Triggering event kind")
@click.option("--branch", default=None, help="Pushed branch, or the head branch of a pull request")
@click.option("--base", default=None, help="Pull request base branch")
@click.option("--target", "targets", multiple=True, help="Only run these targets (repeatable)")
@click.option("--json", "as_json", is_flag=True, default=False, help="Print the result as JSON")
@click.pass_context
def run(ctx, workflow, workers, cache_dir, use_cache, workspace, event_kind, branch, base, targets, as_json):
    """Run a pipeline across its target matrix."""
    console = get_console()
    workflow_path, pipeline = _load(ctx, workflow)

    try:
        event = resolve_event(event_kind, branch, base)

        console.print_run_started(
            repository=repo_name(workspace),
            pipeline=f"{pipeline.name} ({workflow_path.name})",
            target_count=len(select(pipeline.targets, targets)),
            event=str(event) if event else None,
        )

        result = run_pipeline(
            pipeline,
            workspace=workspace,
            cache_root=cache_dir if use_cache else None,
            max_workers=workers,
            event=event,
            targets=targets or None,
        )

        if result.status == NOT_TRIGGERED:
            if as_json:
                click.echo(json.dumps(result.to_dict(), indent=2))
            return

        console.print_results(result)
        if as_json:
            click.echo(json.dumps(result.to_dict(), indent=2))

        if not result.succeeded:
            sys.exit(1)

    except KeyboardInterrupt:
        console.print_info("\nInterrupted by user")
        sys.exit(130)
    except click.UsageError:
        raise
    except Exception as e:
        console.print_exception(e)
        sys.exit(1)


@cli.command()
@click.option("--workflow", default=None, help="Workflow file path")
@click.pass_context
def plan(ctx, workflow):
    """Show the matrix and which steps run on each target."""
    console = get_console()
    _, pipeline = _load(ctx, workflow)
    console.print_header(f"{pipeline.name}: {len(pipeline.targets)} target(s), {len(pipeline.steps)} step(s)")
    console.print_plan(pipeline.targets, pipeline.steps)


@cli.command("cache-key")
@click.option("--workflow", default=None, help="Workflow file path")
@click.option("--workspace", default=".", show_default=True, help="Directory holding the lock files")
@click.option("--toolchain-version", "pinned_version", default=None, help="Use this version instead of probing the toolchain")
@click.pass_context
def cache_key(ctx, workflow, workspace, pinned_version):
    """Print the cache key each configuration would use."""
    console = get_console()
    _, pipeline = _load(ctx, workflow)
    if pipeline.cache is None:
        console.print_info(f"{pipeline.name} declares no cache")
        return

    version = pinned_version or toolchain_version(pipeline.cache.version_cmd) or "unknown"
    coordinator = CacheCoordinator(CacheStore(settings.CACHE_DIR), pipeline.cache)
    for config in pipeline.targets:
        try:
            key = coordinator.key_for(config, version, workspace=workspace)
        except OSError as e:
            console.print_cache_unavailable(str(CacheUnavailable(key=config.name, operation="key", reason=str(e))))
            sys.exit(1)
        console.print_info(f"{config.name}: {key}")


@cli.command("cache-prune")
@click.option("--cache-dir", default=settings.CACHE_DIR, show_default=True, help="Cache directory")
@click.option("--keep", default=settings.CACHE_KEEP, show_default=True, type=int, help="Entries to keep per target")
def cache_prune(cache_dir, keep):
    """Keep only the newest entries per target in the cache store."""
    console = get_console()
    store = CacheStore(cache_dir)
    try:
        for target in store.targets():
            for key in store.prune(target, keep=keep):
                console.print_info(f"removed {key}")
    except OSError as e:
        console.print_error("Cache store unavailable", f"Could not prune {cache_dir}", details=[str(e)])
        sys.exit(1)


if __name__ == "__main__":
    cli()
