# runner.py
from __future__ import annotations

import os
import runpy
from concurrent.futures import ThreadPoolExecutor, as_completed
from pathlib import Path
from typing import Dict, Iterable, List, Optional

from .aggregator import aggregate
from .cache import CacheCoordinator, CacheStore
from .errors import CacheUnavailable, CIError
from .matrix import select
from .model import (
    FAILED,
    NOT_TRIGGERED,
    CacheEntry,
    Pipeline,
    PipelineResult,
    RunResult,
    StepRecord,
    TargetConfiguration,
)
from .sequencer import run_configuration
from .toolchain import toolchain_version
from .triggers import Event
from .ui.console import Console, get_console

# local dev ---> push / pull request ---> matrix ---> one run per target


# ----------------------------------------------------------------------
# Workflow loading (local file)
# ----------------------------------------------------------------------

def load_workflow(path: str | Path) -> Pipeline:
    """
    Load a pipeline from a python file path.

    The file must define either:
      - PIPELINE = Pipeline(...)
      - pipeline() -> Pipeline
    """
    wf_path = Path(path).expanduser().resolve()
    if not wf_path.exists():
        raise FileNotFoundError(f"Workflow file not found: {wf_path}")
    if wf_path.suffix != ".py":
        raise CIError(kind="invalid_workflow", message=f"Workflow must be a .py file, got: {wf_path.name}")

    module_name = f"matrixci_workflow_{wf_path.stem}"
    globals_dict = runpy.run_path(str(wf_path), run_name=module_name)

    result = None
    if "PIPELINE" in globals_dict:
        result = globals_dict["PIPELINE"]
    elif "pipeline" in globals_dict and callable(globals_dict["pipeline"]):
        try:
            result = globals_dict["pipeline"]()
        except TypeError as e:
            if "required" in str(e) and "argument" in str(e):
                raise CIError(
                    kind="invalid_workflow",
                    message=(
                        "Your pipeline() is being called without arguments (name collision with the helper?). "
                        "Import the helper under another name: `from matrixci import dsl` then "
                        "`def pipeline(): return dsl.pipeline(...)`"
                    ),
                    details={"file": str(wf_path)},
                ) from e
            raise

    if not isinstance(result, Pipeline):
        raise CIError(
            kind="invalid_workflow",
            message="Workflow must return/define a Pipeline. Define pipeline() -> Pipeline or PIPELINE = Pipeline(...).",
            details={"file": str(wf_path)},
        )
    return result


# ----------------------------------------------------------------------
# One configuration
# ----------------------------------------------------------------------

def _cache_entry_for(
    config: TargetConfiguration,
    coordinator: CacheCoordinator,
    workspace: Path,
    console: Console,
) -> Optional[CacheEntry]:
    spec = coordinator.spec
    version = toolchain_version(spec.version_cmd) or "unknown"
    try:
        key = coordinator.key_for(config, version, workspace=workspace)
    except OSError as e:
        console.print_cache_unavailable(str(CacheUnavailable(key=config.name, operation="key", reason=str(e))))
        return None

    entry = coordinator.restore(key, workspace=workspace)
    if entry is not None:
        console.print_cache_hit(config.name, str(key))
        return entry

    console.print_cache_miss(config.name, str(key))
    return CacheEntry(key=key, paths=spec.paths, restored=False)


def run_target(
    pipeline: Pipeline,
    config: TargetConfiguration,
    *,
    workspace: Path,
    coordinator: CacheCoordinator | None,
    console: Console,
) -> RunResult:
    """
    restore cache -> run steps (fail-fast) -> persist cache on success.
    The cache entry travels with the run and comes back in the RunResult.
    """
    entry: Optional[CacheEntry] = None
    if coordinator is not None:
        entry = _cache_entry_for(config, coordinator, workspace, console)

    result = run_configuration(
        config,
        pipeline.steps,
        workspace=workspace,
        env=pipeline.env,
        cache_entry=entry,
        console=console,
    )

    # an exact hit is not re-saved
    if coordinator is not None and entry is not None and result.succeeded and not entry.restored:
        if coordinator.persist(entry.key, entry, workspace=workspace):
            console.print_cache_saved(config.name, str(entry.key))

    return result


def _crashed(pipeline: Pipeline, config: TargetConfiguration, exc: BaseException) -> RunResult:
    """A configuration that blew up outside any step still fails on its own."""
    first = pipeline.steps[0].name if pipeline.steps else "<setup>"
    return RunResult(
        config=config,
        status=FAILED,
        steps=(StepRecord(name=first, index=1, status=FAILED, reason=f"{type(exc).__name__}: {exc}"),),
        failed_index=1,
    )


# ----------------------------------------------------------------------
# Public API
# ----------------------------------------------------------------------

def run_pipeline(
    pipeline: Pipeline,
    *,
    workspace: str | Path = ".",
    cache_root: str | Path | None = ".matrixci/cache",
    max_workers: int | None = None,
    event: Event | None = None,
    targets: Iterable[str] | None = None,
    console: Console | None = None,
) -> PipelineResult:
    """
    Run every configuration of the matrix in parallel and aggregate.

    `event=None` runs unconditionally; otherwise the pipeline trigger must
    match. `cache_root=None` or a disabled CacheSpec turns caching off.
    With caching on, configurations run sequentially since each restore
    rewrites the shared workspace. One configuration failing never stops
    the others.
    """
    console = console or get_console()
    workspace_p = Path(workspace).resolve()

    if event is not None and pipeline.trigger is not None and not pipeline.trigger.matches(event):
        console.print_not_triggered(str(event))
        return PipelineResult(status=NOT_TRIGGERED)

    configs: List[TargetConfiguration] = select(pipeline.targets, targets)

    coordinator: CacheCoordinator | None = None
    if cache_root is not None and pipeline.cache is not None and pipeline.cache.enabled:
        coordinator = CacheCoordinator(
            CacheStore(cache_root),
            pipeline.cache,
            report=lambda err: console.print_cache_unavailable(str(err)),
        )

    if max_workers is None:
        c = os.cpu_count() or 2
        max_workers = max(1, c - 1)

    # restores write into the shared workspace and home: one configuration at a time
    if coordinator is not None and max_workers > 1:
        console.print_info("Cache enabled: configurations share the workspace and run one at a time")
        max_workers = 1

    by_name: Dict[str, RunResult] = {}
    with ThreadPoolExecutor(max_workers=max_workers) as pool:
        futures = {
            pool.submit(
                run_target,
                pipeline,
                config,
                workspace=workspace_p,
                coordinator=coordinator,
                console=console,
            ): config
            for config in configs
        }

        for fut in as_completed(futures):
            config = futures[fut]
            try:
                by_name[config.name] = fut.result()
            except Exception as e:
                console.print_exception(e)
                by_name[config.name] = _crashed(pipeline, config, e)

    # report in matrix order, not completion order
    return aggregate(by_name[c.name] for c in configs)
