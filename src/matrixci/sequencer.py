# sequencer.py
from __future__ import annotations

import os
import subprocess
import time
from pathlib import Path
from typing import Dict, List, Optional, Sequence

from .errors import TOOL_HINTS, StepFailure
from .model import (
    CANCELLED,
    FAILED,
    SKIPPED,
    SUCCEEDED,
    CacheEntry,
    RunResult,
    Step,
    StepRecord,
    TargetConfiguration,
)
from .ui.console import Console, get_console

# Per-configuration state machine:
#
#   Pending -> Running(i) -> Succeeded
#                         -> Failed(i)  (steps after i are recorded as cancelled)
#
# A step whose predicate is false is recorded as skipped and has no side effects.

_TAIL = 4000


def _hint_for(cmd: str) -> Optional[str]:
    tool = cmd.split()[0] if cmd.split() else ""
    return TOOL_HINTS.get(tool)


def run_shell_step(
    config: TargetConfiguration,
    step: Step,
    workspace: Path,
    env: Dict[str, str] | None = None,
) -> int:
    """Run a shell step. Raises StepFailure on a non-zero exit."""
    cmd = step.command_for(config) or ""
    cwd = (workspace / (step.cwd or ".")).resolve()
    if not cwd.exists():
        raise FileNotFoundError(f"[{config.name}] step '{step.name}' cwd not found: {cwd}")

    proc_env = os.environ.copy()
    proc_env.update(env or {})
    proc_env.update(step.env)
    proc_env["MATRIXCI_TARGET"] = config.name
    proc_env["MATRIXCI_OS"] = config.os

    proc = subprocess.run(
        cmd,
        shell=True,
        cwd=str(cwd),
        env=proc_env,
        text=True,
        capture_output=True,
    )

    if proc.returncode != 0:
        raise StepFailure(
            target=config.name,
            step=step.name,
            cmd=cmd,
            exit_code=proc.returncode,
            stdout=proc.stdout[-_TAIL:],
            stderr=proc.stderr[-_TAIL:],
        )
    return 0


def run_callable_step(config: TargetConfiguration, step: Step) -> int:
    """Run a Python action. None/0 is success, any other int is a failure."""
    rc = step.run(config)
    if rc is None or rc == 0:
        return 0
    raise StepFailure(target=config.name, step=step.name, cmd=getattr(step.run, "__name__", repr(step.run)), exit_code=int(rc))


def _execute(config: TargetConfiguration, step: Step, workspace: Path, env: Dict[str, str] | None) -> int:
    if callable(step.run):
        return run_callable_step(config, step)
    return run_shell_step(config, step, workspace, env)


def run_configuration(
    config: TargetConfiguration,
    steps: Sequence[Step],
    *,
    workspace: str | Path = ".",
    env: Dict[str, str] | None = None,
    cache_entry: CacheEntry | None = None,
    console: Console | None = None,
) -> RunResult:
    """
    Run one configuration's step list in order, fail-fast.

    The cache entry is threaded through unchanged so the caller can persist
    it; nothing here touches the cache store.
    """
    console = console or get_console()
    workspace_p = Path(workspace).resolve()
    records: List[StepRecord] = []
    failed_index: Optional[int] = None

    console.print_configuration_start(config)

    for index, step in enumerate(steps, start=1):
        if failed_index is not None:
            records.append(StepRecord(name=step.name, index=index, status=CANCELLED, reason=f"step {failed_index} failed"))
            continue

        if not step.included(config):
            console.print_step_skipped(config.name, step.name, step.description)
            records.append(StepRecord(name=step.name, index=index, status=SKIPPED, reason=step.description))
            continue

        console.print_step(config.name, step.name)
        started = time.monotonic()
        try:
            _execute(config, step, workspace_p, env)
        except StepFailure as e:
            duration = time.monotonic() - started
            reason = e.stderr or e.stdout or str(e)
            console.print_failure(config.name, step.name, reason, exit_code=e.exit_code, hint=_hint_for(e.cmd))
            records.append(
                StepRecord(name=step.name, index=index, status=FAILED, exit_code=e.exit_code, duration=duration, reason=str(e))
            )
            failed_index = index
        except Exception as e:
            # cwd missing, action raised, ...: still a failure of this step only
            duration = time.monotonic() - started
            console.print_failure(config.name, step.name, f"{type(e).__name__}: {e}")
            records.append(
                StepRecord(name=step.name, index=index, status=FAILED, duration=duration, reason=f"{type(e).__name__}: {e}")
            )
            failed_index = index
        else:
            records.append(
                StepRecord(name=step.name, index=index, status=SUCCEEDED, exit_code=0, duration=time.monotonic() - started)
            )

    return RunResult(
        config=config,
        status=FAILED if failed_index is not None else SUCCEEDED,
        steps=tuple(records),
        failed_index=failed_index,
        cache_entry=cache_entry,
    )
