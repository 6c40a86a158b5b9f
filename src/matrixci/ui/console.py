"""Console output formatting utilities for matrixci."""

from __future__ import annotations

import sys
import threading
from typing import Iterable, Optional

from ..model import CANCELLED, FAILED, SKIPPED, SUCCEEDED, PipelineResult, Step, TargetConfiguration


class Console:
    """Centralized console output formatting."""

    def __init__(self, debug: bool = False):
        """
        Initialize console formatter.

        Args:
            debug: If True, show detailed output including stack traces
        """
        self.debug = debug
        # configurations report from worker threads
        self._lock = threading.Lock()

    def _out(self, *lines: str, err: bool = False) -> None:
        stream = sys.stderr if err else sys.stdout
        with self._lock:
            for line in lines:
                print(line, file=stream)

    def print_header(self, title: str) -> None:
        """Print a section header."""
        self._out(f"\n{title}", "-" * len(title))

    def print_run_started(
        self,
        repository: str,
        pipeline: str,
        target_count: int,
        event: str | None = None,
    ) -> None:
        """Print run start information."""
        lines = [
            "\nRUN STARTED",
            f"Repository: {repository}",
            f"Pipeline: {pipeline}",
            f"Targets: {target_count}",
        ]
        if event:
            lines.append(f"Event: {event}")
        self._out(*lines, "")

    def print_not_triggered(self, event: str) -> None:
        self._out(f"NOT TRIGGERED: {event}")

    def print_configuration_start(self, config: TargetConfiguration) -> None:
        self._out(f"\nCONFIGURATION STARTED: {config.name} ({config.os})")

    def print_step(self, target: str, name: str) -> None:
        """Print step start message."""
        self._out(f"[{target}] STEP: {name}")

    def print_step_skipped(self, target: str, name: str, reason: str) -> None:
        self._out(f"[{target}] STEP SKIPPED: {name} ({reason})")

    def print_failure(
        self,
        target: str,
        name: str,
        reason: str,
        exit_code: Optional[int] = None,
        hint: Optional[str] = None,
    ) -> None:
        """
        Print step failure message.

        Args:
            target: Configuration the step ran in
            name: Step name
            reason: Failure reason/error message
            exit_code: Optional exit code
            hint: Optional hint for user
        """
        lines = [f"[{target}] STEP FAILED: {name}"]
        if exit_code is not None:
            lines.append(f"Exit code: {exit_code}")
        if hint:
            lines.append(f"Hint: {hint}")
        if self.debug:
            lines.append(f"Error details: {reason}")
        else:
            error_line = reason.strip().split("\n")[-1] if reason.strip() else ""
            if error_line:
                lines.append(f"Error: {error_line}")
        self._out(*lines)

    def print_cache_hit(self, target: str, key: str) -> None:
        self._out(f"[{target}] CACHE: hit ({key})")

    def print_cache_miss(self, target: str, key: str) -> None:
        self._out(f"[{target}] CACHE: miss ({key})")

    def print_cache_saved(self, target: str, key: str) -> None:
        self._out(f"[{target}] CACHE: saved ({key})")

    def print_cache_unavailable(self, message: str) -> None:
        self._out(f"CACHE: unavailable ({message})")

    def print_plan(self, configs: Iterable[TargetConfiguration], steps: Iterable[Step]) -> None:
        """Print the step inclusion table: one block per configuration."""
        steps = list(steps)
        for config in configs:
            self._out(f"\n{config.name} ({config.os})")
            for i, step in enumerate(steps, start=1):
                if step.included(config):
                    self._out(f"  {i}. {step.name}")
                else:
                    self._out(f"  {i}. {step.name} (skipped: {step.description})")

    def print_results(self, result: PipelineResult) -> None:
        """Print final results summary."""
        lines = ["\n" + "=" * 40, "RESULTS", "=" * 40]
        for run in result.results:
            counts = {SUCCEEDED: 0, FAILED: 0, SKIPPED: 0, CANCELLED: 0}
            for rec in run.steps:
                counts[rec.status] = counts.get(rec.status, 0) + 1
            status_display = "SUCCESS" if run.succeeded else run.status.upper()
            lines.append(
                f"  {run.config.name}: {status_display} "
                f"(ran {counts[SUCCEEDED] + counts[FAILED]}, skipped {counts[SKIPPED]})"
            )
        failure = result.first_failure
        if failure is not None:
            config, rec = failure
            lines.append(f"\nFirst failure: step {rec.index} '{rec.name}' on {config.name}")
        lines.append(f"\nPIPELINE: {'SUCCESS' if result.succeeded else result.status.upper()}")
        self._out(*lines)

    def print_error(
        self,
        title: str,
        message: str,
        details: Optional[list[str]] = None,
        suggestion: Optional[str] = None,
    ) -> None:
        """
        Print structured error message.

        Args:
            title: Error title
            message: Main error message
            details: Optional list of detail lines
            suggestion: Optional suggestion for user
        """
        lines = [f"\nERROR: {title}", message]
        if details:
            lines.extend(f"  {detail}" for detail in details)
        if suggestion:
            lines.append(f"\n{suggestion}")
        self._out(*lines, err=True)

    def print_exception(self, exc: Exception) -> None:
        """Print exception, with full traceback only in debug mode."""
        if self.debug:
            import traceback
            traceback.print_exc()
        else:
            self._out(f"Error: {exc}", err=True)

    def print_info(self, message: str) -> None:
        """Print informational message."""
        self._out(message)


# Global console instance (will be initialized by CLI)
_console: Optional[Console] = None


def get_console() -> Console:
    """Get the global console instance."""
    global _console
    if _console is None:
        _console = Console()
    return _console


def set_console(console: Console) -> None:
    """Set the global console instance."""
    global _console
    _console = console
