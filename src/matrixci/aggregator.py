# aggregator.py
from __future__ import annotations

from typing import Iterable

from .model import FAILED, SUCCEEDED, PipelineResult, RunResult


def aggregate(results: Iterable[RunResult]) -> PipelineResult:
    """Failed if any configuration failed, otherwise succeeded. No partial status."""
    results = tuple(results)
    status = FAILED if any(r.status == FAILED for r in results) else SUCCEEDED
    return PipelineResult(status=status, results=results)
