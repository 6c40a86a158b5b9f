# model.py
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional, Tuple, Union


@dataclass(frozen=True)
class TargetConfiguration:
    """One platform/architecture pair and the host it must run on."""
    name: str                  # target triple, e.g. "x86_64-unknown-linux-gnu"
    os: str                    # host runner label, e.g. "ubuntu-latest"
    labels: Tuple[Tuple[str, str], ...] = ()

    @property
    def id(self) -> str:
        return self.name

    def label(self, key: str, default: str | None = None) -> str | None:
        for k, v in self.labels:
            if k == key:
                return v
        return default


Predicate = Callable[[TargetConfiguration], bool]
Action = Union[str, Callable[[TargetConfiguration], Optional[int]]]


def always(config: TargetConfiguration) -> bool:
    return True


@dataclass(frozen=True)
class Step:
    """
    A single named unit of work inside a configuration run.

    `run` is either a shell command ({target} / {os} are substituted) or a
    callable taking the configuration. `when` decides inclusion per target.
    """
    name: str
    run: Action
    when: Predicate = always
    description: str = "always"
    cwd: str | None = None
    env: Dict[str, str] = field(default_factory=dict)

    def included(self, config: TargetConfiguration) -> bool:
        return bool(self.when(config))

    def command_for(self, config: TargetConfiguration) -> str | None:
        if callable(self.run):
            return None
        # only the two placeholders; shell braces like ${HOME} pass through
        return self.run.replace("{target}", config.name).replace("{os}", config.os)


@dataclass(frozen=True)
class CacheKey:
    """Deterministic cache identifier: <target>-<tool>-<version>-<lockhash>."""
    target: str
    tool: str
    toolchain_version: str
    lockfile_hash: str

    def __str__(self) -> str:
        return f"{self.target}-{self.tool}-{self.toolchain_version}-{self.lockfile_hash}"


@dataclass(frozen=True)
class CacheEntry:
    """Opaque prior build/tool state for one key."""
    key: CacheKey
    paths: Tuple[str, ...] = ()
    restored: bool = False
    manifest: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class CacheSpec:
    """What to cache and how to derive the key for it."""
    paths: Tuple[str, ...] = ()
    lockfiles: Tuple[str, ...] = ()
    tool: str = "cargo"
    version_cmd: str = "cargo +stable --version"
    enabled: bool = True
    keep: int = 3


@dataclass(frozen=True)
class Pipeline:
    """A named matrix of targets plus the ordered step list shared by all of them."""
    name: str
    targets: Tuple[TargetConfiguration, ...]
    steps: Tuple[Step, ...]
    cache: CacheSpec | None = None
    trigger: Any = None  # triggers.Trigger; kept untyped to avoid an import cycle
    env: Dict[str, str] = field(default_factory=dict)


# ----------------------------------------------------------------------
# Results
# ----------------------------------------------------------------------

SUCCEEDED = "succeeded"
FAILED = "failed"
SKIPPED = "skipped"
CANCELLED = "cancelled"
NOT_TRIGGERED = "not-triggered"


@dataclass(frozen=True)
class StepRecord:
    name: str
    index: int                 # 1-based position in the step list
    status: str                # succeeded | failed | skipped | cancelled
    exit_code: int | None = None
    duration: float = 0.0
    reason: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "index": self.index,
            "status": self.status,
            "exit_code": self.exit_code,
            "duration": round(self.duration, 3),
            "reason": self.reason,
        }


@dataclass(frozen=True)
class RunResult:
    """Outcome of one configuration's step sequence. Finalized once, never mutated."""
    config: TargetConfiguration
    status: str
    steps: Tuple[StepRecord, ...]
    failed_index: int | None = None
    cache_entry: CacheEntry | None = None

    @property
    def succeeded(self) -> bool:
        return self.status == SUCCEEDED

    @property
    def failed_step(self) -> StepRecord | None:
        if self.failed_index is None:
            return None
        for rec in self.steps:
            if rec.index == self.failed_index:
                return rec
        return None

    def executed(self) -> Tuple[StepRecord, ...]:
        return tuple(r for r in self.steps if r.status in (SUCCEEDED, FAILED))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "target": self.config.name,
            "os": self.config.os,
            "status": self.status,
            "failed_index": self.failed_index,
            "cache_key": str(self.cache_entry.key) if self.cache_entry else None,
            "steps": [r.to_dict() for r in self.steps],
        }


@dataclass(frozen=True)
class PipelineResult:
    status: str
    results: Tuple[RunResult, ...] = ()

    @property
    def succeeded(self) -> bool:
        return self.status == SUCCEEDED

    @property
    def first_failure(self) -> Tuple[TargetConfiguration, StepRecord] | None:
        for r in self.results:
            if r.status == FAILED and r.failed_step is not None:
                return r.config, r.failed_step
        return None

    def to_dict(self) -> Dict[str, Any]:
        failure = self.first_failure
        return {
            "status": self.status,
            "first_failure": (
                {"target": failure[0].name, "step": failure[1].name, "index": failure[1].index}
                if failure else None
            ),
            "results": [r.to_dict() for r in self.results],
        }
