# src/matrixci/dsl.py
from __future__ import annotations

from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Sequence

from . import settings
from .matrix import Descriptor, expand
from .model import Action, CacheSpec, Pipeline, Predicate, Step, TargetConfiguration, always
from .triggers import PULL_REQUEST, PUSH, Trigger


# ---------------------------------------------------------------------
# Predicates
# ---------------------------------------------------------------------

class TargetPredicate:
    """A named, pure inclusion predicate over a TargetConfiguration."""

    def __init__(self, fn: Callable[[TargetConfiguration], bool], description: str):
        self._fn = fn
        self.description = description

    def __call__(self, config: TargetConfiguration) -> bool:
        return bool(self._fn(config))

    def __and__(self, other: "TargetPredicate") -> "TargetPredicate":
        return TargetPredicate(
            lambda c: self(c) and other(c),
            f"{self.description} and {other.description}",
        )

    def __invert__(self) -> "TargetPredicate":
        return TargetPredicate(lambda c: not self(c), f"not ({self.description})")

    def __repr__(self) -> str:
        return f"TargetPredicate({self.description!r})"


def only_on(*targets: str) -> TargetPredicate:
    """Run only when the current target is one of `targets`."""
    names = frozenset(targets)
    return TargetPredicate(lambda c: c.name in names, f"only on {', '.join(targets)}")


def skip_on(*targets: str) -> TargetPredicate:
    """Skip when the current target is one of `targets`."""
    names = frozenset(targets)
    return TargetPredicate(lambda c: c.name not in names, f"skip on {', '.join(targets)}")


def on_os(*hosts: str) -> TargetPredicate:
    hosts_set = frozenset(hosts)
    return TargetPredicate(lambda c: c.os in hosts_set, f"only on host {', '.join(hosts)}")


def when_label(key: str, value: str) -> TargetPredicate:
    return TargetPredicate(lambda c: c.label(key) == value, f"only when {key}={value}")


def _describe(when: Predicate, description: str | None) -> str:
    if description:
        return description
    if when is always:
        return "always"
    return getattr(when, "description", None) or getattr(when, "__name__", "custom predicate")


# ---------------------------------------------------------------------
# Step helpers
# ---------------------------------------------------------------------

def sh(
    name: str,
    cmd: str,
    *,
    when: Predicate = always,
    description: str | None = None,
    cwd: str | None = None,
    env: Optional[Dict[str, str]] = None,
) -> Step:
    """Create a shell step. `cmd` may reference {target} and {os}."""
    return Step(
        name=name,
        run=cmd,
        when=when,
        description=_describe(when, description),
        cwd=cwd,
        env=dict(env or {}),
    )


def action(
    name: str,
    fn: Action,
    *,
    when: Predicate = always,
    description: str | None = None,
) -> Step:
    """Create a step backed by a Python callable taking the configuration."""
    if not callable(fn):
        raise TypeError(f"action({name!r}) needs a callable, got {type(fn).__name__}")
    return Step(name=name, run=fn, when=when, description=_describe(when, description))


def target(name: str, os: str, **labels: Any) -> TargetConfiguration:
    return TargetConfiguration(name=name, os=os, labels=tuple(sorted((k, str(v)) for k, v in labels.items())))


def cache(
    *paths: str,
    lockfiles: Sequence[str] = ("**/Cargo.lock",),
    tool: str = "cargo",
    version_cmd: str = "cargo +stable --version",
    enabled: bool = True,
    keep: int | None = None,
) -> CacheSpec:
    return CacheSpec(
        paths=tuple(paths),
        lockfiles=tuple(lockfiles),
        tool=tool,
        version_cmd=version_cmd,
        enabled=enabled,
        keep=settings.CACHE_KEEP if keep is None else keep,
    )


def on(*events: str, branches: Sequence[str] | None = None) -> Trigger:
    """on("push", "pull_request", branches=["main"])"""
    return Trigger(
        branches=tuple(branches or (settings.MAIN_BRANCH,)),
        events=tuple(events or (PUSH, PULL_REQUEST)),
    )


# ---------------------------------------------------------------------
# Functional pipeline helper
# ---------------------------------------------------------------------

def pipeline(
    name: str,
    *steps: Step,
    targets: Iterable[Descriptor],
    steps_list: Optional[List[Step]] = None,
    cache: CacheSpec | None = None,
    trigger: Trigger | None = None,
    env: Optional[Mapping[str, Any]] = None,
) -> Pipeline:
    steps_final: List[Step] = []
    if steps_list:
        steps_final.extend(steps_list)
    steps_final.extend(steps)

    if not steps_final:
        raise ValueError(f"pipeline({name!r}) must have at least one step")

    configs = expand(targets)
    if not configs:
        raise ValueError(f"pipeline({name!r}) must have at least one target")

    return Pipeline(
        name=name,
        targets=configs,
        steps=tuple(steps_final),
        cache=cache,
        trigger=trigger or on(),
        # force values to str for stable hashing + env compatibility
        env={k: str(v) for k, v in (env or {}).items()},
    )


# ---------------------------------------------------------------------
# Builder API
# ---------------------------------------------------------------------

class PipelineBuilder:
    def __init__(self, name: str):
        self.name = name
        self._targets: list[Descriptor] = []
        self._steps: list[Step] = []
        self._cache: CacheSpec | None = None
        self._trigger: Trigger | None = None
        self._env: dict[str, str] = {}

    def for_target(self, name: str, os: str, **labels: Any):
        self._targets.append(target(name, os, **labels))
        return self

    def for_targets(self, *descriptors: Descriptor):
        self._targets.extend(descriptors)
        return self

    def define_step(self, name: str, run: Action, *, when: Predicate = always, description: str | None = None):
        if callable(run):
            self._steps.append(action(name, run, when=when, description=description))
        else:
            self._steps.append(sh(name, run, when=when, description=description))
        return self

    def add_steps(self, *steps: Step):
        self._steps.extend(steps)
        return self

    def with_cache(self, spec: CacheSpec):
        self._cache = spec
        return self

    def triggered_by(self, *events: str, branches: Sequence[str] | None = None):
        self._trigger = on(*events, branches=branches)
        return self

    def with_env(self, **env):
        self._env.update({k: str(v) for k, v in env.items()})
        return self

    def build(self) -> Pipeline:
        return pipeline(
            self.name,
            steps_list=self._steps,
            targets=self._targets,
            cache=self._cache,
            trigger=self._trigger,
            env=self._env,
        )


def build(name: str) -> PipelineBuilder:
    """Convenience: build('rust').for_target(...).define_step(...).build()"""
    return PipelineBuilder(name)
