# matrix.py
from __future__ import annotations

from typing import Any, Iterable, List, Mapping, Tuple, Union

from .model import TargetConfiguration

Descriptor = Union[Mapping[str, Any], TargetConfiguration]


def _to_configuration(desc: Descriptor) -> TargetConfiguration:
    if isinstance(desc, TargetConfiguration):
        return desc

    name = desc.get("name")
    if not name:
        raise ValueError(f"Target descriptor is missing 'name': {dict(desc)!r}")
    host = desc.get("os") or desc.get("runs_on") or ""

    extra = {k: str(v) for k, v in desc.items() if k not in ("name", "os", "runs_on")}
    labels = tuple(sorted(extra.items()))
    return TargetConfiguration(name=str(name), os=str(host), labels=labels)


def expand(descriptors: Iterable[Descriptor]) -> Tuple[TargetConfiguration, ...]:
    """
    Expand target descriptors into configurations, one per descriptor.

    Example:
        expand([
            {"name": "x86_64-unknown-linux-gnu", "os": "ubuntu-latest"},
            {"name": "aarch64-apple-darwin", "os": "macos-latest"},
        ])
    """
    configs = [_to_configuration(d) for d in descriptors]

    names = [c.name for c in configs]
    if len(set(names)) != len(names):
        dupes = sorted({n for n in names if names.count(n) > 1})
        raise ValueError(f"Duplicate target names found: {dupes}")

    return tuple(configs)


def select(configs: Iterable[TargetConfiguration], names: Iterable[str] | None) -> List[TargetConfiguration]:
    """Restrict a matrix to the named targets (None keeps everything)."""
    configs = list(configs)
    if not names:
        return configs

    wanted = list(names)
    known = {c.name for c in configs}
    missing = [n for n in wanted if n not in known]
    if missing:
        raise ValueError(f"Unknown target(s) {missing}. Known targets: {sorted(known)}")
    return [c for c in configs if c.name in wanted]
