# triggers.py
from __future__ import annotations

from dataclasses import dataclass
from typing import Tuple

PUSH = "push"
PULL_REQUEST = "pull_request"
EVENT_KINDS = (PUSH, PULL_REQUEST)


@dataclass(frozen=True)
class Event:
    """
    What happened to the repository.

    push:          `branch` is the branch that was updated.
    pull_request:  `base` is the branch the change targets, `branch` its head.
    """
    kind: str
    branch: str
    base: str | None = None

    def __post_init__(self) -> None:
        if self.kind not in EVENT_KINDS:
            raise ValueError(f"Unknown event kind {self.kind!r}; expected one of {list(EVENT_KINDS)}")

    @property
    def target_branch(self) -> str:
        if self.kind == PULL_REQUEST:
            return self.base or self.branch
        return self.branch

    def __str__(self) -> str:
        if self.kind == PULL_REQUEST:
            return f"{self.kind} {self.branch} -> {self.target_branch}"
        return f"{self.kind} {self.branch}"


@dataclass(frozen=True)
class Trigger:
    """Activate on pushes to, and pull requests targeting, the listed branches."""
    branches: Tuple[str, ...] = ("main",)
    events: Tuple[str, ...] = (PUSH, PULL_REQUEST)

    def matches(self, event: Event) -> bool:
        if event.kind not in self.events:
            return False
        return event.target_branch in self.branches
