# errors.py
from __future__ import annotations

from dataclasses import dataclass, field


@dataclass
class CIError(Exception):
    """
    Structured CI error with enough context for:
      - clean CLI output
      - debugging without full tracebacks
    """
    kind: str
    message: str
    target: str | None = None
    step: str | None = None
    details: dict = field(default_factory=dict)

    def __str__(self) -> str:
        lines = [f"{self.kind}: {self.message}"]
        if self.target:
            lines.append(f"target={self.target}")
        if self.step:
            lines.append(f"step={self.step}")
        for k, v in self.details.items():
            lines.append(f"{k}={v}")
        return "\n".join(lines)


@dataclass
class StepFailure(Exception):
    """An external action (compile/format/test/lint) returned non-zero."""
    target: str
    step: str
    cmd: str
    exit_code: int
    stdout: str = ""
    stderr: str = ""

    def __str__(self) -> str:
        return f"[{self.target}] step '{self.step}' failed (exit={self.exit_code}): {self.cmd}"


@dataclass
class CacheUnavailable(Exception):
    """Restore or persist failed. Never fatal to a run."""
    key: str
    operation: str
    reason: str

    def __str__(self) -> str:
        return f"cache {self.operation} unavailable for {self.key}: {self.reason}"


TOOL_HINTS = {
    "cargo": "Install Rust via rustup (https://rustup.rs) or fix PATH.",
    "rustup": "Install rustup (https://rustup.rs) or fix PATH.",
    "rustc": "Install Rust via rustup or fix PATH.",
    "git": "Install Git or fix PATH.",
}
