# toolchain.py
from __future__ import annotations

import shlex
import subprocess
from typing import Optional


def probe(cmd: str) -> Optional[str]:
    """
    Run a version command and return its normalized output, or None.
    Best-effort: a missing tool or non-zero exit is not an error here.
    """
    try:
        completed = subprocess.run(
            shlex.split(cmd),
            text=True,
            capture_output=True,
            check=False,
        )
    except (FileNotFoundError, PermissionError):
        return None

    out = (completed.stdout or "").strip()
    err = (completed.stderr or "").strip()
    text = out if out else err
    if completed.returncode != 0 or not text:
        return None
    # Normalize whitespace to make hashing stable
    return " ".join(text.split())


def parse_version(text: str) -> str:
    """
    "cargo 1.82.0 (8f40fc59f 2024-08-21)" -> "1.82.0"

    Same as `cut -d ' ' -f 2`; single-token output is returned unchanged.
    """
    parts = text.split()
    if len(parts) >= 2:
        return parts[1]
    return parts[0] if parts else ""


def toolchain_version(cmd: str = "cargo +stable --version") -> Optional[str]:
    text = probe(cmd)
    if text is None:
        return None
    return parse_version(text)
