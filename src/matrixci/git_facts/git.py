# git.py
# Small wrapper around the Git CLI.
# The CLI uses it to name the repository and to infer the triggering event
# when none is given explicitly.

from __future__ import annotations

import subprocess
from pathlib import Path
from typing import Optional


def _git(args: list[str], cwd: Optional[str] = None) -> str:
    """
    Execute a git command and return its stdout as a clean string.

    Raises subprocess.CalledProcessError on a non-zero exit and
    FileNotFoundError when git is not installed.
    """
    out = subprocess.check_output(
        ["git", *args],
        cwd=cwd,
        text=True,
        stderr=subprocess.DEVNULL,
    )
    return out.strip()


def current_branch(cwd: Optional[str] = None) -> str:
    """
    Name of the checked-out branch.

    On a detached HEAD this returns "HEAD", which never matches a trigger
    branch.
    """
    return _git(["rev-parse", "--abbrev-ref", "HEAD"], cwd=cwd)


def remote_url(name: str = "origin", cwd: Optional[str] = None) -> str:
    return _git(["remote", "get-url", name], cwd=cwd)


def repo_name(cwd: Optional[str] = None) -> str:
    """Repository name from the origin URL, falling back to the directory name."""
    try:
        url = remote_url("origin", cwd=cwd)
        return url.rstrip("/").split("/")[-1].replace(".git", "")
    except (subprocess.CalledProcessError, FileNotFoundError):
        return Path(cwd or ".").resolve().name
