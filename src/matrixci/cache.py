# cache.py
from __future__ import annotations

import copy
import fnmatch
import hashlib
import json
import os
import tarfile
import time
from dataclasses import replace
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Tuple

from .errors import CacheUnavailable
from .model import CacheEntry, CacheKey, CacheSpec, TargetConfiguration

# ---------------------------------------------------------------------
# Core idea
# ---------------------------------------------------------------------
# Per-target toolchain/dependency caching:
#   cache_key = <target>-<tool>-<toolchain version>-<sha256(lock files)>
#
# Cache artifact:
#   a tar.gz holding the declared cache paths (registry, toolchains, target/)
#   plus a manifest.json for explainability.
#
# Paths under the workspace are archived as "workspace/<rel>", paths under
# the home directory ("~/.cargo/...") as "home/<rel>".
#
# The cache is advisory: every failure here degrades to a cold build.
# ---------------------------------------------------------------------


DEFAULT_CACHE_DIR = ".matrixci/cache"
DEFAULT_CACHE_EXCLUDES = [
    ".git/**",
    ".matrixci/**",
    "**/.DS_Store",
]

_WORKSPACE_PREFIX = "workspace"
_HOME_PREFIX = "home"


def _extract_kwargs() -> Dict:
    # `filter=` only exists on tarfile builds that ship the extraction filters
    return {"filter": "data"} if hasattr(tarfile, "data_filter") else {}


def _sha256_bytes(data: bytes) -> str:
    h = hashlib.sha256()
    h.update(data)
    return h.hexdigest()


def _sha256_str(s: str) -> str:
    return _sha256_bytes(s.encode("utf-8"))


def _json_dumps_stable(obj) -> str:
    return json.dumps(obj, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def _relpath(p: Path, root: Path) -> str:
    return str(p.resolve().relative_to(root.resolve())).replace("\\", "/")


def _iter_files_under(root: Path) -> Iterable[Path]:
    # deterministic traversal
    for p in sorted(root.rglob("*")):
        if p.is_file():
            yield p


def _matches_any_glob(rel: str, globs: List[str]) -> bool:
    """
    Exclusion match on a "/"-separated relative path:
      "dir/**"   leading components equal `dir`
      "**/name"  file name at any depth
      other      the whole relative path
    """
    parts = rel.split("/")
    for g in globs:
        if g.endswith("/**"):
            head = g[:-3].split("/")
            if parts[: len(head)] == head:
                return True
        elif g.startswith("**/"):
            if fnmatch.fnmatchcase(parts[-1], g[3:]):
                return True
        elif fnmatch.fnmatchcase(rel, g):
            return True
    return False


def _hash_file_contents(path: Path) -> str:
    h = hashlib.sha256()
    with path.open("rb") as f:
        while True:
            chunk = f.read(1024 * 1024)
            if not chunk:
                break
            h.update(chunk)
    return h.hexdigest()


def _resolve_globs(root: Path, patterns: Iterable[str]) -> List[Path]:
    """
    Expand lock-file patterns into concrete files.
    Supports:
      - file path: "Cargo.lock"
      - glob:      "**/Cargo.lock"
    """
    out: List[Path] = []
    for pat in patterns:
        pat = pat.strip()
        if not pat:
            continue
        p = root / pat
        if p.is_file():
            out.append(p)
            continue
        out.extend(m for m in sorted(root.glob(pat)) if m.is_file())

    # De-dupe while preserving order
    seen = set()
    uniq: List[Path] = []
    for p in out:
        rp = str(p.resolve())
        if rp not in seen:
            seen.add(rp)
            uniq.append(p)
    return uniq


def hash_lockfiles(root: str | Path, patterns: Iterable[str]) -> str:
    """
    Content hash of every file matching `patterns`, like hashFiles('**/Cargo.lock').
    Returns "" when nothing matches.
    """
    root_p = Path(root).resolve()
    files = _resolve_globs(root_p, patterns)
    files = [f for f in files if not _matches_any_glob(_relpath(f, root_p), DEFAULT_CACHE_EXCLUDES)]
    if not files:
        return ""

    fps = sorted((_relpath(f, root_p), _hash_file_contents(f)) for f in files)
    return _sha256_str(_json_dumps_stable(fps))


def compute_key(
    config: TargetConfiguration,
    toolchain_version: str,
    lockfile_hash: str,
    *,
    tool: str = "cargo",
) -> CacheKey:
    """Pure: identical inputs always give the identical key."""
    return CacheKey(
        target=config.id,
        tool=tool,
        toolchain_version=toolchain_version,
        lockfile_hash=lockfile_hash,
    )


def _split_cache_path(entry: str, workspace: Path, home: Path) -> Tuple[str, Path, Path]:
    """Return (arc_prefix, base_dir, absolute_path) for a declared cache path."""
    if entry.startswith("~"):
        rel = entry[1:].lstrip("/\\")
        return _HOME_PREFIX, home, home / rel
    return _WORKSPACE_PREFIX, workspace, workspace / entry


class CacheStore:
    """
    File-based cache store:
      root/
        <target>/
          <key>.tar.gz
          <key>.manifest.json
    """

    def __init__(self, root: str | Path = DEFAULT_CACHE_DIR, *, home: str | Path | None = None):
        self.root = Path(root).resolve()
        self.home = Path(home).resolve() if home is not None else Path.home()

    def _target_dir(self, target: str) -> Path:
        d = self.root / target
        d.mkdir(parents=True, exist_ok=True)
        return d

    def artifact_path(self, key: CacheKey) -> Path:
        return self._target_dir(key.target) / f"{key}.tar.gz"

    def manifest_path(self, key: CacheKey) -> Path:
        return self._target_dir(key.target) / f"{key}.manifest.json"

    def restore(self, key: CacheKey, *, workspace: str | Path = ".") -> Optional[CacheEntry]:
        """
        Extract a stored entry into the workspace/home. None on a miss.
        Raises CacheUnavailable if the store cannot be read.

        NOTE: restore is "overwrite by extraction"; nothing is cleaned first.
        """
        root = Path(workspace).resolve()
        try:
            art = self.artifact_path(key)
            man = self.manifest_path(key)
            if not art.exists() or not man.exists():
                return None

            stored = json.loads(man.read_text(encoding="utf-8"))
            extract_kwargs = _extract_kwargs()
            with tarfile.open(str(art), mode="r:gz") as tar:
                for member in tar.getmembers():
                    prefix, _, rel = member.name.partition("/")
                    if not rel or prefix not in (_WORKSPACE_PREFIX, _HOME_PREFIX):
                        continue
                    dest = root if prefix == _WORKSPACE_PREFIX else self.home
                    m = copy.copy(member)
                    m.name = rel
                    tar.extract(m, path=str(dest), **extract_kwargs)
        except (OSError, tarfile.TarError, ValueError) as e:
            raise CacheUnavailable(key=str(key), operation="restore", reason=str(e)) from e

        return CacheEntry(
            key=key,
            paths=tuple(stored.get("paths", [])),
            restored=True,
            manifest=stored,
        )

    def persist(self, key: CacheKey, entry: CacheEntry, *, workspace: str | Path = ".") -> CacheEntry:
        """
        Archive entry.paths under `key`. Returns the entry with its manifest filled.
        Raises CacheUnavailable if the store cannot be written.

        Built in a temp file then renamed, so concurrent writers of one key
        are last-writer-wins.
        """
        root = Path(workspace).resolve()
        files: List[str] = []
        manifest: Dict = {
            "key": str(key),
            "target": key.target,
            "tool": key.tool,
            "toolchain_version": key.toolchain_version,
            "lockfile_hash": key.lockfile_hash,
            "paths": list(entry.paths),
            "generated_at_unix": int(time.time()),
        }

        tmp: Optional[Path] = None
        try:
            art = self.artifact_path(key)
            man = self.manifest_path(key)
            tmp = art.with_name(f"{art.name}.{os.getpid()}.tmp")
            with tarfile.open(str(tmp), mode="w:gz") as tar:
                for declared in entry.paths:
                    prefix, base, src = _split_cache_path(declared, root, self.home)
                    if not src.exists():
                        continue
                    candidates = [src] if src.is_file() else list(_iter_files_under(src))
                    for f in candidates:
                        rel = _relpath(f, base)
                        if _matches_any_glob(rel, DEFAULT_CACHE_EXCLUDES):
                            continue
                        arcname = f"{prefix}/{rel}"
                        tar.add(str(f), arcname=arcname, recursive=False)
                        files.append(arcname)

            manifest["files"] = len(files)
            tmp.replace(art)
            man.write_text(json.dumps(manifest, sort_keys=True, indent=2, ensure_ascii=False), encoding="utf-8")
        except (OSError, tarfile.TarError) as e:
            raise CacheUnavailable(key=str(key), operation="persist", reason=str(e)) from e
        finally:
            if tmp is not None and tmp.exists():
                tmp.unlink(missing_ok=True)

        return replace(entry, manifest=manifest)

    def keys(self, target: str) -> List[str]:
        d = self.root / target
        if not d.is_dir():
            return []
        tars = sorted(d.glob("*.tar.gz"), key=lambda p: p.stat().st_mtime, reverse=True)
        return [p.name[: -len(".tar.gz")] for p in tars]

    def prune(self, target: str, keep: int = 3) -> List[str]:
        """
        Keep only the newest N artifacts for a target.
        Uses file mtime as "newest". Returns the removed keys.
        """
        d = self.root / target
        removed: List[str] = []
        for key in self.keys(target)[keep:]:
            (d / f"{key}.tar.gz").unlink(missing_ok=True)
            (d / f"{key}.manifest.json").unlink(missing_ok=True)
            removed.append(key)
        return removed

    def targets(self) -> List[str]:
        if not self.root.is_dir():
            return []
        return sorted(p.name for p in self.root.iterdir() if p.is_dir())


class CacheCoordinator:
    """
    Acceleration layer around a CacheStore.

    restore() returns None on a miss *or* when the store is unavailable;
    persist() returns False instead of raising. Correctness never depends
    on this class.
    """

    def __init__(self, store: CacheStore, spec: CacheSpec, *, report=None):
        self.store = store
        self.spec = spec
        self._report = report

    def _unavailable(self, err: CacheUnavailable) -> None:
        if self._report is not None:
            self._report(err)

    def key_for(
        self,
        config: TargetConfiguration,
        toolchain_version: str,
        *,
        workspace: str | Path = ".",
    ) -> CacheKey:
        lock_hash = hash_lockfiles(workspace, self.spec.lockfiles)
        return compute_key(config, toolchain_version, lock_hash, tool=self.spec.tool)

    def restore(self, key: CacheKey, *, workspace: str | Path = ".") -> Optional[CacheEntry]:
        try:
            return self.store.restore(key, workspace=workspace)
        except CacheUnavailable as e:
            self._unavailable(e)
            return None

    def persist(self, key: CacheKey, entry: CacheEntry, *, workspace: str | Path = ".") -> bool:
        try:
            self.store.persist(key, entry, workspace=workspace)
        except CacheUnavailable as e:
            self._unavailable(e)
            return False

        try:
            self.store.prune(key.target, keep=self.spec.keep)
        except OSError as e:
            # the entry itself was written; a failed prune only wastes disk
            self._unavailable(CacheUnavailable(key=str(key), operation="prune", reason=str(e)))
        return True
