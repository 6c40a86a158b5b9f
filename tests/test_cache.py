from __future__ import annotations

import os
import tarfile

from matrixci.cache import CacheCoordinator, CacheStore, compute_key, hash_lockfiles
from matrixci.model import CacheEntry, CacheKey, CacheSpec


def test_compute_key_is_pure(x86):
    a = compute_key(x86, "1.82.0", "abc")
    b = compute_key(x86, "1.82.0", "abc")
    assert a == b
    assert str(a) == "x86_64-unknown-linux-gnu-cargo-1.82.0-abc"


def test_compute_key_changes_with_inputs(x86, mac):
    base = compute_key(x86, "1.82.0", "abc")
    assert compute_key(x86, "1.82.0", "def") != base
    assert compute_key(x86, "1.83.0", "abc") != base
    assert compute_key(mac, "1.82.0", "abc") != base


def test_hash_lockfiles_tracks_content(tmp_path):
    (tmp_path / "crate").mkdir()
    lock = tmp_path / "crate" / "Cargo.lock"
    lock.write_text("version = 3\n")

    first = hash_lockfiles(tmp_path, ["**/Cargo.lock"])
    assert first
    assert hash_lockfiles(tmp_path, ["**/Cargo.lock"]) == first

    lock.write_text("version = 4\n")
    assert hash_lockfiles(tmp_path, ["**/Cargo.lock"]) != first


def test_hash_lockfiles_without_matches(tmp_path):
    assert hash_lockfiles(tmp_path, ["**/Cargo.lock"]) == ""


def test_restore_miss_returns_none(tmp_path):
    store = CacheStore(tmp_path / "cache")
    key = CacheKey("x86_64-unknown-linux-gnu", "cargo", "1.0", "abc")
    assert store.restore(key, workspace=tmp_path) is None


def test_persist_then_restore(tmp_path):
    workspace = tmp_path / "ws"
    home = tmp_path / "home"
    (workspace / "target" / "debug").mkdir(parents=True)
    (workspace / "target" / "debug" / "app").write_text("binary")
    (home / ".cargo" / "registry").mkdir(parents=True)
    (home / ".cargo" / "registry" / "index.json").write_text("{}")

    store = CacheStore(tmp_path / "cache", home=home)
    key = CacheKey("x86_64-unknown-linux-gnu", "cargo", "1.0", "abc")
    entry = CacheEntry(key=key, paths=("target/", "~/.cargo/registry/"))
    saved = store.persist(key, entry, workspace=workspace)
    assert saved.manifest["files"] == 2

    # wipe the state the cache should bring back
    (workspace / "target" / "debug" / "app").unlink()
    (home / ".cargo" / "registry" / "index.json").unlink()

    restored = store.restore(key, workspace=workspace)
    assert restored is not None
    assert restored.restored is True
    assert restored.paths == ("target/", "~/.cargo/registry/")
    assert (workspace / "target" / "debug" / "app").read_text() == "binary"
    assert (home / ".cargo" / "registry" / "index.json").read_text() == "{}"


def test_prune_keeps_newest(tmp_path):
    store = CacheStore(tmp_path / "cache")
    for i in range(4):
        key = CacheKey("t", "cargo", "1.0", f"h{i}")
        store.persist(key, CacheEntry(key=key), workspace=tmp_path)
        path = store.artifact_path(key)
        # distinct mtimes regardless of filesystem resolution
        os.utime(path, (1_000_000 + i, 1_000_000 + i))

    removed = store.prune("t", keep=2)
    assert sorted(removed) == ["t-cargo-1.0-h0", "t-cargo-1.0-h1"]
    assert store.keys("t") == ["t-cargo-1.0-h3", "t-cargo-1.0-h2"]


def test_coordinator_tolerates_unavailable_store(tmp_path, x86):
    blocker = tmp_path / "not-a-dir"
    blocker.write_text("")
    reported = []
    coordinator = CacheCoordinator(CacheStore(blocker), CacheSpec(), report=reported.append)
    key = compute_key(x86, "1.0", "abc")

    assert coordinator.restore(key, workspace=tmp_path) is None
    assert coordinator.persist(key, CacheEntry(key=key), workspace=tmp_path) is False
    assert [e.operation for e in reported] == ["restore", "persist"]


def test_coordinator_key_uses_lockfiles(tmp_path, x86):
    (tmp_path / "Cargo.lock").write_text("a")
    coordinator = CacheCoordinator(CacheStore(tmp_path / "cache"), CacheSpec(lockfiles=("Cargo.lock",)))
    key = coordinator.key_for(x86, "1.0", workspace=tmp_path)
    assert key.lockfile_hash == hash_lockfiles(tmp_path, ["Cargo.lock"])
    assert key.tool == "cargo"


def test_hash_lockfiles_ignores_nested_excluded_dirs(tmp_path):
    (tmp_path / "Cargo.lock").write_text("root")
    base = hash_lockfiles(tmp_path, ["**/Cargo.lock"])

    for hidden in (".matrixci/cache/deep", ".git/modules/sub"):
        (tmp_path / hidden).mkdir(parents=True)
        (tmp_path / hidden / "Cargo.lock").write_text("noise")
    assert hash_lockfiles(tmp_path, ["**/Cargo.lock"]) == base

    # a genuine nested crate still counts
    (tmp_path / "crates" / "sub").mkdir(parents=True)
    (tmp_path / "crates" / "sub" / "Cargo.lock").write_text("sub")
    assert hash_lockfiles(tmp_path, ["**/Cargo.lock"]) != base


def test_persist_skips_excluded_files(tmp_path):
    workspace = tmp_path / "ws"
    (workspace / ".git" / "objects" / "ab").mkdir(parents=True)
    (workspace / ".git" / "objects" / "ab" / "cd").write_text("blob")
    (workspace / "target" / "debug").mkdir(parents=True)
    (workspace / "target" / "debug" / "app").write_text("binary")
    (workspace / "target" / "debug" / ".DS_Store").write_text("")

    store = CacheStore(tmp_path / "cache", home=tmp_path / "home")
    key = CacheKey("t", "cargo", "1.0", "")
    saved = store.persist(key, CacheEntry(key=key, paths=(".",)), workspace=workspace)
    assert saved.manifest["files"] == 1


def test_restore_without_extraction_filters(tmp_path, monkeypatch):
    workspace = tmp_path / "ws"
    (workspace / "target").mkdir(parents=True)
    (workspace / "target" / "app").write_text("binary")
    store = CacheStore(tmp_path / "cache", home=tmp_path / "home")
    key = CacheKey("t", "cargo", "1.0", "")
    store.persist(key, CacheEntry(key=key, paths=("target/",)), workspace=workspace)
    (workspace / "target" / "app").unlink()

    # interpreters older than the extraction-filter backport reject `filter=`
    original = tarfile.TarFile.extract

    def extract(self, member, path="", set_attrs=True, *, numeric_owner=False, **kwargs):
        if kwargs:
            raise TypeError(f"extract() got an unexpected keyword argument {next(iter(kwargs))!r}")
        return original(self, member, path, set_attrs, numeric_owner=numeric_owner)

    monkeypatch.delattr(tarfile, "data_filter", raising=False)
    monkeypatch.setattr(tarfile.TarFile, "extract", extract)

    assert store.restore(key, workspace=workspace) is not None
    assert (workspace / "target" / "app").read_text() == "binary"
