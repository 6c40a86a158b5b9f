# step_workflows/cargo.py
from __future__ import annotations

from ..dsl import TargetPredicate, cache, on, only_on, pipeline, sh, skip_on
from ..model import Pipeline, Predicate, Step, always


# ---------------------------------------------------------------------
# Cargo / rustup step helpers
# ---------------------------------------------------------------------

X86_64_LINUX = "x86_64-unknown-linux-gnu"
AARCH64_LINUX = "aarch64-unknown-linux-gnu"
AARCH64_DARWIN = "aarch64-apple-darwin"

DEFAULT_TARGETS = [
    {"name": X86_64_LINUX, "os": "ubuntu-latest"},
    {"name": AARCH64_LINUX, "os": "ubuntu-latest"},
    {"name": AARCH64_DARWIN, "os": "macos-latest"},
]

CARGO_CACHE_PATHS = (
    "~/.cargo/bin/",
    "~/.cargo/registry/index/",
    "~/.cargo/registry/cache/",
    "~/.cargo/git/db/",
    "~/.rustup/toolchains/nightly-x86_64-unknown-linux-gnu",
    "target/",
)


def add_target(*, when: Predicate = always) -> Step:
    return sh("Add target", "rustup target add {target}", when=when)


def build(*, when: Predicate = always, verbose: bool = True) -> Step:
    flags = " --verbose" if verbose else ""
    return sh("Build", f"cargo build{flags} --target {{target}}", when=when)


def fmt_check(*, when: Predicate = always, toolchain: str = "nightly") -> Step:
    return sh(
        "Format",
        f"rustup toolchain install {toolchain} && "
        f"rustup component add --toolchain {toolchain} rustfmt && "
        f"cargo +{toolchain} fmt --check",
        when=when,
    )


def test(*, when: Predicate = always) -> Step:
    return sh("Run tests", "cargo test --target {target}", when=when)


def clippy(*, when: Predicate = always, deny_warnings: bool = True) -> Step:
    extra = " -- -D warnings" if deny_warnings else ""
    return sh("Clippy", f"cargo clippy --target {{target}}{extra}", when=when)


def rust_pipeline(
    name: str = "Rust",
    *,
    targets=None,
    format_target: str = X86_64_LINUX,
    no_build: tuple[str, ...] = (AARCH64_LINUX,),
    no_test: tuple[str, ...] = (AARCH64_LINUX,),
    run_tests: bool = True,
) -> Pipeline:
    """
    Build-verification pipeline for a Rust crate across a target matrix.

    The inclusion table is explicit: `no_build` / `no_test` list targets whose
    runners cannot compile or run the hardware-virtualization tests, and
    format checks run on `format_target` only. `run_tests=False` drops the
    test step for every target (hosts without virtualization support).
    """
    if not run_tests:
        test_when = TargetPredicate(lambda c: False, "tests deferred on this host")
    else:
        test_when = skip_on(*no_test) if no_test else always
    return pipeline(
        name,
        add_target(),
        build(when=skip_on(*no_build) if no_build else always),
        fmt_check(when=only_on(format_target)),
        test(when=test_when),
        clippy(),
        targets=targets or DEFAULT_TARGETS,
        cache=cache(*CARGO_CACHE_PATHS, lockfiles=("**/Cargo.lock",)),
        trigger=on("push", "pull_request"),
        env={"CARGO_TERM_COLOR": "always"},
    )
