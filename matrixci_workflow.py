# matrixci_workflow.py
# Build-verification for a Rust crate: three targets, one shared step list.
from __future__ import annotations

from matrixci.step_workflows import cargo


def pipeline():
    # build and test skip aarch64-linux, format runs on x86_64-linux only
    return cargo.rust_pipeline()
