from __future__ import annotations

import pytest

from matrixci.dsl import target
from matrixci.ui.console import Console


@pytest.fixture
def console():
    return Console()


@pytest.fixture
def x86():
    return target("x86_64-unknown-linux-gnu", "ubuntu-latest")


@pytest.fixture
def arm():
    return target("aarch64-unknown-linux-gnu", "ubuntu-latest")


@pytest.fixture
def mac():
    return target("aarch64-apple-darwin", "macos-latest")


class Recorder:
    """Callable step action that remembers which targets invoked it."""

    def __init__(self, rc=None):
        self.rc = rc
        self.calls = []

    def __call__(self, config):
        self.calls.append(config.name)
        return self.rc


@pytest.fixture
def recorder():
    return Recorder
