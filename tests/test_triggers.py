from __future__ import annotations

import pytest

from matrixci.triggers import PULL_REQUEST, PUSH, Event, Trigger


def test_push_to_main_triggers():
    assert Trigger().matches(Event(kind=PUSH, branch="main"))


def test_push_to_feature_branch_does_not_trigger():
    assert not Trigger().matches(Event(kind=PUSH, branch="feature/x"))


def test_pull_request_targeting_main_triggers():
    event = Event(kind=PULL_REQUEST, branch="feature/x", base="main")
    assert Trigger().matches(event)
    assert str(event) == "pull_request feature/x -> main"


def test_pull_request_targeting_other_branch_does_not_trigger():
    assert not Trigger().matches(Event(kind=PULL_REQUEST, branch="feature/x", base="release"))


def test_event_kind_filter():
    assert not Trigger(events=(PUSH,)).matches(Event(kind=PULL_REQUEST, branch="x", base="main"))


def test_unknown_event_kind():
    with pytest.raises(ValueError):
        Event(kind="schedule", branch="main")
