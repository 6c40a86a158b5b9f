from __future__ import annotations

from matrixci.aggregator import aggregate
from matrixci.model import FAILED, SUCCEEDED, RunResult, StepRecord


def _result(config, status, failed_index=None):
    steps = (StepRecord(name="Build", index=1, status=status),)
    return RunResult(config=config, status=status, steps=steps, failed_index=failed_index)


def test_any_failure_fails_the_pipeline(x86, arm, mac):
    result = aggregate([
        _result(x86, SUCCEEDED),
        _result(arm, FAILED, failed_index=1),
        _result(mac, SUCCEEDED),
    ])
    assert result.status == FAILED
    config, step = result.first_failure
    assert config == arm
    assert step.name == "Build"


def test_all_succeeded(x86, mac):
    result = aggregate([_result(x86, SUCCEEDED), _result(mac, SUCCEEDED)])
    assert result.succeeded
    assert result.first_failure is None
    assert result.to_dict()["first_failure"] is None


def test_to_dict_reports_first_failure(x86, arm):
    data = aggregate([_result(x86, SUCCEEDED), _result(arm, FAILED, failed_index=1)]).to_dict()
    assert data["status"] == FAILED
    assert data["first_failure"] == {"target": arm.name, "step": "Build", "index": 1}
    assert [r["target"] for r in data["results"]] == [x86.name, arm.name]
