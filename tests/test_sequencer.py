from __future__ import annotations

from matrixci.dsl import action, only_on, sh, skip_on
from matrixci.errors import StepFailure
from matrixci.model import CANCELLED, FAILED, SKIPPED, SUCCEEDED, CacheEntry, CacheKey
from matrixci.sequencer import run_configuration


def test_all_steps_pass(x86, recorder, console):
    s1, s2 = recorder(), recorder(0)
    result = run_configuration(x86, [action("one", s1), action("two", s2)], console=console)
    assert result.status == SUCCEEDED
    assert result.failed_index is None
    assert [r.status for r in result.steps] == [SUCCEEDED, SUCCEEDED]
    assert s1.calls == s2.calls == [x86.name]


def test_fail_fast_stops_at_first_failure(x86, recorder, console):
    s1, s2, s3 = recorder(), recorder(1), recorder()
    result = run_configuration(x86, [action("S1", s1), action("S2", s2), action("S3", s3)], console=console)

    assert result.status == FAILED
    assert result.failed_index == 2
    assert result.failed_step.name == "S2"
    assert s3.calls == []
    assert [r.status for r in result.steps] == [SUCCEEDED, FAILED, CANCELLED]


def test_predicate_skips_without_invoking(x86, arm, recorder, console):
    only_x86 = recorder()
    steps = [action("x86 only", only_x86, when=only_on(x86.name))]

    on_arm = run_configuration(arm, steps, console=console)
    assert on_arm.status == SUCCEEDED
    assert on_arm.steps[0].status == SKIPPED
    assert on_arm.steps[0].reason == f"only on {x86.name}"
    assert on_arm.executed() == ()
    assert only_x86.calls == []

    on_x86 = run_configuration(x86, steps, console=console)
    assert on_x86.steps[0].status == SUCCEEDED
    assert only_x86.calls == [x86.name]


def test_skipped_step_is_not_a_failure(arm, recorder, console):
    after = recorder()
    steps = [
        action("build", recorder(1), when=skip_on(arm.name)),
        action("clippy", after),
    ]
    result = run_configuration(arm, steps, console=console)
    assert result.status == SUCCEEDED
    assert after.calls == [arm.name]


def test_raised_step_failure(x86, console):
    def boom(config):
        raise StepFailure(target=config.name, step="boom", cmd="cargo test", exit_code=101)

    result = run_configuration(x86, [action("boom", boom)], console=console)
    assert result.failed_index == 1
    assert result.steps[0].exit_code == 101


def test_unexpected_exception_fails_only_that_step(x86, recorder, console):
    def broken(config):
        raise RuntimeError("disk full")

    later = recorder()
    result = run_configuration(x86, [action("broken", broken), action("later", later)], console=console)
    assert result.status == FAILED
    assert "RuntimeError: disk full" in result.steps[0].reason
    assert later.calls == []


def test_shell_steps_run_with_target_substitution(tmp_path, x86, console):
    steps = [
        sh("write", "echo {target} > out.txt && echo $MATRIXCI_OS >> out.txt"),
        sh("env", 'test "$GREETING" = hello', env={"GREETING": "hello"}),
    ]
    result = run_configuration(x86, steps, workspace=tmp_path, console=console)
    assert result.status == SUCCEEDED
    assert (tmp_path / "out.txt").read_text().split() == [x86.name, x86.os]


def test_shell_nonzero_exit_is_failure(tmp_path, x86, console):
    steps = [sh("lint", "echo warning >&2; exit 3"), sh("never", "touch never.txt")]
    result = run_configuration(x86, steps, workspace=tmp_path, console=console)
    assert result.failed_index == 1
    assert result.steps[0].exit_code == 3
    assert not (tmp_path / "never.txt").exists()


def test_missing_cwd_is_failure(tmp_path, x86, console):
    result = run_configuration(x86, [sh("build", "true", cwd="nope")], workspace=tmp_path, console=console)
    assert result.status == FAILED
    assert "cwd not found" in result.steps[0].reason


def test_cache_entry_is_threaded_through(x86, recorder, console):
    entry = CacheEntry(key=CacheKey(x86.name, "cargo", "1.0", ""))
    result = run_configuration(x86, [action("one", recorder())], cache_entry=entry, console=console)
    assert result.cache_entry is entry
    assert result.to_dict()["cache_key"] == f"{x86.name}-cargo-1.0-"


def test_shell_braces_are_left_to_the_shell(tmp_path, x86, console):
    steps = [
        sh("env", 'test -n "${HOME}"'),
        sh("awk", "echo 'a b' | awk '{print $2}' > col.txt"),
        sh("mixed", 'echo "{target}:${MATRIXCI_OS}" > mixed.txt'),
    ]
    result = run_configuration(x86, steps, workspace=tmp_path, console=console)
    assert result.status == SUCCEEDED, [r.reason for r in result.steps]
    assert (tmp_path / "col.txt").read_text().strip() == "b"
    assert (tmp_path / "mixed.txt").read_text().strip() == f"{x86.name}:{x86.os}"
