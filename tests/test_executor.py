"""Tests for the step executor and the retry wrapper."""

import pytest

from studio_installer.errors import StepFailed
from studio_installer.executor import StepExecutor, StepStatus, with_retry
from studio_installer.state_store import StateStore


def test_runs_once_then_skips(make_context):
    ctx = make_context()
    executor = StepExecutor(ctx)
    calls = []

    first = executor.run_step("audio_base_installed", lambda c: calls.append(1))
    second = executor.run_step("audio_base_installed", lambda c: calls.append(2))

    assert first.status is StepStatus.SUCCEEDED
    assert second.status is StepStatus.SKIPPED
    assert calls == [1]
    assert ctx.state.is_done("audio_base_installed")


def test_skip_has_no_package_side_effects(make_context, installer):
    ctx = make_context()
    executor = StepExecutor(ctx)

    def work(c):
        c.smart_install(["pipewire", "wireplumber"], "multimedia")

    executor.run_step("audio_packages", work)
    executor.run_step("audio_packages", work)

    assert installer.calls == [["pipewire", "wireplumber"]]


def test_exception_is_failure_and_not_marked(make_context):
    ctx = make_context()

    def work(c):
        raise RuntimeError("lvcreate failed")

    result = StepExecutor(ctx).run_step("disk_setup_lvm_created", work)

    assert result.failed
    assert result.reason == "lvcreate failed"
    assert ctx.state.is_done("disk_setup_lvm_created") is False


def test_false_return_is_failure(make_context):
    ctx = make_context()
    result = StepExecutor(ctx).run_step("check_compat", lambda c: False)
    assert result.status is StepStatus.FAILED
    assert ctx.state.is_done("check_compat") is False


def test_force_reruns_completed_steps(make_context):
    ctx = make_context(installer={"force": True})
    ctx.state.mark_done("theme_setup")
    calls = []

    result = StepExecutor(ctx).run_step("theme_setup", lambda c: calls.append("ran"))

    assert result.status is StepStatus.SUCCEEDED
    assert calls == ["ran"]


def test_unsafe_step_id_is_a_failure(make_context):
    ctx = make_context()
    calls = []

    result = StepExecutor(ctx).run_step("disk setup", lambda c: calls.append(1))

    assert result.status is StepStatus.FAILED
    assert "Invalid step id" in result.reason
    assert calls == []
    assert ctx.state.completed_steps() == []


def test_changed_fingerprint_runs_again(make_context):
    ctx = make_context()
    executor = StepExecutor(ctx)
    calls = []

    executor.run_step("studio_01-audio-base", lambda c: calls.append("v1"), fingerprint="sha256:v1")
    same = executor.run_step("studio_01-audio-base", lambda c: calls.append("again"), fingerprint="sha256:v1")
    changed = executor.run_step("studio_01-audio-base", lambda c: calls.append("v2"), fingerprint="sha256:v2")

    assert same.status is StepStatus.SKIPPED
    assert changed.status is StepStatus.SUCCEEDED
    assert calls == ["v1", "v2"]
    assert ctx.state.completion_fingerprint("studio_01-audio-base") == "sha256:v2"


def test_marker_without_fingerprint_still_skips(make_context):
    ctx = make_context()
    ctx.state.mark_done("studio_01-audio-base")

    result = StepExecutor(ctx).run_step("studio_01-audio-base", lambda c: None, fingerprint="sha256:v1")

    assert result.status is StepStatus.SKIPPED


def test_step_failed_exit_code_is_kept(make_context):
    def work(c):
        raise StepFailed("init_04-fstab-mounts", "Script 04-fstab-mounts.sh failed with exit code 3", returncode=3)

    result = StepExecutor(make_context()).run_step("init_04-fstab-mounts", work)

    assert result.failed
    assert result.returncode == 3


def test_keyboard_interrupt_propagates(make_context):
    ctx = make_context()

    def work(c):
        raise KeyboardInterrupt

    with pytest.raises(KeyboardInterrupt):
        StepExecutor(ctx).run_step("long_install", work)
    assert ctx.state.is_done("long_install") is False


def test_dry_run_does_not_persist_completion(make_context, state_dir):
    ctx = make_context(installer={"dry_run": True})
    StepExecutor(ctx).run_step("plasma_desktop", lambda c: None)

    assert ctx.state.is_done("plasma_desktop")
    assert StateStore(str(state_dir)).is_done("plasma_desktop") is False


def test_with_retry_recovers(make_context):
    ctx = make_context()
    attempts = []
    sleeps = []

    def flaky(c):
        attempts.append(1)
        if len(attempts) < 3:
            raise RuntimeError("mirror timeout")

    wrapped = with_retry(flaky, attempts=3, delay=2, sleep=sleeps.append)
    result = StepExecutor(ctx).run_step("fetch_firmware", wrapped)

    assert result.status is StepStatus.SUCCEEDED
    assert len(attempts) == 3
    assert sleeps == [2, 2]


def test_with_retry_gives_up(make_context):
    ctx = make_context()
    sleeps = []

    def always_fails(c):
        raise RuntimeError("still broken")

    wrapped = with_retry(always_fails, attempts=2, delay=1, sleep=sleeps.append)
    result = StepExecutor(ctx).run_step("fetch_firmware", wrapped)

    assert result.failed
    assert result.reason == "still broken"
    assert sleeps == [1]


def test_with_retry_retries_false_results(make_context):
    outcomes = [False, True]
    wrapped = with_retry(lambda c: outcomes.pop(0), attempts=3, delay=0, sleep=lambda d: None)
    assert wrapped(make_context()) is True


def test_with_retry_validates_attempts():
    with pytest.raises(ValueError):
        with_retry(lambda c: None, attempts=0)
