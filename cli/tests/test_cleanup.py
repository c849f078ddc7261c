import pytest

from paperstack.cleanup import FailureCleanup, RunState


def test_cleanup_skipped_when_not_armed(fake_target, reporter) -> None:
    state = RunState(compose_command="docker compose", install_dir="/opt/paperless")
    with FailureCleanup(state, fake_target, reporter=reporter) as cleanup:
        pass
    assert not cleanup.triggered
    assert fake_target.runner.calls == []


def test_cleanup_runs_down_once_in_install_dir(fake_target, reporter) -> None:
    state = RunState(compose_command="docker compose", install_dir="/opt/paperless")
    state.arm()
    cleanup = FailureCleanup(state, fake_target, reporter=reporter)
    with pytest.raises(RuntimeError):
        with cleanup:
            raise RuntimeError("boom")
    cleanup.run()
    assert cleanup.triggered
    assert fake_target.runner.calls == [["docker", "compose", "down"]]
    assert fake_target.runner.cwds == ["/opt/paperless"]
    assert "Cleaning up" in reporter.text("warn")


def test_cleanup_needs_compose_and_directory(fake_target, reporter) -> None:
    state = RunState()
    state.arm()
    FailureCleanup(state, fake_target, reporter=reporter).run()
    assert fake_target.runner.calls == []


def test_cleanup_errors_are_not_raised(fake_target, reporter) -> None:
    def _explode(args):
        raise OSError("gone")

    fake_target.on("docker-compose", handler=_explode)
    state = RunState(failed=True, compose_command="docker-compose", install_dir="/srv/p")
    FailureCleanup(state, fake_target, reporter=reporter).run()
    assert fake_target.runner.calls == [["docker-compose", "down"]]


def test_cleared_state_skips_cleanup(fake_target, reporter) -> None:
    state = RunState(compose_command="docker compose", install_dir="/opt/paperless")
    state.arm()
    state.clear()
    with FailureCleanup(state, fake_target, reporter=reporter) as cleanup:
        pass
    assert not cleanup.triggered
