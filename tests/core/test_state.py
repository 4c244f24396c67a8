"""Tests for the workflow state machine."""

import threading
from pathlib import Path
from unittest.mock import Mock

import pytest

from tandem.coordination.markers import Marker, Stage
from tandem.core.state import (
    TRANSITIONS,
    ReadWriteLock,
    WorkflowState,
    WorkflowStateMachine,
)
from tandem.core.supervisor import ProcessSupervisor, StageExit
from tandem.error_handling import StageLaunchError, StageScriptError


@pytest.fixture
def supervisor():
    """Supervisor double with a free process slot."""
    supervisor = Mock(spec=ProcessSupervisor)
    supervisor.is_busy = False
    supervisor.current = None
    return supervisor


@pytest.fixture
def notifier():
    return Mock()


@pytest.fixture
def machine(config, work_dir, supervisor, notifier):
    return WorkflowStateMachine(config, work_dir, supervisor, notifier=notifier)


def exit_report(stage: Stage, returncode: int | None = 0, **kwargs) -> StageExit:
    return StageExit(
        stage=stage,
        script_path=Path(f"/work/{stage.value}-stage-runner"),
        returncode=returncode,
        **kwargs,
    )


class TestTransitionTable:
    """Test transitions fire exactly for the rows in the table."""

    @pytest.mark.parametrize("state", list(WorkflowState))
    @pytest.mark.parametrize("marker", list(Marker))
    def test_transition_fires_only_from_source_state(
        self, machine, supervisor, state, marker
    ):
        """Test every (state, marker) pair against the table."""
        machine._set_state(state)
        row = TRANSITIONS[marker]

        result = machine.handle_marker(marker)

        if row.source is state:
            assert result == row
            assert machine.state is row.target
            if row.stage is None:
                supervisor.start_stage.assert_not_called()
            else:
                supervisor.start_stage.assert_called_once()
        else:
            assert result is None
            assert machine.state is state
            supervisor.start_stage.assert_not_called()

    def test_each_marker_has_one_source(self):
        """Test the table covers every marker."""
        assert set(TRANSITIONS) == set(Marker)


class TestStageStarts:
    """Test stage processes are launched on transitions."""

    def test_task_ready_starts_dev_runner(self, machine, supervisor, work_dir):
        """Test idle + task-ready launches the dev runner with the work dir."""
        machine.handle_marker(Marker.TASK_READY)

        assert machine.state is WorkflowState.DEV_RUNNING
        supervisor.start_stage.assert_called_once_with(
            Stage.DEV,
            work_dir / "dev-stage-runner",
            [str(work_dir)],
        )

    def test_dev_complete_starts_review_runner(self, machine, supervisor, work_dir):
        """Test dev-complete launches the review runner."""
        machine._set_state(WorkflowState.DEV_RUNNING)

        machine.handle_marker(Marker.DEV_COMPLETE)

        assert machine.state is WorkflowState.REVIEW_RUNNING
        supervisor.start_stage.assert_called_once_with(
            Stage.REVIEW,
            work_dir / "review-stage-runner",
            [str(work_dir)],
        )

    def test_review_complete_returns_to_idle(self, machine, supervisor, notifier):
        """Test review-complete ends the cycle without starting anything."""
        machine._set_state(WorkflowState.REVIEW_RUNNING)

        machine.handle_marker(Marker.REVIEW_COMPLETE)

        assert machine.state is WorkflowState.IDLE
        supervisor.start_stage.assert_not_called()
        notifier.notify_cycle_complete.assert_called_once()

    def test_review_complete_in_idle_is_noop(self, machine, supervisor):
        """Test a marker for the wrong source state changes nothing."""
        assert machine.handle_marker(Marker.REVIEW_COMPLETE) is None

        assert machine.state is WorkflowState.IDLE
        supervisor.start_stage.assert_not_called()

    def test_stage_start_notifies(self, machine, notifier):
        """Test a successful start sends a notification."""
        machine.handle_marker(Marker.TASK_READY)

        notifier.notify_stage_started.assert_called_once_with(Stage.DEV)

    def test_missing_runner_forces_error(self, machine, supervisor, notifier, work_dir):
        """Test a missing script forces the error state."""
        script = work_dir / "dev-stage-runner"
        supervisor.start_stage.side_effect = StageScriptError(script, "does not exist")

        machine.handle_marker(Marker.TASK_READY)

        assert machine.state is WorkflowState.ERROR
        assert "does not exist" in machine.last_error
        notifier.notify_stage_failed.assert_called_once()
        notifier.notify_stage_started.assert_not_called()

    def test_spawn_failure_forces_error(self, machine, supervisor, work_dir):
        """Test an OS launch failure forces the error state."""
        supervisor.start_stage.side_effect = StageLaunchError(
            work_dir / "dev-stage-runner",
            PermissionError("denied"),
        )

        machine.handle_marker(Marker.TASK_READY)

        assert machine.state is WorkflowState.ERROR


class TestBusySlot:
    """Test starts never overlap a live process."""

    def test_dev_complete_deferred_while_dev_runner_live(self, machine, supervisor):
        """Test dev-complete with a live process starts nothing."""
        machine._set_state(WorkflowState.DEV_RUNNING)
        supervisor.is_busy = True

        assert machine.handle_marker(Marker.DEV_COMPLETE) is None
        assert machine.handle_marker(Marker.DEV_COMPLETE) is None

        assert machine.state is WorkflowState.DEV_RUNNING
        supervisor.start_stage.assert_not_called()

    def test_deferred_marker_replayed_after_clean_exit(self, machine, supervisor):
        """Test the deferred edge runs once the slot is released."""
        machine._set_state(WorkflowState.DEV_RUNNING)
        supervisor.is_busy = True
        machine.handle_marker(Marker.DEV_COMPLETE)

        supervisor.is_busy = False
        machine.handle_stage_exit(exit_report(Stage.DEV))

        assert machine.state is WorkflowState.REVIEW_RUNNING
        supervisor.start_stage.assert_called_once()
        assert supervisor.start_stage.call_args.args[0] is Stage.REVIEW

    def test_deferred_marker_dropped_after_failure(self, machine, supervisor):
        """Test a failed stage discards the deferred edge."""
        machine._set_state(WorkflowState.DEV_RUNNING)
        supervisor.is_busy = True
        machine.handle_marker(Marker.DEV_COMPLETE)

        supervisor.is_busy = False
        machine.handle_stage_exit(exit_report(Stage.DEV, returncode=1))

        assert machine.state is WorkflowState.ERROR
        supervisor.start_stage.assert_not_called()


class TestStageExit:
    """Test process exit reports."""

    def test_clean_exit_keeps_state(self, machine):
        """Test a zero exit waits for the completion marker."""
        machine._set_state(WorkflowState.DEV_RUNNING)

        machine.handle_stage_exit(exit_report(Stage.DEV))

        assert machine.state is WorkflowState.DEV_RUNNING

    def test_failed_exit_forces_error(self, machine, notifier):
        """Test a non-zero exit forces the error state."""
        machine._set_state(WorkflowState.DEV_RUNNING)

        machine.handle_stage_exit(exit_report(Stage.DEV, returncode=2))

        assert machine.state is WorkflowState.ERROR
        assert "status 2" in machine.last_error
        notifier.notify_stage_failed.assert_called_once_with(Stage.DEV, machine.last_error)

    def test_wait_error_forces_error(self, machine):
        """Test an execution error while waiting forces the error state."""
        machine._set_state(WorkflowState.REVIEW_RUNNING)

        machine.handle_stage_exit(
            exit_report(Stage.REVIEW, returncode=None, error="No child processes"),
        )

        assert machine.state is WorkflowState.ERROR

    def test_terminated_exit_ignored(self, machine):
        """Test exits caused by shutdown do not change state."""
        machine._set_state(WorkflowState.DEV_RUNNING)

        machine.handle_stage_exit(exit_report(Stage.DEV, returncode=-15, terminated=True))

        assert machine.state is WorkflowState.DEV_RUNNING

    def test_error_is_terminal(self, machine, supervisor):
        """Test no marker leaves the error state."""
        machine._set_state(WorkflowState.DEV_RUNNING)
        machine.handle_stage_exit(exit_report(Stage.DEV, returncode=1))

        for marker in [*Marker, *Marker]:
            assert machine.handle_marker(marker) is None

        assert machine.state is WorkflowState.ERROR
        supervisor.start_stage.assert_not_called()


class TestReadWriteLock:
    """Test the shared/exclusive state lock."""

    def test_readers_share_lock(self):
        """Test two readers hold the lock at the same time."""
        lock = ReadWriteLock()
        barrier = threading.Barrier(2, timeout=2)

        def reader():
            with lock.read_locked():
                barrier.wait()

        threads = [threading.Thread(target=reader) for _ in range(2)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join(timeout=5)

        assert not barrier.broken

    def test_writer_excludes_readers(self):
        """Test a reader waits for the writer to finish."""
        lock = ReadWriteLock()
        acquired = threading.Event()

        def reader():
            with lock.read_locked():
                acquired.set()

        with lock.write_locked():
            thread = threading.Thread(target=reader)
            thread.start()
            assert not acquired.wait(0.1)

        thread.join(timeout=5)
        assert acquired.is_set()

    def test_writer_waits_for_readers(self):
        """Test a writer waits for active readers."""
        lock = ReadWriteLock()
        written = threading.Event()

        def writer():
            with lock.write_locked():
                written.set()

        with lock.read_locked():
            thread = threading.Thread(target=writer)
            thread.start()
            assert not written.wait(0.1)

        thread.join(timeout=5)
        assert written.is_set()
