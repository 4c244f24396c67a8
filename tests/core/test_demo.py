"""Tests for the demonstration sequence."""

from unittest.mock import Mock, call

from tandem.coordination.markers import Marker
from tandem.core.demo import run_demo
from tandem.error_handling import CoordinationError


class TestRunDemo:
    """Test run_demo."""

    def test_touches_markers_in_order(self):
        orchestrator = Mock()
        orchestrator.wait.return_value = False

        written = run_demo(orchestrator, initial_delay=1.0, step_delay=3.0)

        assert written == 3
        assert orchestrator.wait.call_args_list == [call(1.0), call(3.0), call(3.0)]
        assert orchestrator.trigger.call_args_list == [
            call(Marker.TASK_READY),
            call(Marker.DEV_COMPLETE),
            call(Marker.REVIEW_COMPLETE),
        ]

    def test_stops_when_orchestrator_stops(self):
        orchestrator = Mock()
        orchestrator.wait.side_effect = [False, True]

        written = run_demo(orchestrator)

        assert written == 1
        orchestrator.trigger.assert_called_once_with(Marker.TASK_READY)

    def test_write_failure_ends_demo(self):
        orchestrator = Mock()
        orchestrator.wait.return_value = False
        orchestrator.trigger.side_effect = CoordinationError("read-only")

        assert run_demo(orchestrator) == 0
        orchestrator.trigger.assert_called_once()
