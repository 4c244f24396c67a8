"""Workflow state machine driven by trigger markers."""

import logging
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING

from ..coordination.markers import Marker, Stage
from ..error_handling import TandemError

if TYPE_CHECKING:
    from ..config import TandemConfig
    from ..services.ntfy import NotificationService
    from .supervisor import ProcessSupervisor, StageExit

logger = logging.getLogger(__name__)


class WorkflowState(Enum):
    """Workflow states. ERROR is terminal for the life of the process."""

    IDLE = "idle"
    DEV_RUNNING = "dev_running"
    REVIEW_RUNNING = "review_running"
    ERROR = "error"

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class Transition:
    """One row of the transition table."""

    source: WorkflowState
    target: WorkflowState
    stage: Stage | None = None


# Keyed by marker: each marker is valid from exactly one source state.
TRANSITIONS: dict[Marker, Transition] = {
    Marker.TASK_READY: Transition(
        WorkflowState.IDLE, WorkflowState.DEV_RUNNING, Stage.DEV
    ),
    Marker.DEV_COMPLETE: Transition(
        WorkflowState.DEV_RUNNING, WorkflowState.REVIEW_RUNNING, Stage.REVIEW
    ),
    Marker.REVIEW_COMPLETE: Transition(
        WorkflowState.REVIEW_RUNNING, WorkflowState.IDLE
    ),
}


class ReadWriteLock:
    """Many concurrent readers or a single writer."""

    def __init__(self) -> None:
        self._cond = threading.Condition(threading.Lock())
        self._readers = 0
        self._writing = False

    @contextmanager
    def read_locked(self) -> Iterator[None]:
        with self._cond:
            while self._writing:
                self._cond.wait()
            self._readers += 1
        try:
            yield
        finally:
            with self._cond:
                self._readers -= 1
                if not self._readers:
                    self._cond.notify_all()

    @contextmanager
    def write_locked(self) -> Iterator[None]:
        with self._cond:
            while self._writing or self._readers:
                self._cond.wait()
            self._writing = True
        try:
            yield
        finally:
            with self._cond:
                self._writing = False
                self._cond.notify_all()


class WorkflowStateMachine:
    """Validates marker events against the current state and runs stages.

    ``handle_marker`` and ``handle_stage_exit`` are called from the single
    dispatcher thread. ``state`` may be read from any thread.
    """

    def __init__(
        self,
        config: "TandemConfig",
        work_dir: Path,
        supervisor: "ProcessSupervisor",
        notifier: "NotificationService | None" = None,
    ):
        self.config = config
        self.work_dir = work_dir
        self.supervisor = supervisor
        self.notifier = notifier

        self._state = WorkflowState.IDLE
        self._state_lock = ReadWriteLock()
        self._deferred: Marker | None = None
        self.last_error: str | None = None

    @property
    def state(self) -> WorkflowState:
        with self._state_lock.read_locked():
            return self._state

    def _set_state(self, state: WorkflowState) -> None:
        with self._state_lock.write_locked():
            previous, self._state = self._state, state
        logger.info(f"State changed: {previous} -> {state}")

    def handle_marker(self, marker: Marker) -> Transition | None:
        """Apply the transition for a marker write, if valid in this state."""
        current = self.state
        transition = TRANSITIONS.get(marker)

        if transition is None or transition.source is not current:
            logger.debug(f"Ignoring {marker.filename} in state {current}")
            return None

        if transition.stage is not None and self.supervisor.is_busy:
            # Replayed from handle_stage_exit once the slot is released
            logger.warning(
                f"{marker.filename} arrived while {self.supervisor.current} "
                "is still running; deferring until it exits",
            )
            self._deferred = marker
            return None

        self._set_state(transition.target)

        if transition.stage is None:
            logger.info("✅ Cycle complete, returning to idle")
            if self.notifier:
                self.notifier.notify_cycle_complete()
        else:
            self._start_stage(transition.stage)

        return transition

    def _start_stage(self, stage: Stage) -> None:
        script_path = self.config.runner_path(self.work_dir, stage)
        logger.info(f"Starting {stage.label} session: {script_path}")

        try:
            self.supervisor.start_stage(stage, script_path, [str(self.work_dir)])
        except TandemError as e:
            logger.error(f"❌ {e.message}")
            self._fail(stage, e.message)
            return

        if self.notifier:
            self.notifier.notify_stage_started(stage)

    def handle_stage_exit(self, stage_exit: "StageExit") -> None:
        """Fold a stage process exit report into the workflow state."""
        if stage_exit.terminated:
            logger.debug(f"Ignoring exit of {stage_exit.script_path} after shutdown")
            return

        if not stage_exit.succeeded:
            self._deferred = None
            self._fail(stage_exit.stage, stage_exit.describe())
            return

        # State stays put until the stage's completion marker is written
        deferred, self._deferred = self._deferred, None
        if deferred:
            logger.info(f"Replaying deferred {deferred.filename}")
            self.handle_marker(deferred)

    def _fail(self, stage: Stage, reason: str) -> None:
        self.last_error = reason
        if self.state is not WorkflowState.ERROR:
            self._set_state(WorkflowState.ERROR)
        if self.notifier:
            self.notifier.notify_stage_failed(stage, reason)
