"""Main workflow orchestration for Tandem."""

import logging
import queue
import threading
from pathlib import Path

from tandem.config import TandemConfig
from tandem.coordination.markers import Marker
from tandem.coordination.store import CoordinationStore
from tandem.coordination.watcher import MarkerEvent, MarkerWatcher
from tandem.core.state import WorkflowState, WorkflowStateMachine
from tandem.core.supervisor import ProcessSupervisor, StageExit
from tandem.services.ntfy import NotificationService

logger = logging.getLogger(__name__)

_STOP = object()


class TandemOrchestrator:
    """Wires the marker watcher, state machine and process supervisor.

    Marker events and stage exit reports share one inbox, drained in order by
    a single dispatcher thread, so every state change happens there.
    """

    def __init__(self, config: TandemConfig, work_dir: Path):
        self.config = config
        self.work_dir = work_dir

        # Core components
        self.store = CoordinationStore(config.coordination_dir(work_dir))
        self.notifier = NotificationService(config)
        self.supervisor = ProcessSupervisor(work_dir, on_exit=self._post)
        self.state_machine = WorkflowStateMachine(
            config,
            work_dir,
            self.supervisor,
            notifier=self.notifier,
        )

        # Event delivery
        self.watcher: MarkerWatcher | None = None
        self.dispatch_thread: threading.Thread | None = None
        self._inbox: queue.Queue = queue.Queue()
        self._stop_event = threading.Event()
        self.is_running = False

    @property
    def state(self) -> WorkflowState:
        return self.state_machine.state

    def start(self) -> None:
        """Prepare the coordination directory and start dispatching.

        Raises CoordinationError or WatchError if setup fails.
        """
        if self.is_running:
            logger.warning("Orchestrator is already running")
            return

        logger.info(f"🚀 Starting orchestrator, watching: {self.store.directory}")
        self.store.ensure_directory()
        self.store.ensure_markers()

        self._inbox = queue.Queue()
        self._stop_event.clear()

        self.watcher = MarkerWatcher(self.store.directory, callback=self._post)
        self.watcher.start()

        self.dispatch_thread = threading.Thread(
            target=self._dispatch_loop,
            name="tandem-dispatch",
            daemon=True,
        )
        self.is_running = True
        self.dispatch_thread.start()

        logger.info("Orchestrator started - state %s", self.state)

    def stop(self) -> None:
        """Stop immediately: terminate the stage process and stop watching."""
        self._stop_event.set()

        if not self.is_running:
            return

        logger.info("🛑 Stopping orchestrator")
        self.is_running = False

        self.supervisor.stop()

        if self.watcher:
            self.watcher.stop()

        self._inbox.put(_STOP)
        if (
            self.dispatch_thread
            and self.dispatch_thread is not threading.current_thread()
        ):
            self.dispatch_thread.join()

        self.notifier.close()

        logger.info("Orchestrator stopped")

    def request_stop(self) -> None:
        """Ask a waiting run loop to finish. Safe from signal handlers."""
        self._stop_event.set()

    def wait(self, timeout: float | None = None) -> bool:
        """Block until a stop is requested. Returns True once it has been."""
        return self._stop_event.wait(timeout)

    def trigger(self, marker: Marker) -> Path:
        """Write a marker, exactly as an external actor would."""
        return self.store.touch(marker)

    def _post(self, message: MarkerEvent | StageExit) -> None:
        self._inbox.put(message)

    def _dispatch_loop(self) -> None:
        logger.debug("Dispatcher started")

        while True:
            message = self._inbox.get()
            if message is _STOP:
                break
            try:
                self._dispatch(message)
            except Exception:
                logger.exception(f"Error dispatching {message}")

        logger.debug("Dispatcher stopped")

    def _dispatch(self, message: MarkerEvent | StageExit) -> None:
        if isinstance(message, StageExit):
            self.state_machine.handle_stage_exit(message)
            return

        marker = message.marker
        if marker is None:
            logger.debug(f"Ignoring change to {message.filename}")
            return

        logger.info(f"📁 File changed: {message.filename} (current state: {self.state})")
        self.state_machine.handle_marker(marker)

    def get_status(self) -> dict:
        """Get current orchestrator status."""
        current = self.supervisor.current
        process = None
        if current:
            process = {
                "stage": current.stage.value,
                "script": str(current.script_path),
                "pid": current.pid,
                "started_at": current.started_at,
            }

        return {
            "running": self.is_running,
            "state": self.state.value,
            "work_dir": str(self.work_dir),
            "coordination_dir": str(self.store.directory),
            "process": process,
            "last_error": self.state_machine.last_error,
            "markers": {
                marker.short_name: info for marker, info in self.store.snapshot().items()
            },
        }
