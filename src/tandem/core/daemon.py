"""Run loop and daemon management for Tandem."""

import logging
import signal
import threading
from pathlib import Path

import daemon

from ..config import TandemConfig
from ..coordination.markers import Marker
from ..process_lock import ProcessLock
from .demo import run_demo
from .orchestrator import TandemOrchestrator

logger = logging.getLogger(__name__)

DEFAULT_LOG_DIR = Path("~/.local/share/tandem/logs")


class TandemDaemon:
    """Manages the orchestrator lifecycle for one working directory."""

    def __init__(self, config: TandemConfig, work_dir: Path):
        self.config = config
        self.work_dir = work_dir
        self.orchestrator: TandemOrchestrator | None = None
        self.lock: ProcessLock | None = None
        self.demo_thread: threading.Thread | None = None

    def start_detached(self, *, demo: bool = False) -> int:
        """Start Tandem as a background daemon."""
        log_dir = (self.config.log_dir or DEFAULT_LOG_DIR).expanduser()
        log_dir.mkdir(parents=True, exist_ok=True)
        log_file_path = log_dir / "tandem.log"

        logger.info("Starting Tandem daemon...")
        logger.info(f"Log file: {log_file_path}")
        logger.info(f"Working directory: {self.work_dir}")

        # Stage runners inherit these streams, so their output lands in the log
        log_stream = open(log_file_path, "a")
        daemon_context = daemon.DaemonContext(
            working_directory=self.work_dir,
            umask=0o002,
            stdout=log_stream,
            stderr=log_stream,
        )

        with daemon_context:
            self._setup_daemon_logging(log_file_path)
            return self.run(demo=demo)

    def run(self, *, demo: bool = False) -> int:
        """Run in the foreground until a stop is requested.

        Returns the process exit code. Setup failures propagate as
        CoordinationError or WatchError.
        """
        self.lock = ProcessLock(self.config.coordination_dir(self.work_dir))
        if not self.lock.acquire():
            owner = self.lock.read_owner()
            logger.error(
                "Another orchestrator%s already owns %s",
                f" (PID {owner})" if owner else "",
                self.lock.lock_file.parent,
            )
            self.lock = None
            return 1

        self.orchestrator = TandemOrchestrator(self.config, self.work_dir)

        def signal_handler(signum: int, frame: object) -> None:
            logger.info("Received signal %s, stopping", signum)
            if self.orchestrator:
                self.orchestrator.request_stop()

        signal.signal(signal.SIGTERM, signal_handler)
        signal.signal(signal.SIGINT, signal_handler)

        try:
            self.orchestrator.start()

            if demo:
                self.demo_thread = threading.Thread(
                    target=run_demo,
                    args=(
                        self.orchestrator,
                        self.config.demo_initial_delay,
                        self.config.demo_step_delay,
                    ),
                    name="tandem-demo",
                    daemon=True,
                )
                self.demo_thread.start()
            else:
                marker = self.orchestrator.store.marker_path(Marker.TASK_READY)
                logger.info(f"📝 To start a task: echo start > {marker}")

            logger.info("👂 Watching for file changes... (press Ctrl+C to exit)")
            self.orchestrator.wait()
        finally:
            self.stop()

        return 0

    def stop(self) -> None:
        """Stop the orchestrator and release the directory lock."""
        if self.orchestrator:
            self.orchestrator.stop()
        if self.lock:
            self.lock.release()
            self.lock = None

    def _setup_daemon_logging(self, log_file_path: Path) -> None:
        """Set up logging for daemon mode."""
        root = logging.getLogger()
        root.setLevel(logging.INFO)

        # Console handlers would write into the redirected stdout as well
        for handler in root.handlers[:]:
            root.removeHandler(handler)

        file_handler = logging.FileHandler(log_file_path)
        file_handler.setLevel(logging.INFO)
        formatter = logging.Formatter(
            "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        )
        file_handler.setFormatter(formatter)
        root.addHandler(file_handler)
