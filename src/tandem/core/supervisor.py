"""Supervision of the single external stage process."""

import logging
import subprocess
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path

from ..coordination.markers import Stage
from ..error_handling import StageBusyError, StageLaunchError, check_stage_runner

logger = logging.getLogger(__name__)


@dataclass
class ManagedProcess:
    """The stage program currently running under supervision."""

    stage: Stage
    script_path: Path
    process: subprocess.Popen
    started_at: float = field(default_factory=time.time)
    terminated: bool = False

    @property
    def pid(self) -> int:
        return self.process.pid

    def __str__(self) -> str:
        return f"{self.script_path.name} (PID {self.pid})"


@dataclass(frozen=True)
class StageExit:
    """Exit report posted once per supervised process."""

    stage: Stage
    script_path: Path
    returncode: int | None
    error: str | None = None
    terminated: bool = False

    @property
    def succeeded(self) -> bool:
        return self.error is None and self.returncode == 0

    def describe(self) -> str:
        if self.error:
            return f"{self.script_path.name} failed: {self.error}"
        if self.returncode is not None and self.returncode < 0:
            return f"{self.script_path.name} killed by signal {-self.returncode}"
        return f"{self.script_path.name} exited with status {self.returncode}"


class ProcessSupervisor:
    """Launches stage programs and watches them until they exit.

    The process slot holds at most one ManagedProcess. Its lock is held only
    while checking and launching or while clearing, never for the lifetime
    of the child.
    """

    def __init__(
        self,
        work_dir: Path,
        on_exit: Callable[[StageExit], None],
    ):
        self.work_dir = work_dir
        self.on_exit = on_exit
        self._slot: ManagedProcess | None = None
        self._slot_lock = threading.Lock()

    @property
    def current(self) -> ManagedProcess | None:
        with self._slot_lock:
            return self._slot

    @property
    def is_busy(self) -> bool:
        return self.current is not None

    def start_stage(
        self,
        stage: Stage,
        script_path: Path,
        args: list[str],
    ) -> ManagedProcess:
        """Launch a stage program.

        Raises StageBusyError if a process is live, StageScriptError if the
        program is missing or not executable, and StageLaunchError if the
        operating system refuses to start it.
        """
        with self._slot_lock:
            if self._slot is not None:
                raise StageBusyError(str(self._slot))

            problem = check_stage_runner(script_path)
            if problem:
                raise problem

            cmd = [str(script_path), *args]
            logger.debug(f"Running {cmd} in {self.work_dir}")
            try:
                # stdout/stderr are inherited so the runner writes straight to ours
                process = subprocess.Popen(cmd, cwd=self.work_dir)
            except OSError as e:
                raise StageLaunchError(script_path, e) from e

            managed = ManagedProcess(stage, script_path, process)
            self._slot = managed

        watcher = threading.Thread(
            target=self._watch,
            args=(managed,),
            name=f"tandem-{stage.value}-watcher",
            daemon=True,
        )
        watcher.start()

        logger.info(f"Started {stage.label} runner {managed}")
        return managed

    def _watch(self, managed: ManagedProcess) -> None:
        returncode = None
        error = None
        try:
            returncode = managed.process.wait()
        except OSError as e:
            error = str(e)

        with self._slot_lock:
            if self._slot is managed:
                self._slot = None
            terminated = managed.terminated

        stage_exit = StageExit(
            stage=managed.stage,
            script_path=managed.script_path,
            returncode=returncode,
            error=error,
            terminated=terminated,
        )

        if terminated:
            logger.info(f"{managed} terminated")
        elif stage_exit.succeeded:
            logger.info(f"✅ Process {managed.script_path} completed successfully")
        else:
            logger.error(f"❌ Process {managed.script_path} failed: {stage_exit.describe()}")

        try:
            self.on_exit(stage_exit)
        except Exception:
            logger.exception("Error reporting exit of %s", managed)

    def stop(self) -> None:
        """Terminate any live stage process without waiting for it."""
        with self._slot_lock:
            managed, self._slot = self._slot, None
            if managed is None:
                return
            managed.terminated = True

        logger.info(f"Terminating {managed}")
        try:
            managed.process.terminate()
        except OSError as e:
            logger.warning(f"Failed to terminate {managed}: {e}")
