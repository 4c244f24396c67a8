"""Marker change detection using watchdog."""

import logging
import os
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Any

from watchdog.events import FileSystemEventHandler
from watchdog.observers import Observer

from ..error_handling import WatchError
from .markers import Marker

if TYPE_CHECKING:
    from watchdog.observers.api import BaseObserver

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MarkerEvent:
    """A write to a file in the coordination directory."""

    filename: str
    kind: str = "modified"

    @property
    def marker(self) -> Marker | None:
        return Marker.from_filename(self.filename)

    def __str__(self) -> str:
        return f"{self.filename} ({self.kind})"


class MarkerWatcher:
    """Watches the coordination directory for marker writes."""

    def __init__(
        self,
        directory: Path,
        callback: Callable[[MarkerEvent], None],
    ):
        self.directory = directory
        self.callback = callback
        self.observer: BaseObserver | None = None
        self.is_watching = False

    def start(self) -> None:
        """Start delivering write events to the callback."""
        if self.is_watching:
            logger.warning("Already watching %s", self.directory)
            return

        if not self.directory.is_dir():
            msg = f"Coordination directory {self.directory} does not exist"
            raise WatchError(msg)

        logger.info(f"Watching {self.directory}")

        event_handler = MarkerEventHandler(self.callback)
        try:
            observer = Observer()
            observer.schedule(event_handler, str(self.directory), recursive=False)
            observer.start()
        except Exception as e:
            msg = f"Failed to watch {self.directory}: {e}"
            raise WatchError(msg, original_error=e) from e

        self.observer = observer
        self.is_watching = True

    def stop(self) -> None:
        """Stop watching; no events are delivered afterwards."""
        if self.observer:
            self.observer.unschedule_all()
            self.observer.stop()
            self.observer.join()
            self.observer = None
            self.is_watching = False
            logger.info("Stopped watching %s", self.directory)


class MarkerEventHandler(FileSystemEventHandler):
    """Forwards file modifications in the coordination directory."""

    def __init__(self, callback: Callable[[MarkerEvent], None]):
        self.callback = callback

    def on_modified(self, event: Any) -> None:
        """Handle file system modification events."""
        if event.is_directory:
            return

        filename = os.path.basename(os.fsdecode(event.src_path))
        try:
            self.callback(MarkerEvent(filename, event.event_type))
        except Exception:
            # The observer thread must survive handler failures
            logger.exception("Error handling change to %s", filename)
