"""Coordination directory and trigger marker files."""

import logging
from datetime import datetime
from pathlib import Path

from ..error_handling import CoordinationError
from .markers import Marker

logger = logging.getLogger(__name__)


class CoordinationStore:
    """Owns the coordination directory and the three trigger markers."""

    def __init__(self, coordination_dir: Path):
        self.directory = coordination_dir

    def ensure_directory(self) -> None:
        """Create the coordination directory if it doesn't exist."""
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise CoordinationError(
                f"Failed to create coordination directory {self.directory}",
                path=self.directory,
                original_error=e,
            ) from e

    def ensure_markers(self) -> list[Marker]:
        """Create missing markers with empty content.

        Existing markers keep their content, so a previous trigger timestamp
        survives a restart without re-firing the edge.
        """
        created = []
        for marker in Marker:
            path = self.marker_path(marker)
            if path.exists():
                continue
            try:
                path.write_text("")
            except OSError as e:
                logger.warning(f"Failed to create {marker.filename}: {e}")
                continue
            created.append(marker)

        if created:
            logger.debug(
                "Created markers: %s",
                ", ".join(marker.filename for marker in created),
            )
        return created

    def touch(self, marker: Marker) -> Path:
        """Overwrite a marker with a fresh timestamp to signal its edge."""
        path = self.marker_path(marker)
        timestamp = datetime.now().astimezone().isoformat(timespec="seconds")
        try:
            path.write_text(f"triggered at {timestamp}\n")
        except OSError as e:
            raise CoordinationError(
                f"Failed to touch {path}",
                path=path,
                original_error=e,
            ) from e
        logger.debug(f"Touched {marker.filename}")
        return path

    def marker_path(self, marker: Marker) -> Path:
        return self.directory / marker.filename

    def read(self, marker: Marker) -> str:
        """Return marker content, or an empty string if it is missing."""
        try:
            return self.marker_path(marker).read_text()
        except FileNotFoundError:
            return ""

    def snapshot(self) -> dict[Marker, dict]:
        """Content and modification time of every marker."""
        result = {}
        for marker in Marker:
            path = self.marker_path(marker)
            try:
                modified = datetime.fromtimestamp(path.stat().st_mtime)
            except FileNotFoundError:
                result[marker] = {"exists": False, "content": "", "modified": None}
                continue
            result[marker] = {
                "exists": True,
                "content": self.read(marker).strip(),
                "modified": modified,
            }
        return result
