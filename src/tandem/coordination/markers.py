"""Trigger markers and workflow stages."""

from enum import Enum


class Stage(Enum):
    """Externally executed workflow stages."""

    DEV = "dev"
    REVIEW = "review"

    @property
    def label(self) -> str:
        return "Developer" if self is Stage.DEV else "Review"


class Marker(Enum):
    """Trigger files whose writes advance the workflow."""

    TASK_READY = "task-ready.trigger"
    DEV_COMPLETE = "dev-complete.trigger"
    REVIEW_COMPLETE = "review-complete.trigger"

    @property
    def filename(self) -> str:
        return self.value

    @property
    def short_name(self) -> str:
        """Name without the extension, as typed on the command line."""
        return self.value.removesuffix(".trigger")

    @classmethod
    def from_filename(cls, filename: str) -> "Marker | None":
        """Resolve a basename to a marker, or None for unrelated files."""
        for marker in cls:
            if marker.value == filename:
                return marker
        return None

    @classmethod
    def from_short_name(cls, name: str) -> "Marker":
        for marker in cls:
            if name in (marker.short_name, marker.value):
                return marker
        msg = f"Unknown marker: {name}"
        raise ValueError(msg)
