"""Self-contained demonstration of a full workflow cycle."""

import logging
from typing import TYPE_CHECKING

from ..coordination.markers import Marker
from ..error_handling import CoordinationError

if TYPE_CHECKING:
    from .orchestrator import TandemOrchestrator

logger = logging.getLogger(__name__)

DEMO_SEQUENCE = (
    (Marker.TASK_READY, "📝 Triggering new task..."),
    (Marker.DEV_COMPLETE, "✅ Simulating dev completion..."),
    (Marker.REVIEW_COMPLETE, "✅ Simulating review completion..."),
)


def run_demo(
    orchestrator: "TandemOrchestrator",
    initial_delay: float = 1.0,
    step_delay: float = 3.0,
) -> int:
    """Touch the three markers in order. Returns how many were written.

    Stops early when the orchestrator is asked to stop.
    """
    logger.info("🎮 Starting demo workflow...")

    for index, (marker, message) in enumerate(DEMO_SEQUENCE):
        delay = initial_delay if index == 0 else step_delay
        if orchestrator.wait(delay):
            logger.info("Demo interrupted")
            return index

        logger.info(message)
        try:
            orchestrator.trigger(marker)
        except CoordinationError as e:
            logger.error(f"Demo could not write {marker.filename}: {e}")
            return index

    return len(DEMO_SEQUENCE)
