"""Workflow notifications via ntfy.sh."""

import logging

from tandem.config import TandemConfig
from tandem.coordination.markers import Stage
from tandem.notify.ntfy import NtfyNotifier

logger = logging.getLogger(__name__)


class NotificationService:
    """Workflow-level notifications. Failures are logged, never raised."""

    def __init__(self, config: TandemConfig):
        self.config = config
        self.notifier = NtfyNotifier(config)

    def notify_stage_started(self, stage: Stage) -> None:
        """Send notification when a stage runner starts."""
        try:
            self.notifier.send_notification(
                f"🔨 {stage.label} stage started",
                title=f"Tandem - {stage.label} Started",
                tags=f"tandem,{stage.value},started",
            )
        except Exception as e:
            logger.warning(f"Failed to send stage start notification: {e}")

    def notify_stage_failed(self, stage: Stage, reason: str) -> None:
        """Send notification when a stage fails and the workflow halts."""
        try:
            self.notifier.send_notification(
                f"❌ {stage.label} stage failed: {reason}\n"
                "The workflow is halted until Tandem is restarted.",
                title=f"Tandem - {stage.label} Failed",
                priority="high",
                tags=f"tandem,{stage.value},error",
            )
        except Exception as e:
            logger.warning(f"Failed to send stage failure notification: {e}")

    def notify_cycle_complete(self) -> None:
        """Send notification when review completes and the workflow is idle."""
        try:
            self.notifier.send_notification(
                "✅ Review complete, ready for the next task",
                title="Tandem - Cycle Complete",
                tags="tandem,cycle,completed",
            )
        except Exception as e:
            logger.warning(f"Failed to send cycle notification: {e}")

    def notify_error(self, error_message: str, context: str | None = None) -> None:
        """Send error notification."""
        try:
            if context:
                message = f"❌ Error with {context}: {error_message}"
            else:
                message = f"❌ Error: {error_message}"

            self.notifier.send_notification(
                message,
                title="Tandem - Error",
                priority="high",
                tags="tandem,error",
            )
        except Exception as e:
            logger.warning(f"Failed to send error notification: {e}")

    def close(self) -> None:
        self.notifier.close()

    def test_notifications(self) -> bool:
        """Test notification system."""
        try:
            return self.notifier.send_notification(
                "🧪 Notification system test",
                title="Tandem - Test",
                priority="low",
                tags="tandem,test",
            )
        except Exception as e:
            logger.exception(f"Notification test failed: {e}")
            return False
