"""ntfy.sh notification integration."""

import logging

import httpx

from tandem import __version__
from tandem.config import TandemConfig

logger = logging.getLogger(__name__)


class NtfyNotifier:
    """Sends notifications via ntfy.sh service."""

    def __init__(self, config: TandemConfig):
        self.config = config
        self.topic_url = config.ntfy_topic
        self.client = httpx.Client(
            timeout=config.ntfy_request_timeout,
            headers={"User-Agent": f"Tandem/{__version__}"},
        )

    def send_notification(
        self,
        message: str,
        title: str | None = None,
        priority: str = "default",
        tags: str | None = None,
    ) -> bool:
        """Send a notification via ntfy."""
        if not self.topic_url:
            logger.debug("No ntfy topic configured, skipping notification")
            return False

        try:
            headers = {}

            if title:
                # Header values must be latin-1; drop what doesn't fit
                try:
                    headers["Title"] = title.encode("latin1").decode("latin1")
                except UnicodeEncodeError:
                    headers["Title"] = title.encode("ascii", errors="ignore").decode("ascii").strip()

            if priority != "default":
                headers["Priority"] = priority

            if tags:
                headers["Tags"] = tags

            response = self.client.post(
                self.topic_url,
                content=message.encode("utf-8"),
                headers=headers,
            )

            response.raise_for_status()
            logger.debug(f"Sent notification: {title or message[:50]}")
            return True

        except httpx.RequestError as e:
            logger.warning(f"Failed to send notification: {e}")
            return False
        except httpx.HTTPStatusError as e:
            logger.warning(
                f"Notification service error {e.response.status_code}: {e.response.text}",
            )
            return False

    def close(self) -> None:
        self.client.close()
