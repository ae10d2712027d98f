"""
Notification system for certificate configure/renew events.

Posts a message card to a Microsoft Teams incoming webhook for every app
that was configured, renewed or failed.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Dict, List, Optional

import requests

from .logger import get_logger

if TYPE_CHECKING:
    from .config_loader import NotificationsConfig, TeamsNotificationConfig


@dataclass
class NotificationContext:
    """Context data for a notification."""
    app_id: str
    action: str
    status: str  # "SUCCESS" or "FAILED"
    pem_path: Optional[str] = None
    failure_reason: Optional[str] = None


class NotificationSender(ABC):
    """Abstract base class for notification senders."""

    @abstractmethod
    def send(self, context: NotificationContext) -> bool:
        """
        Send a notification.

        Returns:
            True if notification was sent successfully, False otherwise
        """
        pass


class TeamsWebhookNotifier(NotificationSender):
    """Send notifications to Microsoft Teams via incoming webhook."""

    def __init__(self, config: "TeamsNotificationConfig"):
        self.config = config
        self.logger = get_logger()

    def build_payload(self, context: NotificationContext) -> Dict[str, Any]:
        succeeded = context.status == "SUCCESS"
        facts = [
            {"name": "App", "value": context.app_id},
            {"name": "Action", "value": context.action},
            {"name": "Status", "value": context.status},
        ]
        if context.pem_path:
            facts.append({"name": "Certificate", "value": context.pem_path})
        if context.failure_reason:
            facts.append({"name": "Failure Reason", "value": context.failure_reason})

        title = f"{'✅' if succeeded else '❌'} Push Certificate {context.status}"
        return {
            "@type": "MessageCard",
            "@context": "http://schema.org/extensions",
            "themeColor": "28a745" if succeeded else "dc3545",
            "summary": f"Push certificate {context.status} for {context.app_id}",
            "sections": [
                {
                    "activityTitle": title,
                    "facts": facts,
                    "markdown": True,
                }
            ],
        }

    def send(self, context: NotificationContext) -> bool:
        """Send notification to Teams via webhook."""
        webhook_url = self.config.webhook_url
        if not webhook_url:
            self.logger.warning("Teams webhook URL not set, skipping Teams notification")
            return False

        try:
            response = requests.post(
                webhook_url,
                json=self.build_payload(context),
                headers={"Content-Type": "application/json"},
                timeout=30,
            )

            if response.status_code == 200:
                self.logger.info(f"Teams notification sent for {context.app_id}")
                return True

            self.logger.error(f"Teams webhook error: {response.status_code} - {response.text}")
            return False

        except requests.RequestException as e:
            self.logger.error(f"Failed to send Teams notification: {e}")
            return False


class NotificationManager:
    """
    Sends notifications through every enabled channel.

    Notification failures are logged and never interrupt the run.
    """

    def __init__(self, config: "NotificationsConfig"):
        self.config = config
        self.logger = get_logger()
        self.notifiers: List[NotificationSender] = []

        if config.teams.enabled:
            self.notifiers.append(TeamsWebhookNotifier(config.teams))
            self.logger.info("Teams notifications enabled")

    def notify(self, context: NotificationContext) -> None:
        if not self.notifiers:
            return

        self.logger.debug(f"Sending notifications for {context.app_id} ({context.status})")

        for notifier in self.notifiers:
            try:
                notifier.send(context)
            except Exception as e:
                self.logger.error(f"Notification failed ({type(notifier).__name__}): {e}")

    def is_enabled(self) -> bool:
        return len(self.notifiers) > 0
