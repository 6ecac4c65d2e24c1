"""
Slack notification channel using incoming webhooks.
"""

import logging
from datetime import datetime
from typing import Dict

from alert_router.alerts.channels.base_channel import BaseChannel
from alert_router.alerts.models import AlertState, Notification
from alert_router.errors import ConfigError

logger = logging.getLogger(__name__)


class SlackChannel(BaseChannel):
    """Slack notification channel via webhooks"""

    type = 'slack'

    def __init__(self, config: Dict, external_url: str = ''):
        """
        Initialize Slack channel.

        Args:
            config: Slack configuration dict with api_url (or webhook_url)
            external_url: URL of this router, linked from messages
        """
        super().__init__(config)

        self.webhook_url = config.get('api_url') or config.get('webhook_url')
        if not self.webhook_url:
            raise ConfigError("slack_configs entry requires an api_url")

        self.channel = config.get('channel', '#alerts')
        self.username = config.get('username', 'Alert Router')
        self.icon_emoji = config.get('icon_emoji', ':rotating_light:')
        self.timeout = config.get('timeout', 10)
        self.external_url = external_url
        # Slack defaults to firing-only notifications
        self.send_resolved = config.get('send_resolved', False)

        logger.info(f"Slack channel initialized (channel: {self.channel})")

    def send(self, notification: Notification) -> None:
        message_content = self.format_message(notification)
        payload = self._create_slack_payload(notification, message_content)
        self._post(self.webhook_url, payload, {'Content-Type': 'application/json'}, self.timeout)
        logger.info(f"Slack notification sent for group {notification.group_key}")

    def _create_slack_payload(self, notification: Notification,
                              message_content: Dict[str, str]) -> Dict:
        """Create Slack webhook payload"""
        severity_colors = {
            'info': '#0066cc',
            'warning': '#ff9900',
            'critical': '#cc0000',
        }
        severity = notification.common_labels.get('severity', '')
        if notification.status == AlertState.RESOLVED:
            color = '#2eb886'
        else:
            color = severity_colors.get(severity, '#666666')

        # Format group labels for display
        labels_text = ""
        if notification.group_labels:
            labels_text = "\n" + "\n".join(
                f"• *{k}:* {v}" for k, v in sorted(notification.group_labels.items())
            )

        fields = [
            {
                "title": "Status",
                "value": notification.status.upper(),
                "short": True
            },
            {
                "title": "Firing",
                "value": str(len(notification.firing())),
                "short": True
            },
            {
                "title": "Resolved",
                "value": str(len(notification.resolved())),
                "short": True
            },
        ]
        if severity:
            fields.append({
                "title": "Severity",
                "value": severity.upper(),
                "short": True
            })

        attachment = {
            "color": color,
            "title": message_content['title'],
            "text": message_content['summary'] + "\n" + message_content['description'] + labels_text,
            "fields": fields,
            "footer": "Alert Router",
            "ts": int(datetime.now().timestamp()),
        }
        if self.external_url:
            attachment["title_link"] = self.external_url

        # Add @channel mention for critical alerts
        text = ""
        if severity == 'critical' and notification.status == AlertState.FIRING:
            text = "<!channel> Critical Alert"

        return {
            "channel": self.channel,
            "username": self.username,
            "icon_emoji": self.icon_emoji,
            "text": text,
            "attachments": [attachment]
        }
