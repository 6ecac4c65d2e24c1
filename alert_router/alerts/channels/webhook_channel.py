"""
Generic webhook notification channel.
"""

import logging
from typing import Dict

from alert_router.alerts.channels.base_channel import BaseChannel
from alert_router.alerts.models import Notification
from alert_router.errors import ConfigError

logger = logging.getLogger(__name__)


class WebhookChannel(BaseChannel):
    """Posts the webhook v4 JSON payload to an HTTP endpoint"""

    type = 'webhook'

    def __init__(self, config: Dict, external_url: str = ''):
        """
        Initialize webhook channel.

        Args:
            config: Webhook configuration dict with url, method, headers,
                timeout, max_alerts, send_resolved
            external_url: URL of this router, included in payloads
        """
        super().__init__(config)

        if not config.get('url'):
            raise ConfigError("webhook_configs entry requires a url")

        self.url = config['url']
        self.method = config.get('method', 'POST').upper()
        self.headers = dict(config.get('headers') or {})
        self.timeout = config.get('timeout', 10)
        self.max_alerts = int(config.get('max_alerts', 0))
        self.external_url = external_url

        if self.method not in ('POST', 'PUT'):
            raise ConfigError(f"Unsupported HTTP method for webhook: {self.method}")
        if self.max_alerts < 0:
            raise ConfigError(f"max_alerts must be >= 0, got {self.max_alerts}")

        # Ensure Content-Type is set
        if 'Content-Type' not in self.headers:
            self.headers['Content-Type'] = 'application/json'

        logger.info(f"Webhook channel initialized (url: {self.url}, method: {self.method})")

    def send(self, notification: Notification) -> None:
        payload = self._create_webhook_payload(notification)
        self._post(self.url, payload, self.headers, self.timeout, method=self.method)
        logger.info(f"Webhook notification sent for group {notification.group_key} to {self.url}")

    def _create_webhook_payload(self, notification: Notification) -> Dict:
        """
        Create webhook payload, truncated to max_alerts when configured.

        Status and common labels always describe the whole group; only the
        alerts list is cut.
        """
        truncated = 0
        if self.max_alerts and len(notification.alerts) > self.max_alerts:
            truncated = len(notification.alerts) - self.max_alerts
        payload = notification.to_dict(self.external_url, truncated=truncated)
        if truncated:
            payload['alerts'] = payload['alerts'][:self.max_alerts]
        return payload
