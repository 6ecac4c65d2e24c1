"""
Base notification channel interface.
"""

import logging
import re
from abc import ABC, abstractmethod
from typing import Dict

import requests

from alert_router.alerts.models import Notification
from alert_router.errors import DeliveryError

logger = logging.getLogger(__name__)

# HTTP statuses worth another attempt
RETRYABLE_STATUS_CODES = (408, 429, 500, 502, 503, 504)

_LABEL_TEMPLATE_RE = re.compile(r'\{\{\s*\$?labels\.([a-zA-Z_][a-zA-Z0-9_]*)\s*\}\}')


class BaseChannel(ABC):
    """Abstract base class for notification channels"""

    type = 'base'

    def __init__(self, config: Dict):
        self.send_resolved = config.get('send_resolved', True)

    @abstractmethod
    def send(self, notification: Notification) -> None:
        """
        Send a notification.

        Args:
            notification: Batch of alerts for one aggregation group

        Raises:
            DeliveryError: If the notification could not be delivered
        """
        pass

    def format_message(self, notification: Notification) -> Dict[str, str]:
        """
        Format a message from the group's common annotations.

        Returns:
            Dict with 'summary' and 'description' keys
        """
        annotations = notification.common_annotations
        labels = notification.common_labels
        alertname = notification.group_labels.get('alertname') or labels.get('alertname', '')

        title = f"[{notification.status.upper()}:{len(notification.firing())}] {alertname}".rstrip()

        summary = annotations.get('summary', title)
        summary = self._substitute_template(summary, labels)

        if 'description' in annotations:
            description = self._substitute_template(annotations['description'], labels)
        else:
            lines = []
            for alert in notification.alerts:
                text = alert.annotations.get('description') or alert.annotations.get('summary', '')
                text = self._substitute_template(text, alert.labels)
                label_text = ', '.join(f"{k}={v}" for k, v in sorted(alert.labels.items()))
                lines.append(f"{text} ({label_text})" if text else label_text)
            description = '\n'.join(lines)

        return {
            'title': title,
            'summary': summary,
            'description': description,
        }

    def _substitute_template(self, template: str, labels: Dict[str, str]) -> str:
        """
        Substitute label references.

        Supports {{ $labels.key }} and {{ labels.key }}. Labels missing from
        the set render as an empty string.
        """
        try:
            return _LABEL_TEMPLATE_RE.sub(lambda m: str(labels.get(m.group(1), '')), template)
        except Exception as e:
            logger.error(f"Error substituting template: {e}")
            return template

    def _post(self, url: str, payload: Dict, headers: Dict[str, str], timeout: float,
              method: str = 'POST') -> requests.Response:
        """Send a JSON request, mapping failures to DeliveryError"""
        try:
            response = requests.request(method, url, json=payload, headers=headers, timeout=timeout)
        except requests.exceptions.RequestException as e:
            raise DeliveryError(f"{self.type} request to {url} failed: {e}")

        if response.status_code >= 400:
            raise DeliveryError(
                f"{self.type} request to {url} returned HTTP {response.status_code}",
                retryable=response.status_code in RETRYABLE_STATUS_CODES,
            )
        return response
