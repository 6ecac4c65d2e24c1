"""
Receivers and asynchronous notification delivery with retries.
"""

import logging
import time
from concurrent.futures import Executor, Future
from typing import Dict, List, Optional

from tenacity import Retrying, retry_if_exception, stop_after_attempt, wait_exponential

from alert_router.alerts.channels.base_channel import BaseChannel
from alert_router.alerts.channels.slack_channel import SlackChannel
from alert_router.alerts.channels.webhook_channel import WebhookChannel
from alert_router.alerts.models import Notification
from alert_router.alerts.storage.base_storage import NotificationRecord
from alert_router.errors import ConfigError, DeliveryError
from alert_router.exporters.prometheus_exporter import RouterMetrics

logger = logging.getLogger(__name__)

CHANNEL_TYPES = {
    'webhook_configs': WebhookChannel,
    'slack_configs': SlackChannel,
}


class Receiver:
    """Named notification destination with zero or more integrations"""

    def __init__(self, name: str, integrations: Optional[List[BaseChannel]] = None):
        self.name = name
        self.integrations = list(integrations or [])

    def to_dict(self) -> Dict:
        return {
            'name': self.name,
            'integrations': [channel.type for channel in self.integrations],
        }

    @classmethod
    def from_config(cls, config: Dict, external_url: str = '') -> 'Receiver':
        """
        Build a receiver from a 'receivers' entry.

        Raises:
            ConfigError: If the entry or one of its integrations is invalid
        """
        if not isinstance(config, dict) or not config.get('name'):
            raise ConfigError("Every receiver must be a mapping with a name")

        name = config['name']
        integrations = []
        for key, value in config.items():
            if key == 'name':
                continue
            channel_class = CHANNEL_TYPES.get(key)
            if channel_class is None:
                raise ConfigError(f"Receiver {name}: unsupported integration {key!r}")
            if not isinstance(value, list):
                raise ConfigError(f"Receiver {name}: {key} must be a list")
            for channel_config in value:
                if not isinstance(channel_config, dict):
                    raise ConfigError(f"Receiver {name}: {key} entries must be mappings")
                integrations.append(channel_class(channel_config, external_url=external_url))

        if not integrations:
            logger.info(f"Receiver {name} has no integrations, its notifications are only logged")

        return cls(name, integrations)


def build_receivers(configs: List[Dict], external_url: str = '') -> Dict[str, Receiver]:
    """
    Build all receivers, keyed by name.

    Raises:
        ConfigError: On invalid or duplicated receivers
    """
    if not isinstance(configs, list):
        raise ConfigError("receivers must be a list")

    receivers = {}
    for config in configs:
        receiver = Receiver.from_config(config, external_url)
        if receiver.name in receivers:
            raise ConfigError(f"Receiver {receiver.name!r} is defined more than once")
        receivers[receiver.name] = receiver
    return receivers


class Notifier:
    """
    Delivers notifications to receivers.

    Delivery runs on the executor when one is given so that callers never
    wait on the network; without an executor it runs inline. Outcomes are
    recorded in metrics and the notification log only, never fed back into
    grouping state.
    """

    def __init__(self, receivers: Dict[str, Receiver], metrics: Optional[RouterMetrics] = None,
                 storage=None, executor: Optional[Executor] = None, max_attempts: int = 3,
                 backoff_multiplier: float = 1.0, backoff_max: float = 30.0):
        """
        Initialize notifier.

        Args:
            receivers: Receivers keyed by name
            metrics: Metrics to record delivery outcomes in
            storage: Optional storage backend for the notification log
            executor: Worker pool for asynchronous delivery
            max_attempts: Attempts per integration before giving up
            backoff_multiplier: Base of the exponential backoff in seconds
            backoff_max: Upper bound of a single backoff wait in seconds
        """
        if max_attempts < 1:
            raise ValueError(f"max_attempts must be >= 1, got {max_attempts}")

        self.receivers = receivers
        self.metrics = metrics or RouterMetrics()
        self.storage = storage
        self.executor = executor
        self.max_attempts = max_attempts
        self.backoff_multiplier = backoff_multiplier
        self.backoff_max = backoff_max

    def notify(self, notification: Notification) -> Optional[Future]:
        """Schedule delivery of a notification"""
        if self.executor is None:
            self._deliver_safely(notification)
            return None
        return self.executor.submit(self._deliver_safely, notification)

    def _deliver_safely(self, notification: Notification) -> bool:
        try:
            return self.deliver(notification)
        except Exception as e:
            logger.error(f"Unexpected error delivering notification for {notification.group_key}: {e}",
                         exc_info=True)
            return False

    def deliver(self, notification: Notification) -> bool:
        """
        Deliver a notification to every integration of its receiver.

        Returns:
            True if every integration accepted the notification
        """
        receiver = self.receivers.get(notification.receiver)
        if receiver is None:
            logger.error(f"Receiver {notification.receiver} not available")
            self.metrics.notifications_failed.labels(
                receiver=notification.receiver, integration='none').inc()
            self._record(notification, 'none', False, 0, f"unknown receiver {notification.receiver}")
            return False

        if not receiver.integrations:
            logger.info(
                f"Notification for {notification.group_key} to {receiver.name}: "
                f"{len(notification.firing())} firing, {len(notification.resolved())} resolved "
                f"(receiver has no integrations)"
            )
            self.metrics.notifications_sent.labels(receiver=receiver.name, integration='none').inc()
            self._record(notification, 'none', True, 0, None)
            return True

        success = True
        for channel in receiver.integrations:
            outgoing = notification
            if not channel.send_resolved:
                firing = notification.firing()
                if not firing:
                    logger.debug(f"Skipping resolved-only notification for {channel.type} on {receiver.name}")
                    continue
                outgoing = notification.with_alerts(firing)

            success = self._deliver_to(receiver, channel, outgoing) and success
        return success

    def _deliver_to(self, receiver: Receiver, channel: BaseChannel,
                    notification: Notification) -> bool:
        attempts = 0
        started = time.monotonic()
        retrying = Retrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=wait_exponential(multiplier=self.backoff_multiplier, max=self.backoff_max),
            retry=retry_if_exception(lambda e: isinstance(e, DeliveryError) and e.retryable),
            before_sleep=self._log_retry,
            reraise=True,
        )

        try:
            for attempt in retrying:
                with attempt:
                    attempts += 1
                    channel.send(notification)
        except DeliveryError as e:
            logger.error(
                f"Failed to send notification via {channel.type} for {receiver.name} "
                f"after {attempts} attempt(s): {e}"
            )
            self.metrics.notifications_failed.labels(receiver=receiver.name, integration=channel.type).inc()
            self._record(notification, channel.type, False, attempts, str(e))
            return False
        finally:
            self.metrics.notification_latency.labels(
                receiver=receiver.name, integration=channel.type).observe(time.monotonic() - started)
            self.metrics.notification_attempts.labels(
                receiver=receiver.name, integration=channel.type).inc(attempts)

        self.metrics.notifications_sent.labels(receiver=receiver.name, integration=channel.type).inc()
        self._record(notification, channel.type, True, attempts, None)
        return True

    def _log_retry(self, retry_state) -> None:
        error = retry_state.outcome.exception()
        logger.warning(
            f"Notification attempt {retry_state.attempt_number} failed: {error}; "
            f"retrying in {retry_state.next_action.sleep:.1f}s"
        )

    def _record(self, notification: Notification, integration: str, success: bool,
                attempts: int, error: Optional[str]) -> None:
        if self.storage is None:
            return
        record = NotificationRecord(
            group_key=notification.group_key,
            receiver=notification.receiver,
            integration=integration,
            status=notification.status,
            firing=[a.fingerprint for a in notification.firing()],
            resolved=[a.fingerprint for a in notification.resolved()],
            sent_at=notification.created_at,
            success=success,
            attempts=attempts,
            error=error,
        )
        try:
            self.storage.record_notification(record)
        except Exception as e:
            logger.error(f"Failed to record notification for {notification.group_key}: {e}")

    def shutdown(self, wait: bool = True) -> None:
        if self.executor is not None:
            self.executor.shutdown(wait=wait)
