"""
Dispatcher: groups routed alerts and flushes each group on its own timer.
"""

import logging
import threading
from datetime import datetime, timedelta
from typing import Callable, Dict, FrozenSet, List, Optional, Set

from alert_router.alerts.alert_store import AlertStore
from alert_router.alerts.inhibit import Inhibitor
from alert_router.alerts.models import Alert, Notification
from alert_router.alerts.routes import Route
from alert_router.exporters.prometheus_exporter import RouterMetrics
from alert_router.utils.helpers import utcnow

logger = logging.getLogger(__name__)


def start_timer(delay: float, callback: Callable[[], None]) -> threading.Timer:
    """Default timer factory: a started daemon threading.Timer"""
    timer = threading.Timer(max(delay, 0.0), callback)
    timer.daemon = True
    timer.start()
    return timer


def group_key(route: Route, labels: Dict[str, str]) -> str:
    label_str = ','.join(f'{k}="{v}"' for k, v in sorted(labels.items()))
    return f"{route.id}:{{{label_str}}}"


class AggregationGroup:
    """
    Alerts of one route that share the same group_by labels.

    All state changes happen under the group's own lock, so a group is
    never flushed twice at once while other groups proceed independently.
    """

    def __init__(self, route: Route, labels: Dict[str, str], notify: Callable[[Notification], None],
                 inhibitor: Inhibitor, metrics: RouterMetrics, on_empty: Callable[['AggregationGroup'], None],
                 timer_factory: Callable = start_timer, clock: Callable[[], datetime] = utcnow):
        self.route = route
        self.labels = dict(labels)
        self.key = group_key(route, labels)
        self.alerts: Dict[str, Alert] = {}
        self.created_at = clock()
        self.last_notified_at: Optional[datetime] = None
        self.destroyed = False

        self._notify = notify
        self._inhibitor = inhibitor
        self._metrics = metrics
        self._on_empty = on_empty
        self._timer_factory = timer_factory
        self._clock = clock
        self._lock = threading.Lock()
        self._timer = None
        # firing set of the last notification sent
        self._notified_firing: FrozenSet[str] = frozenset()
        # sent as firing at some point and not yet sent as resolved
        self._pending_resolve: Set[str] = set()

    @property
    def receiver(self) -> str:
        return self.route.receiver

    def insert(self, alert: Alert) -> bool:
        """
        Add or update an alert in the group.

        The first alert starts the group_wait timer. Later alerts are
        buffered until the next scheduled flush.

        Returns:
            False if the group was already torn down and a new one is needed
        """
        with self._lock:
            if self.destroyed:
                return False

            current = self.alerts.get(alert.fingerprint)
            # concurrent receives for one fingerprint may arrive out of order
            if current is None or current.updated_at <= alert.updated_at:
                self.alerts[alert.fingerprint] = alert

            if self._timer is None:
                self._schedule(self.route.opts.group_wait)
            return True

    def _schedule(self, delay: float) -> None:
        if self._timer is not None:
            self._timer.cancel()
        self._timer = self._timer_factory(delay, self._run_flush)

    def _run_flush(self) -> None:
        try:
            self.flush()
        except Exception as e:
            logger.error(f"Error flushing aggregation group {self.key}: {e}", exc_info=True)

    def flush(self) -> Optional[Notification]:
        """
        Evaluate the group and send a notification when needed.

        A notification goes out when the set of notifiable firing alerts
        changed since the last one, when a previously notified alert
        resolved, or when repeat_interval elapsed. Resolved alerts are
        dropped afterwards; a group left empty is torn down.

        Returns:
            The notification handed to the notifier, if any
        """
        notification = None
        with self._lock:
            if self.destroyed:
                return None

            self._timer = None
            now = self._clock()
            opts = self.route.opts

            firing, resolved = [], []
            for alert in self.alerts.values():
                (resolved if alert.resolved(now) else firing).append(alert)

            active = []
            for alert in firing:
                source = self._inhibitor.inhibited_by(alert, now)
                if source is not None:
                    logger.debug(f"Alert {alert.fingerprint} in {self.key} inhibited by {source.fingerprint}")
                    self._metrics.alerts_suppressed.labels(receiver=self.receiver).inc()
                else:
                    active.append(alert)

            firing_fps = frozenset(a.fingerprint for a in active)
            notify_resolved = [a for a in resolved if a.fingerprint in self._pending_resolve]
            unnotified = len(resolved) - len(notify_resolved)
            if unnotified:
                self._metrics.alerts_resolved_unnotified.labels(receiver=self.receiver).inc(unnotified)

            changed = firing_fps != self._notified_firing or bool(notify_resolved)
            repeat_due = (
                bool(firing_fps)
                and self.last_notified_at is not None
                and now - self.last_notified_at >= timedelta(seconds=opts.repeat_interval)
            )

            if (active or notify_resolved) and (changed or repeat_due):
                notification = Notification(
                    receiver=self.receiver,
                    group_key=self.key,
                    group_labels=dict(self.labels),
                    alerts=sorted(active + notify_resolved, key=lambda a: a.starts_at),
                    created_at=now,
                )
                self.last_notified_at = now
                self._notified_firing = firing_fps
                self._pending_resolve |= firing_fps

            for alert in resolved:
                self._pending_resolve.discard(alert.fingerprint)
                # a newer firing instance may have replaced it meanwhile
                if self.alerts.get(alert.fingerprint) is alert:
                    del self.alerts[alert.fingerprint]

            if self.alerts:
                self._schedule(opts.group_interval)
            else:
                self.destroyed = True

        if notification is not None:
            logger.info(
                f"Flushing {self.key} to {self.receiver}: "
                f"{len(notification.firing())} firing, {len(notification.resolved())} resolved"
            )
            self._notify(notification)

        if self.destroyed:
            logger.debug(f"Aggregation group {self.key} is empty, removing it")
            self._on_empty(self)

        return notification

    def stop(self) -> None:
        """Cancel the pending flush"""
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None

    def to_dict(self) -> Dict:
        with self._lock:
            alerts = list(self.alerts.values())
            last = self.last_notified_at
        return {
            'key': self.key,
            'receiver': self.receiver,
            'route': self.route.id,
            'labels': dict(self.labels),
            'alerts': [a.to_dict(self._clock()) for a in alerts],
            'last_notified_at': last.isoformat() if last else None,
        }


class Dispatcher:
    """Routes alerts into aggregation groups"""

    def __init__(self, route: Route, notifier, inhibitor: Inhibitor, store: AlertStore,
                 metrics: Optional[RouterMetrics] = None, timer_factory: Callable = start_timer,
                 clock: Callable[[], datetime] = utcnow):
        """
        Initialize dispatcher.

        Args:
            route: Root of the routing tree
            notifier: Notifier receiving flushed notifications
            inhibitor: Inhibitor consulted at flush time
            store: Alert store holding the current alert of every fingerprint
            metrics: Router metrics
            timer_factory: Callable(delay, callback) returning a started,
                cancellable timer
            clock: Returns the current time
        """
        self.route = route
        self.notifier = notifier
        self.inhibitor = inhibitor
        self.store = store
        self.metrics = metrics or RouterMetrics()
        self._timer_factory = timer_factory
        self._clock = clock

        self._groups: Dict[str, AggregationGroup] = {}
        self._lock = threading.Lock()

        logger.info("Dispatcher initialized")

    def receive(self, alert: Alert) -> List[str]:
        """
        Ingest an alert: store it, route it, and add it to its groups.

        Returns:
            Keys of the aggregation groups the alert was added to
        """
        merged = self.store.put(alert)
        self.metrics.alerts_received.labels(status=merged.status(self._clock())).inc()

        keys = []
        for route in self.route.match(merged.labels):
            keys.append(self._insert(route, merged))
        return keys

    def _insert(self, route: Route, alert: Alert) -> str:
        labels = route.group_labels(alert.labels)
        key = group_key(route, labels)

        while True:
            with self._lock:
                group = self._groups.get(key)
                if group is None or group.destroyed:
                    group = AggregationGroup(
                        route, labels, self.notifier.notify, self.inhibitor, self.metrics,
                        self._remove_group, timer_factory=self._timer_factory, clock=self._clock,
                    )
                    self._groups[key] = group
                    logger.debug(f"Created aggregation group {key}")
                    self.metrics.aggregation_groups.set(len(self._groups))

            if group.insert(alert):
                return key

    def _remove_group(self, group: AggregationGroup) -> None:
        with self._lock:
            if self._groups.get(group.key) is group:
                del self._groups[group.key]
            self.metrics.aggregation_groups.set(len(self._groups))

    def get_group(self, key: str) -> Optional[AggregationGroup]:
        with self._lock:
            group = self._groups.get(key)
        if group is None or group.destroyed:
            return None
        return group

    def groups(self) -> List[Dict]:
        """Snapshot of all aggregation groups"""
        with self._lock:
            groups = list(self._groups.values())
        return [g.to_dict() for g in groups if not g.destroyed]

    def group_count(self) -> int:
        with self._lock:
            return sum(1 for g in self._groups.values() if not g.destroyed)

    def stop(self) -> None:
        """Cancel every pending flush"""
        with self._lock:
            groups = list(self._groups.values())
        for group in groups:
            group.stop()
        logger.info(f"Dispatcher stopped ({len(groups)} aggregation groups)")
