"""Prometheus metrics for the router and their HTTP exporter"""

from prometheus_client import start_http_server, Counter, Gauge, Histogram
from prometheus_client.core import CollectorRegistry

from alert_router.utils.logger import get_logger


class RouterMetrics:
    """
    Router self-monitoring metrics.

    Every inbound alert ends up in at least one of: received/invalid
    counters, the suppressed counter, a notification counter, or the
    pending gauge of an aggregation group.
    """

    def __init__(self, registry: CollectorRegistry = None):
        self.registry = registry or CollectorRegistry()

        self.router_info = Gauge(
            'alertrouter_info',
            'Router information',
            ['version', 'hostname'],
            registry=self.registry
        )

        self.alerts_received = Counter(
            'alertrouter_alerts_received_total',
            'Total number of accepted alert events',
            ['status'],
            registry=self.registry
        )

        self.alerts_invalid = Counter(
            'alertrouter_alerts_invalid_total',
            'Total number of rejected malformed alert events',
            registry=self.registry
        )

        self.alerts_suppressed = Counter(
            'alertrouter_alerts_suppressed_total',
            'Alerts left out of a notification because they were inhibited',
            ['receiver'],
            registry=self.registry
        )

        self.alerts_resolved_unnotified = Counter(
            'alertrouter_alerts_resolved_unnotified_total',
            'Alerts that resolved before any notification about them was sent',
            ['receiver'],
            registry=self.registry
        )

        self.alerts = Gauge(
            'alertrouter_alerts',
            'Current number of alerts by state',
            ['state'],
            registry=self.registry
        )

        self.aggregation_groups = Gauge(
            'alertrouter_aggregation_groups',
            'Current number of aggregation groups',
            registry=self.registry
        )

        self.pending_alerts = Gauge(
            'alertrouter_pending_alerts',
            'Alerts buffered in aggregation groups awaiting their next flush',
            registry=self.registry
        )

        self.notifications_sent = Counter(
            'alertrouter_notifications_total',
            'Total number of delivered notifications',
            ['receiver', 'integration'],
            registry=self.registry
        )

        self.notifications_failed = Counter(
            'alertrouter_notifications_failed_total',
            'Total number of notifications that exhausted their retries',
            ['receiver', 'integration'],
            registry=self.registry
        )

        self.notification_attempts = Counter(
            'alertrouter_notification_requests_total',
            'Total number of notification delivery attempts',
            ['receiver', 'integration'],
            registry=self.registry
        )

        self.notification_latency = Histogram(
            'alertrouter_notification_latency_seconds',
            'Time spent delivering a notification, retries included',
            ['receiver', 'integration'],
            buckets=(0.05, 0.1, 0.25, 0.5, 1, 2.5, 5, 10, 30, 60),
            registry=self.registry
        )


class PrometheusExporter:
    """Prometheus HTTP server for exposing router metrics"""

    def __init__(self, config, metrics: RouterMetrics):
        """
        Initialize Prometheus exporter

        Args:
            config: Configuration dictionary
            metrics: Router metrics to expose
        """
        self.config = config
        self.metrics = metrics
        self.registry = metrics.registry
        self.logger = get_logger(self.__class__.__name__)

        self.host = config.get('prometheus', {}).get('host', '0.0.0.0')
        self.port = config.get('prometheus', {}).get('port', 9094)
        self.server = None
        self.running = False

    def start(self):
        """Start HTTP server"""
        try:
            self.logger.info(f"Starting Prometheus HTTP server on {self.host}:{self.port}")
            result = start_http_server(self.port, addr=self.host, registry=self.registry)
            # prometheus_client >= 0.17 returns (server, thread)
            if isinstance(result, tuple):
                self.server = result[0]
            self.running = True
            self.logger.info(f"Metrics available at http://{self.host}:{self.port}/metrics")
        except Exception as e:
            self.logger.error(f"Failed to start Prometheus HTTP server: {e}")
            raise

    def stop(self):
        """Stop HTTP server"""
        if self.server is not None:
            self.server.shutdown()
            self.server = None
        self.running = False
        self.logger.info("Prometheus HTTP server stopped")

    def update_router_metrics(self, store, dispatcher):
        """
        Refresh gauges from the alert store and dispatcher

        Args:
            store: AlertStore with the current alerts
            dispatcher: Dispatcher owning the aggregation groups
        """
        for state, count in store.counts().items():
            self.metrics.alerts.labels(state=state).set(count)

        groups = dispatcher.groups()
        self.metrics.aggregation_groups.set(len(groups))
        self.metrics.pending_alerts.set(sum(len(g['alerts']) for g in groups))
