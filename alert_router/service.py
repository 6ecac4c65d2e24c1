"""Main router service orchestration"""

import time
import signal
import threading
from concurrent.futures import ThreadPoolExecutor
from typing import Dict, Any, Optional

import uvicorn

from alert_router import __version__
from alert_router.alerts.alert_store import AlertStore
from alert_router.alerts.dispatcher import Dispatcher
from alert_router.alerts.inhibit import Inhibitor
from alert_router.alerts.notifier import Notifier
from alert_router.api.server import create_app
from alert_router.config.routing import RoutingConfig, load_routing_config
from alert_router.exporters.prometheus_exporter import PrometheusExporter, RouterMetrics
from alert_router.utils.helpers import get_hostname, utcnow
from alert_router.utils.logger import get_logger


class AlertRouterService:
    """Wires the alert store, dispatcher, notifier and push API together"""

    def __init__(self, config: Dict[str, Any], routing: Optional[RoutingConfig] = None):
        """
        Initialize service

        Args:
            config: Configuration dictionary
            routing: Pre-parsed routing configuration; loaded from
                router.routing_file when omitted

        Raises:
            ConfigError: If the routing configuration is invalid
        """
        self.config = config
        self.logger = get_logger(self.__class__.__name__)
        self.running = False
        self.maintenance_thread = None
        self.api_server = None
        self.api_thread = None
        self._stopped = False

        # Setup hostname
        if config['router']['hostname'] == 'auto':
            self.hostname = get_hostname()
        else:
            self.hostname = config['router']['hostname']

        self.logger.info(f"Initializing alert router on host: {self.hostname}")

        external_url = config['router'].get('external_url', '')
        self.routing = routing or load_routing_config(config['router'].get('routing_file'), external_url)

        self.metrics = RouterMetrics()
        self.exporter = PrometheusExporter(config, self.metrics)

        self.storage = None
        if config['storage'].get('enabled', False):
            self._init_storage()

        notifier_config = config['notifier']
        self.store = AlertStore()
        self.notifier = Notifier(
            self.routing.receivers,
            metrics=self.metrics,
            storage=self.storage,
            executor=ThreadPoolExecutor(
                max_workers=notifier_config['workers'],
                thread_name_prefix='notifier'
            ),
            max_attempts=notifier_config['max_attempts'],
            backoff_multiplier=notifier_config['backoff_multiplier'],
            backoff_max=notifier_config['backoff_max'],
        )
        self.inhibitor = Inhibitor(self.routing.inhibit_rules, self.store)
        self.dispatcher = Dispatcher(
            self.routing.route, self.notifier, self.inhibitor, self.store, metrics=self.metrics
        )

        self._restore_alerts()

        self.app = create_app(self.routing, self.dispatcher, self.store, self.inhibitor, self.metrics)

    def _init_storage(self):
        """Initialize the storage backend"""
        from alert_router.alerts.storage.sqlite_storage import SQLiteStorage

        try:
            self.storage = SQLiteStorage(self.config['storage'])
        except Exception as e:
            self.logger.error(f"Failed to initialize storage: {e}", exc_info=True)
            raise

    def _restore_alerts(self):
        """Re-feed alerts that were still active at the last shutdown"""
        if self.storage is None:
            return

        alerts = self.storage.get_active_alerts(utcnow())
        for alert in alerts:
            self.dispatcher.receive(alert)

        if alerts:
            self.logger.info(f"Restored {len(alerts)} active alerts from storage")

    def _setup_signal_handlers(self):
        """Setup signal handlers for graceful shutdown"""
        if threading.current_thread() is not threading.main_thread():
            return

        def signal_handler(signum, frame):
            self.logger.info(f"Received signal {signum}, initiating graceful shutdown...")
            self.running = False

        signal.signal(signal.SIGINT, signal_handler)
        signal.signal(signal.SIGTERM, signal_handler)

    def start(self):
        """Start the service and block until it is stopped"""
        self.logger.info("Starting alert router...")
        self.running = True
        self._setup_signal_handlers()

        try:
            # Start Prometheus HTTP server
            if self.config['prometheus'].get('enabled', True):
                self.exporter.start()
            self.metrics.router_info.labels(
                version=__version__,
                hostname=self.hostname
            ).set(1)

            # Start maintenance thread
            self.maintenance_thread = threading.Thread(
                target=self._maintenance_loop,
                daemon=True,
                name="maintenance"
            )
            self.maintenance_thread.start()
            self.logger.info("Started maintenance thread")

            # Start push API
            api_config = self.config['api']
            self.api_server = uvicorn.Server(uvicorn.Config(
                self.app,
                host=api_config['host'],
                port=api_config['port'],
                log_config=None,
            ))
            self.api_thread = threading.Thread(
                target=self.api_server.run,
                daemon=True,
                name="api"
            )
            self.api_thread.start()

            self.logger.info("Alert router started successfully")
            self.logger.info(f"Push API available at http://{api_config['host']}:{api_config['port']}/api/v2/alerts")

            # Keep main thread alive
            while self.running:
                time.sleep(1)

        except KeyboardInterrupt:
            self.logger.info("Keyboard interrupt received")
        except Exception as e:
            self.logger.error(f"Router error: {e}", exc_info=True)
            raise
        finally:
            self.shutdown()

    def stop(self):
        """Ask the main loop to exit"""
        self.running = False

    def shutdown(self):
        """Stop every component; safe to call more than once"""
        if self._stopped:
            return
        self._stopped = True
        self.running = False

        self.logger.info("Stopping alert router...")

        if self.api_server is not None:
            self.api_server.should_exit = True
        if self.api_thread:
            self.api_thread.join(timeout=5)

        if self.maintenance_thread:
            self.maintenance_thread.join(timeout=2)

        # Pending flushes are dropped; active alerts are restored on start
        self.dispatcher.stop()
        self.notifier.shutdown(wait=True)

        if self.storage is not None:
            self._persist_alerts()
            self.storage.close()

        if self.exporter.running:
            self.exporter.stop()

        self.logger.info("Alert router stopped")

    def run_maintenance(self):
        """Persist alert snapshots, drop expired alerts and refresh gauges"""
        now = utcnow()
        if self.storage is not None:
            self._persist_alerts()

        removed = self.store.gc(self.config['maintenance']['alert_retention'], now)
        if removed:
            self.logger.info(f"Removed {removed} resolved alerts from memory")

        if self.storage is not None:
            self.storage.cleanup_old_alerts(self.storage.retention_days)

        self.exporter.update_router_metrics(self.store, self.dispatcher)

    def _persist_alerts(self):
        for alert in self.store.list():
            try:
                self.storage.save_alert(alert)
            except Exception as e:
                self.logger.error(f"Failed to persist alert {alert.fingerprint}: {e}")

    def _maintenance_loop(self):
        """Run periodic maintenance"""
        interval = self.config['maintenance']['interval']

        self.logger.debug(f"Starting maintenance loop (interval: {interval}s)")

        while self.running:
            try:
                self.run_maintenance()
            except Exception as e:
                self.logger.error(f"Error in maintenance loop: {e}", exc_info=True)

            # Sleep in short steps so shutdown is not held up
            deadline = time.monotonic() + interval
            while self.running and time.monotonic() < deadline:
                time.sleep(min(1.0, interval))
