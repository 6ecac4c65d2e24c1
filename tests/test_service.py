"""Tests for service wiring, maintenance and restart recovery"""

import pytest
from datetime import timedelta

from alert_router.alerts.models import Alert
from alert_router.config.settings import get_default_config
from alert_router.errors import ConfigError
from alert_router.service import AlertRouterService
from alert_router.utils.helpers import utcnow


@pytest.fixture
def config(tmp_path):
    config = get_default_config()
    config['prometheus']['enabled'] = False
    config['storage']['sqlite_path'] = str(tmp_path / 'router.db')
    config['notifier']['workers'] = 1
    return config


def firing_alert(**labels):
    now = utcnow()
    return Alert(labels={'alertname': 'HighCPU', **labels}, starts_at=now,
                 ends_at=now + timedelta(hours=1), updated_at=now)


class TestAlertRouterService:
    """Test the service without starting its servers"""

    def test_default_routing(self, config):
        service = AlertRouterService(config)
        try:
            assert service.routing.route.receiver == 'default-receiver'
            assert service.storage is not None
        finally:
            service.shutdown()

    def test_invalid_routing_file_is_fatal(self, config, tmp_path):
        routing_file = tmp_path / 'alertmanager.yml'
        routing_file.write_text("route:\n  receiver: nobody\nreceivers:\n  - name: default\n")
        config['router']['routing_file'] = str(routing_file)

        with pytest.raises(ConfigError, match="undefined receiver"):
            AlertRouterService(config)

    def test_maintenance_persists_and_gcs(self, config):
        config['maintenance']['alert_retention'] = 0
        service = AlertRouterService(config)
        try:
            service.dispatcher.receive(firing_alert(pod='p1'))
            now = utcnow()
            service.dispatcher.receive(Alert(labels={'alertname': 'Gone'}, starts_at=now, ends_at=now))

            service.run_maintenance()

            assert [a.name for a in service.store.list()] == ['HighCPU']
            assert len(service.storage.get_active_alerts(utcnow())) == 1
            assert service.metrics.registry.get_sample_value('alertrouter_alerts', {'state': 'firing'}) == 1
        finally:
            service.shutdown()

    def test_active_alerts_restored_on_restart(self, config):
        first = AlertRouterService(config)
        alert = firing_alert(pod='p1')
        first.dispatcher.receive(alert)
        first.shutdown()

        second = AlertRouterService(config)
        try:
            restored = second.store.get(alert.fingerprint)
            assert restored is not None
            assert restored.starts_at == alert.starts_at
            assert second.dispatcher.group_count() == 1
        finally:
            second.shutdown()

    def test_shutdown_is_idempotent(self, config):
        service = AlertRouterService(config)
        service.shutdown()
        service.shutdown()

    def test_without_storage(self, config):
        config['storage']['enabled'] = False
        service = AlertRouterService(config)
        try:
            service.dispatcher.receive(firing_alert())
            service.run_maintenance()
            assert service.storage is None
            assert len(service.store) == 1
        finally:
            service.shutdown()
