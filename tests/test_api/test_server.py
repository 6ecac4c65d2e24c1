"""Tests for the push API"""

import pytest
from fastapi.testclient import TestClient

from alert_router import __version__
from alert_router.alerts.alert_store import AlertStore
from alert_router.alerts.dispatcher import Dispatcher
from alert_router.alerts.inhibit import Inhibitor
from alert_router.api.server import create_app
from alert_router.config.routing import parse_routing_config
from alert_router.exporters.prometheus_exporter import RouterMetrics


ROUTING = {
    'route': {
        'receiver': 'default-receiver',
        'group_by': ['alertname', 'job'],
        'routes': [
            {'match': {'severity': 'critical'}, 'receiver': 'critical-receiver', 'continue': True},
        ],
    },
    'receivers': [{'name': 'default-receiver'}, {'name': 'critical-receiver'}],
    'inhibit_rules': [
        {'source_match': {'severity': 'critical'}, 'target_match': {'severity': 'warning'},
         'equal': ['alertname']},
    ],
}


class RecordingNotifier:
    def __init__(self):
        self.notifications = []

    def notify(self, notification):
        self.notifications.append(notification)


@pytest.fixture
def metrics():
    return RouterMetrics()


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def components(metrics, notifier, timers, clock):
    routing = parse_routing_config(ROUTING)
    store = AlertStore()
    inhibitor = Inhibitor(routing.inhibit_rules, store)
    dispatcher = Dispatcher(routing.route, notifier, inhibitor, store, metrics=metrics,
                            timer_factory=timers, clock=clock)
    return routing, dispatcher, store, inhibitor


@pytest.fixture
def client(components, metrics, clock):
    routing, dispatcher, store, inhibitor = components
    app = create_app(routing, dispatcher, store, inhibitor, metrics, clock=clock)
    return TestClient(app)


def event(**labels):
    return {'labels': labels, 'annotations': {'summary': 'test'}}


class TestPostAlerts:
    """Test alert ingestion"""

    def test_accepts_alerts(self, client, components):
        _, dispatcher, store, _ = components

        response = client.post('/api/v2/alerts', json=[
            event(alertname='HighCPU', job='api', pod='p1'),
            event(alertname='HighCPU', job='api', pod='p2'),
        ])

        assert response.status_code == 200
        assert len(response.json()['accepted']) == 2
        assert response.json()['rejected'] == []
        assert len(store) == 2
        assert dispatcher.group_count() == 1

    def test_batch_delivered_after_group_wait(self, client, notifier, timers):
        client.post('/api/v2/alerts', json=[event(alertname='HighCPU', job='api', pod='p1')])
        timers.advance(10)
        client.post('/api/v2/alerts', json=[event(alertname='HighCPU', job='api', pod='p2')])
        timers.advance(20)

        assert len(notifier.notifications) == 1
        assert len(notifier.notifications[0].alerts) == 2

    def test_rejects_malformed_alerts(self, client, metrics, components):
        _, _, store, _ = components

        response = client.post('/api/v2/alerts', json=[
            event(alertname='HighCPU', job='api'),
            event(severity='critical'),
            {'labels': {'alertname': 'A'}, 'state': 'pending'},
            {'annotations': {}},
        ])

        assert response.status_code == 200
        body = response.json()
        assert len(body['accepted']) == 1
        assert [r['index'] for r in body['rejected']] == [1, 2, 3]
        assert 'alertname' in body['rejected'][0]['error']
        assert len(store) == 1
        assert metrics.registry.get_sample_value('alertrouter_alerts_invalid_total') == 3

    def test_all_rejected_is_bad_request(self, client):
        response = client.post('/api/v2/alerts', json=[event(severity='critical')])

        assert response.status_code == 400
        assert response.json()['accepted'] == []

    def test_empty_batch(self, client):
        response = client.post('/api/v2/alerts', json=[])

        assert response.status_code == 200
        assert response.json() == {'accepted': [], 'rejected': []}

    def test_body_must_be_a_list(self, client):
        response = client.post('/api/v2/alerts', json={'labels': {'alertname': 'A'}})
        assert response.status_code == 422

    def test_resolved_event(self, client, components, clock):
        _, _, store, _ = components
        client.post('/api/v2/alerts', json=[event(alertname='HighCPU', job='api')])

        response = client.post('/api/v2/alerts', json=[
            {'labels': {'alertname': 'HighCPU', 'job': 'api'}, 'status': 'resolved'},
        ])

        assert response.status_code == 200
        assert store.counts(clock()) == {'firing': 0, 'resolved': 1}


class TestGetAlerts:
    """Test alert listing"""

    def test_suppressed_state(self, client):
        client.post('/api/v2/alerts', json=[
            event(alertname='NeurocaServiceDown', job='api', severity='critical'),
            event(alertname='NeurocaServiceDown', job='api', severity='warning'),
        ])

        alerts = {a['labels']['severity']: a for a in client.get('/api/v2/alerts').json()}

        assert alerts['critical']['state'] == 'active'
        assert alerts['critical']['receivers'] == ['critical-receiver']
        assert alerts['warning']['state'] == 'suppressed'
        assert alerts['warning']['inhibitedBy'] == [alerts['critical']['fingerprint']]
        assert alerts['warning']['receivers'] == ['default-receiver']

    def test_filters(self, client):
        client.post('/api/v2/alerts', json=[
            event(alertname='NeurocaServiceDown', job='api', severity='critical'),
            event(alertname='NeurocaServiceDown', job='api', severity='warning'),
        ])

        active_only = client.get('/api/v2/alerts', params={'inhibited': 'false'}).json()

        assert [a['labels']['severity'] for a in active_only] == ['critical']

    def test_resolved_hidden_by_default(self, client):
        client.post('/api/v2/alerts', json=[
            {'labels': {'alertname': 'HighCPU'}, 'status': 'resolved'},
        ])

        assert client.get('/api/v2/alerts').json() == []
        resolved = client.get('/api/v2/alerts', params={'resolved': 'true'}).json()
        assert [a['state'] for a in resolved] == ['resolved']


class TestStatusEndpoints:
    """Test groups, status and health endpoints"""

    def test_groups(self, client):
        client.post('/api/v2/alerts', json=[
            event(alertname='HighCPU', job='api', pod='p1'),
            event(alertname='HighCPU', job='db', pod='p1'),
        ])

        groups = client.get('/api/v2/alerts/groups').json()

        assert sorted(g['labels']['job'] for g in groups) == ['api', 'db']
        assert all(g['receiver'] == 'default-receiver' for g in groups)

    def test_status(self, client):
        client.post('/api/v2/alerts', json=[event(alertname='HighCPU', job='api')])

        status = client.get('/api/v2/status').json()

        assert status['version'] == __version__
        assert status['resolve_timeout'] == '5m'
        assert status['alerts'] == {'firing': 1, 'resolved': 0}
        assert status['groups'] == 1
        assert status['config']['route']['receiver'] == 'default-receiver'

    def test_health(self, client):
        assert client.get('/-/healthy').status_code == 200
        assert client.get('/-/ready').json() == {'status': 'ready'}
