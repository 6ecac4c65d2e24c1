"""Tests for the routing tree"""

import pytest
import yaml

from alert_router.alerts.routes import Route, DEFAULT_GROUP_WAIT
from alert_router.errors import ConfigError


ROUTE_CONFIG = {
    'receiver': 'default-receiver',
    'group_by': ['alertname', 'job'],
    'group_wait': '30s',
    'group_interval': '5m',
    'repeat_interval': '12h',
    'routes': [
        {
            'match': {'severity': 'critical'},
            'receiver': 'critical-receiver',
            'continue': True,
        },
        {
            'match_re': {'namespace': 'neuroca.*'},
            'receiver': 'neuroca-team',
            'group_by': ['alertname', 'pod'],
            'routes': [
                {'matchers': ['team="db"'], 'receiver': 'db-team', 'group_wait': '10s'},
            ],
        },
        {
            'matchers': ['namespace=~".*"'],
            'receiver': 'catch-all',
        },
    ],
}

RECEIVERS = ['default-receiver', 'critical-receiver', 'neuroca-team', 'db-team', 'catch-all']


@pytest.fixture
def root():
    return Route.from_config(ROUTE_CONFIG, receivers=RECEIVERS)


def receivers_for(root, **labels):
    return [r.receiver for r in root.match(labels)]


class TestRouteMatching:
    """Test depth-first route matching"""

    def test_no_match_falls_back_to_root(self):
        root = Route.from_config({'receiver': 'default-receiver', 'routes': [
            {'match': {'severity': 'critical'}, 'receiver': 'critical-receiver'},
        ]})

        assert receivers_for(root, alertname='A', severity='info') == ['default-receiver']

    def test_continue_allows_multiple_receivers(self, root):
        # critical continues, then the neuroca route matches and stops
        assert receivers_for(root, alertname='A', severity='critical', namespace='neuroca-prod') == [
            'critical-receiver', 'neuroca-team',
        ]

    def test_continue_false_short_circuits(self, root):
        # neuroca matches without continue, so the catch-all sibling is never evaluated
        assert receivers_for(root, alertname='A', namespace='neuroca-prod') == ['neuroca-team']

    def test_later_sibling_matches_when_earlier_do_not(self, root):
        assert receivers_for(root, alertname='A', namespace='other') == ['catch-all']

    def test_deepest_match_wins(self, root):
        matched = root.match({'alertname': 'A', 'namespace': 'neuroca', 'team': 'db'})

        assert [r.receiver for r in matched] == ['db-team']
        assert matched[0].parent.receiver == 'neuroca-team'

    def test_only_critical_continue_then_catch_all(self, root):
        assert receivers_for(root, alertname='A', severity='critical', namespace='other') == [
            'critical-receiver', 'catch-all',
        ]


class TestRouteOptions:
    """Test option inheritance and grouping"""

    def test_children_inherit_options(self, root):
        critical = root.routes[0]

        assert critical.opts.group_by == ('alertname', 'job')
        assert critical.opts.group_wait == 30
        assert critical.opts.group_interval == 300
        assert critical.opts.repeat_interval == 12 * 3600

    def test_overrides_propagate_to_descendants(self, root):
        db = root.routes[1].routes[0]

        assert db.opts.group_by == ('alertname', 'pod')
        assert db.opts.group_wait == 10
        assert db.opts.repeat_interval == 12 * 3600

    def test_defaults(self):
        root = Route.from_config({'receiver': 'r'})
        assert root.opts.group_wait == DEFAULT_GROUP_WAIT
        assert root.opts.group_by == ()

    def test_group_labels(self, root):
        labels = {'alertname': 'A', 'job': 'api', 'pod': 'p1'}

        assert root.group_labels(labels) == {'alertname': 'A', 'job': 'api'}
        assert root.routes[1].group_labels(labels) == {'alertname': 'A', 'pod': 'p1'}

    def test_group_labels_skip_missing(self, root):
        assert root.group_labels({'alertname': 'A'}) == {'alertname': 'A'}

    def test_group_by_all(self):
        root = Route.from_config({'receiver': 'r', 'group_by': ['...']})
        labels = {'alertname': 'A', 'pod': 'p1'}

        assert root.opts.group_by_all
        assert root.group_labels(labels) == labels

    def test_route_ids_are_unique(self, root):
        ids = [r.id for r in root.walk()]

        assert ids[0] == '{}'
        assert len(set(ids)) == len(ids) == 5

    def test_to_dict(self, root):
        data = root.to_dict()

        assert data['receiver'] == 'default-receiver'
        assert data['group_wait'] == '30s'
        assert data['repeat_interval'] == '12h'
        assert data['routes'][0]['matchers'] == ['severity="critical"']
        assert data['routes'][0]['continue'] is True


class TestRouteValidation:
    """Test configuration errors caught at load time"""

    def test_root_requires_receiver(self):
        with pytest.raises(ConfigError, match="default receiver"):
            Route.from_config({'group_by': ['alertname']})

    def test_root_rejects_matchers(self):
        with pytest.raises(ConfigError, match="must not have any matchers"):
            Route.from_config({'receiver': 'r', 'match': {'severity': 'critical'}})

    def test_root_rejects_continue(self):
        with pytest.raises(ConfigError, match="continue"):
            Route.from_config({'receiver': 'r', 'continue': True})

    def test_undefined_receiver(self):
        with pytest.raises(ConfigError, match="undefined receiver 'nobody'"):
            Route.from_config(
                {'receiver': 'r', 'routes': [{'receiver': 'nobody'}]},
                receivers=['r'],
            )

    def test_malformed_matcher(self):
        with pytest.raises(ConfigError):
            Route.from_config({'receiver': 'r', 'routes': [{'matchers': ['severity=="x"']}]})

    def test_invalid_regex(self):
        with pytest.raises(ConfigError, match="Invalid regular expression"):
            Route.from_config({'receiver': 'r', 'routes': [{'match_re': {'job': '(api'}}]})

    def test_unknown_field(self):
        with pytest.raises(ConfigError, match="unknown route fields"):
            Route.from_config({'receiver': 'r', 'group_bye': ['alertname']})

    def test_zero_group_interval(self):
        with pytest.raises(ConfigError, match="group_interval must be greater than 0"):
            Route.from_config({'receiver': 'r', 'group_interval': '0s'})

    def test_zero_group_wait_allowed(self):
        assert Route.from_config({'receiver': 'r', 'group_wait': 0}).opts.group_wait == 0

    def test_invalid_duration(self):
        with pytest.raises(ConfigError, match="repeat_interval"):
            Route.from_config({'receiver': 'r', 'repeat_interval': 'soon'})

    def test_continue_must_be_bool(self):
        with pytest.raises(ConfigError, match="continue must be a boolean"):
            Route.from_config({'receiver': 'r', 'routes': [{'continue': 'yes'}]})

    def test_group_by_all_exclusive(self):
        with pytest.raises(ConfigError, match="cannot combine"):
            Route.from_config({'receiver': 'r', 'group_by': ['...', 'alertname']})

    def test_cyclic_route_reference(self):
        config = {'receiver': 'r', 'routes': []}
        child = {'receiver': 'r', 'routes': [config]}
        config['routes'].append(child)

        with pytest.raises(ConfigError, match="cyclic route reference"):
            Route.from_config(config)

    def test_cyclic_yaml_alias(self):
        document = """
route: &root
  receiver: r
  routes:
    - receiver: r
      routes:
        - *root
"""
        config = yaml.safe_load(document)['route']

        with pytest.raises(ConfigError, match="cyclic route reference"):
            Route.from_config(config)
