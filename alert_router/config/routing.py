"""
Routing configuration: route tree, receivers, inhibition rules.

The file format is the Alertmanager one, e.g.:

    global:
      resolve_timeout: 5m
    route:
      receiver: default-receiver
      group_by: [alertname, job]
      routes:
        - match: {severity: critical}
          receiver: critical-receiver
          continue: true
    receivers:
      - name: default-receiver
      - name: critical-receiver
    inhibit_rules:
      - source_match: {severity: critical}
        target_match: {severity: warning}
        equal: [alertname, namespace, pod]
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, List

import yaml

from alert_router.alerts.inhibit import InhibitRule
from alert_router.alerts.notifier import Receiver, build_receivers
from alert_router.alerts.routes import Route
from alert_router.errors import ConfigError
from alert_router.utils.helpers import format_duration, parse_duration

logger = logging.getLogger(__name__)

DEFAULT_RESOLVE_TIMEOUT = 300.0

_TOP_LEVEL_KEYS = {'global', 'route', 'receivers', 'inhibit_rules', 'templates'}


def get_default_routing_config() -> Dict:
    """Routing used when no routing file is configured"""
    return {
        'global': {'resolve_timeout': '5m'},
        'route': {
            'receiver': 'default-receiver',
            'group_by': ['alertname', 'job'],
            'group_wait': '30s',
            'group_interval': '5m',
            'repeat_interval': '12h',
        },
        'receivers': [{'name': 'default-receiver'}],
        'inhibit_rules': [],
    }


@dataclass
class RoutingConfig:
    """Parsed routing configuration"""
    route: Route
    receivers: Dict[str, Receiver]
    inhibit_rules: List[InhibitRule] = field(default_factory=list)
    resolve_timeout: float = DEFAULT_RESOLVE_TIMEOUT
    source: str = '<default>'

    def to_dict(self) -> Dict:
        return {
            'source': self.source,
            'resolve_timeout': format_duration(self.resolve_timeout),
            'route': self.route.to_dict(),
            'receivers': [r.to_dict() for r in self.receivers.values()],
            'inhibit_rules': [r.to_dict() for r in self.inhibit_rules],
        }


def parse_routing_config(data: Dict, external_url: str = '', source: str = '<dict>') -> RoutingConfig:
    """
    Build a routing configuration from its dict form.

    Args:
        data: Parsed YAML document
        external_url: URL of this router, used in notification payloads
        source: Where the configuration came from, for messages

    Raises:
        ConfigError: If anything in the configuration is invalid
    """
    if not isinstance(data, dict):
        raise ConfigError(f"{source}: routing configuration must be a mapping")

    unknown = set(data) - _TOP_LEVEL_KEYS
    if unknown:
        raise ConfigError(f"{source}: unknown top-level fields {sorted(unknown)}")

    global_config = data.get('global') or {}
    if not isinstance(global_config, dict):
        raise ConfigError(f"{source}: global must be a mapping")

    resolve_timeout = DEFAULT_RESOLVE_TIMEOUT
    if global_config.get('resolve_timeout') is not None:
        try:
            resolve_timeout = parse_duration(global_config['resolve_timeout'])
        except ValueError as e:
            raise ConfigError(f"{source}: global.resolve_timeout: {e}")
        if resolve_timeout <= 0:
            raise ConfigError(f"{source}: global.resolve_timeout must be greater than 0")

    if 'route' not in data:
        raise ConfigError(f"{source}: no route provided")

    receivers = build_receivers(data.get('receivers') or [], external_url)
    if not receivers:
        raise ConfigError(f"{source}: at least one receiver must be defined")

    route = Route.from_config(data['route'], receivers=list(receivers))

    inhibit_config = data.get('inhibit_rules') or []
    if not isinstance(inhibit_config, list):
        raise ConfigError(f"{source}: inhibit_rules must be a list")
    inhibit_rules = [InhibitRule.from_config(rule, i) for i, rule in enumerate(inhibit_config)]

    used = {r.receiver for r in route.walk()}
    for name in receivers:
        if name not in used:
            logger.warning(f"{source}: receiver {name} is not used by any route")

    return RoutingConfig(
        route=route,
        receivers=receivers,
        inhibit_rules=inhibit_rules,
        resolve_timeout=resolve_timeout,
        source=source,
    )


def load_routing_config(path: str = None, external_url: str = '') -> RoutingConfig:
    """
    Load the routing configuration from a YAML file.

    Args:
        path: Path to the routing file, None for the built-in default

    Raises:
        ConfigError: If the file cannot be read or is invalid
    """
    if not path:
        logger.info("No routing file configured, using default routing")
        return parse_routing_config(get_default_routing_config(), external_url, source='<default>')

    try:
        with open(path, 'r') as f:
            data = yaml.safe_load(f)
    except FileNotFoundError:
        raise ConfigError(f"Routing file not found: {path}")
    except OSError as e:
        raise ConfigError(f"Failed to read routing file {path}: {e}")
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in routing file {path}: {e}")

    config = parse_routing_config(data, external_url, source=path)
    logger.info(
        f"Loaded routing from {path}: {sum(1 for _ in config.route.walk())} routes, "
        f"{len(config.receivers)} receivers, {len(config.inhibit_rules)} inhibit rules"
    )
    return config
