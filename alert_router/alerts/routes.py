"""
Routing tree: decides which receivers an alert goes to and how it is grouped.
"""

import logging
from dataclasses import dataclass
from typing import Dict, Iterator, List, Optional, Sequence, Tuple

from alert_router.alerts.matchers import Matchers, matchers_from_config
from alert_router.errors import ConfigError
from alert_router.utils.helpers import format_duration, parse_duration

logger = logging.getLogger(__name__)

DEFAULT_GROUP_WAIT = 30.0
DEFAULT_GROUP_INTERVAL = 300.0
DEFAULT_REPEAT_INTERVAL = 4 * 3600.0

# group_by value that groups by every label, effectively disabling aggregation
GROUP_BY_ALL = '...'

_ROUTE_KEYS = {
    'receiver', 'group_by', 'group_wait', 'group_interval', 'repeat_interval',
    'continue', 'match', 'match_re', 'matchers', 'routes',
}


@dataclass(frozen=True)
class RouteOpts:
    """Receiver and grouping parameters of a route"""
    receiver: str
    group_by: Tuple[str, ...] = ()
    group_by_all: bool = False
    group_wait: float = DEFAULT_GROUP_WAIT
    group_interval: float = DEFAULT_GROUP_INTERVAL
    repeat_interval: float = DEFAULT_REPEAT_INTERVAL

    def to_dict(self) -> Dict:
        return {
            'receiver': self.receiver,
            'group_by': [GROUP_BY_ALL] if self.group_by_all else list(self.group_by),
            'group_wait': format_duration(self.group_wait),
            'group_interval': format_duration(self.group_interval),
            'repeat_interval': format_duration(self.repeat_interval),
        }


class Route:
    """Node of the routing tree"""

    def __init__(self, matchers: Matchers, opts: RouteOpts, continue_matching: bool = False,
                 parent: Optional['Route'] = None, index: int = 0):
        self.matchers = matchers
        self.opts = opts
        self.continue_matching = continue_matching
        self.parent = parent
        self.routes: List['Route'] = []

        if parent is None:
            self.id = '{}'
        else:
            self.id = f"{parent.id}/{matchers}/{index}"

    @property
    def receiver(self) -> str:
        return self.opts.receiver

    def match(self, labels: Dict[str, str]) -> List['Route']:
        """
        Find the routes an alert with these labels is delivered through.

        Children are walked depth-first in order. A matching child whose
        'continue' flag is false stops evaluation of its later siblings. A
        node without any matching child is itself the match.

        Args:
            labels: Alert label set

        Returns:
            Matching routes in tree order, empty if this node does not match
        """
        if not self.matchers.matches(labels):
            return []

        matched: List['Route'] = []
        for child in self.routes:
            child_matches = child.match(labels)
            matched.extend(child_matches)
            if child_matches and not child.continue_matching:
                break

        if not matched:
            matched.append(self)
        return matched

    def group_labels(self, labels: Dict[str, str]) -> Dict[str, str]:
        """Project a label set onto this route's group_by"""
        if self.opts.group_by_all:
            return dict(labels)
        return {name: labels[name] for name in self.opts.group_by if name in labels}

    def walk(self) -> Iterator['Route']:
        """Iterate over this node and all descendants depth-first"""
        yield self
        for child in self.routes:
            yield from child.walk()

    def to_dict(self) -> Dict:
        data = self.opts.to_dict()
        data['matchers'] = [str(m) for m in self.matchers]
        data['continue'] = self.continue_matching
        data['routes'] = [child.to_dict() for child in self.routes]
        return data

    def __repr__(self):
        return f"Route(id={self.id!r}, receiver={self.receiver!r})"

    @classmethod
    def from_config(cls, config: Dict, receivers: Optional[Sequence[str]] = None) -> 'Route':
        """
        Build the routing tree from the 'route' section of the configuration.

        Args:
            config: Root route configuration dict
            receivers: Names of the defined receivers, checked when given

        Raises:
            ConfigError: If the tree is invalid
        """
        if not isinstance(config, dict):
            raise ConfigError("route must be a mapping")
        if not config.get('receiver'):
            raise ConfigError("Root route must specify a default receiver")
        if config.get('match') or config.get('match_re') or config.get('matchers'):
            raise ConfigError("Root route must not have any matchers")
        if config.get('continue'):
            raise ConfigError("Root route must not have 'continue' set")

        defaults = RouteOpts(receiver=config['receiver'])
        root = _build_route(config, defaults, None, 0, set(), 'route')

        if receivers is not None:
            known = set(receivers)
            for route in root.walk():
                if route.receiver not in known:
                    raise ConfigError(f"Route {route.id} references undefined receiver {route.receiver!r}")

        return root


def _parse_group_by(value, context: str) -> Tuple[Tuple[str, ...], bool]:
    if not isinstance(value, list):
        raise ConfigError(f"{context}: group_by must be a list")
    names = [str(v) for v in value]
    if GROUP_BY_ALL in names:
        if len(names) > 1:
            raise ConfigError(f"{context}: cannot combine '{GROUP_BY_ALL}' with other group_by labels")
        return (), True
    if len(set(names)) != len(names):
        raise ConfigError(f"{context}: duplicated label in group_by")
    return tuple(names), False


def _parse_interval(config: Dict, key: str, default: float, context: str) -> float:
    if key not in config or config[key] is None:
        return default
    try:
        seconds = parse_duration(config[key])
    except ValueError as e:
        raise ConfigError(f"{context}: {key}: {e}")
    if seconds <= 0 and key != 'group_wait':
        raise ConfigError(f"{context}: {key} must be greater than 0")
    return seconds


def _build_route(config: Dict, parent_opts: RouteOpts, parent: Optional[Route],
                 index: int, ancestors: set, context: str) -> Route:
    if not isinstance(config, dict):
        raise ConfigError(f"{context} must be a mapping")

    # YAML aliases can point a child back at one of its ancestors
    if id(config) in ancestors:
        raise ConfigError(f"{context}: cyclic route reference")

    unknown = set(config) - _ROUTE_KEYS
    if unknown:
        raise ConfigError(f"{context}: unknown route fields {sorted(unknown)}")

    if 'group_by' in config and config['group_by'] is not None:
        group_by, group_by_all = _parse_group_by(config['group_by'], context)
    else:
        group_by, group_by_all = parent_opts.group_by, parent_opts.group_by_all

    opts = RouteOpts(
        receiver=config.get('receiver') or parent_opts.receiver,
        group_by=group_by,
        group_by_all=group_by_all,
        group_wait=_parse_interval(config, 'group_wait', parent_opts.group_wait, context),
        group_interval=_parse_interval(config, 'group_interval', parent_opts.group_interval, context),
        repeat_interval=_parse_interval(config, 'repeat_interval', parent_opts.repeat_interval, context),
    )

    matchers = matchers_from_config(
        config.get('match'), config.get('match_re'), config.get('matchers'), context=f"{context}: "
    )

    continue_matching = config.get('continue', False)
    if not isinstance(continue_matching, bool):
        raise ConfigError(f"{context}: continue must be a boolean")

    route = Route(matchers, opts, continue_matching, parent=parent, index=index)

    children = config.get('routes') or []
    if not isinstance(children, list):
        raise ConfigError(f"{context}: routes must be a list")

    ancestors = ancestors | {id(config)}
    for i, child_config in enumerate(children):
        route.routes.append(
            _build_route(child_config, opts, route, i, ancestors, f"{context}.routes[{i}]")
        )

    if opts.group_interval > opts.repeat_interval:
        logger.warning(
            f"{context}: repeat_interval ({format_duration(opts.repeat_interval)}) is shorter than "
            f"group_interval ({format_duration(opts.group_interval)}); repeats happen every group_interval"
        )

    return route
