"""
Inhibition: muting target alerts while a related source alert fires.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Tuple

from alert_router.alerts.matchers import Matchers, matchers_from_config
from alert_router.alerts.models import Alert
from alert_router.errors import ConfigError
from alert_router.utils.helpers import utcnow

logger = logging.getLogger(__name__)


@dataclass
class InhibitRule:
    """Source/target matcher pair plus the labels that must be equal on both"""
    source_matchers: Matchers
    target_matchers: Matchers
    equal: Tuple[str, ...] = ()

    def has_equal(self, source: Dict[str, str], target: Dict[str, str]) -> bool:
        """Equality labels absent from both sides compare equal"""
        return all(source.get(name, '') == target.get(name, '') for name in self.equal)

    def find_source(self, alert: Alert, candidates: Iterable[Alert],
                    now: datetime) -> Optional[Alert]:
        """
        Find a firing source alert that inhibits the given target.

        Args:
            alert: Target alert, already known to match target_matchers
            candidates: Alerts to search for a source
            now: Evaluation time

        Returns:
            The inhibiting alert or None
        """
        two_sided = self.source_matchers.matches(alert.labels)

        for source in candidates:
            if source.fingerprint == alert.fingerprint:
                continue
            if source.resolved(now):
                continue
            if not self.source_matchers.matches(source.labels):
                continue
            # an alert matching both sides cannot be muted by another one that does too
            if two_sided and self.target_matchers.matches(source.labels):
                continue
            if self.has_equal(source.labels, alert.labels):
                return source
        return None

    def to_dict(self) -> Dict:
        return {
            'source_matchers': [str(m) for m in self.source_matchers],
            'target_matchers': [str(m) for m in self.target_matchers],
            'equal': list(self.equal),
        }

    @classmethod
    def from_config(cls, config: Dict, index: int = 0) -> 'InhibitRule':
        """
        Build a rule from an inhibit_rules entry.

        Raises:
            ConfigError: If matchers or equal labels are invalid
        """
        context = f"inhibit_rules[{index}]: "
        if not isinstance(config, dict):
            raise ConfigError(f"{context}must be a mapping")

        source = matchers_from_config(
            config.get('source_match'), config.get('source_match_re'),
            config.get('source_matchers'), context=context,
        )
        target = matchers_from_config(
            config.get('target_match'), config.get('target_match_re'),
            config.get('target_matchers'), context=context,
        )

        equal = config.get('equal') or []
        if not isinstance(equal, list):
            raise ConfigError(f"{context}equal must be a list of label names")

        if not source:
            logger.warning(f"{context}no source matchers, every firing alert is a potential source")
        if not target:
            logger.warning(f"{context}no target matchers, every alert is a potential target")

        return cls(source_matchers=source, target_matchers=target, equal=tuple(str(e) for e in equal))


def find_inhibitor(alert: Alert, rules: List[InhibitRule], firing_alerts: Iterable[Alert],
                   now: Optional[datetime] = None) -> Optional[Alert]:
    """
    Decide whether an alert is inhibited.

    Pure function of the rules and the current set of alerts: no state is
    kept between calls, so suppression ends as soon as the source stops
    firing.

    Returns:
        The source alert inhibiting this one, or None
    """
    now = now or utcnow()
    candidates = list(firing_alerts)
    for rule in rules:
        if not rule.target_matchers.matches(alert.labels):
            continue
        source = rule.find_source(alert, candidates, now)
        if source is not None:
            return source
    return None


def is_inhibited(alert: Alert, rules: List[InhibitRule], firing_alerts: Iterable[Alert],
                 now: Optional[datetime] = None) -> bool:
    return find_inhibitor(alert, rules, firing_alerts, now) is not None


class Inhibitor:
    """Evaluates inhibition rules against the live alert store"""

    def __init__(self, rules: List[InhibitRule], store):
        self.rules = list(rules)
        self.store = store

    def inhibited_by(self, alert: Alert, now: Optional[datetime] = None) -> Optional[Alert]:
        if not self.rules:
            return None
        now = now or utcnow()
        return find_inhibitor(alert, self.rules, self.store.firing(now), now)

    def is_inhibited(self, alert: Alert, now: Optional[datetime] = None) -> bool:
        return self.inhibited_by(alert, now) is not None
