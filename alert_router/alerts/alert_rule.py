"""
Alerting rule definitions and loading utilities.

Rules are evaluated by the collector, not by the router; they are loaded
here so rule files can be checked against what the router expects of the
alerts they produce.
"""

import yaml
from dataclasses import dataclass, field
from typing import Dict, List
import logging

from alert_router.alerts.models import LABEL_NAME_RE
from alert_router.utils.helpers import parse_duration

logger = logging.getLogger(__name__)

VALID_SEVERITIES = ['info', 'warning', 'critical']


@dataclass
class AlertRule:
    """Alerting rule definition"""
    name: str
    expr: str
    group: str = ''
    for_duration: float = 0.0
    labels: Dict[str, str] = field(default_factory=dict)
    annotations: Dict[str, str] = field(default_factory=dict)

    def __post_init__(self):
        """Validate rule configuration"""
        if not self.name or not LABEL_NAME_RE.match(self.name):
            raise ValueError(f"Invalid alert name: {self.name!r}")

        if not isinstance(self.expr, str) or not self.expr.strip():
            raise ValueError(f"Rule {self.name}: expr must be a non-empty string")

        if self.for_duration < 0:
            raise ValueError(f"Rule {self.name}: for must be >= 0, got {self.for_duration}")

        for key in list(self.labels) + list(self.annotations):
            if not LABEL_NAME_RE.match(str(key)):
                raise ValueError(f"Rule {self.name}: invalid label or annotation name {key!r}")

        # Validate severity
        severity = self.labels.get('severity')
        if severity is not None and severity not in VALID_SEVERITIES:
            raise ValueError(
                f"Rule {self.name}: invalid severity: {severity}. Must be one of {VALID_SEVERITIES}"
            )

    @property
    def severity(self) -> str:
        return self.labels.get('severity', '')


def _build_rule(rule_config: Dict, group_name: str) -> AlertRule:
    for_value = rule_config.get('for', 0)
    try:
        for_duration = parse_duration(for_value) if for_value else 0.0
    except ValueError as e:
        raise ValueError(f"Rule {rule_config.get('alert', 'unknown')}: {e}")

    labels = rule_config.get('labels') or {}
    annotations = rule_config.get('annotations') or {}
    if not isinstance(labels, dict) or not isinstance(annotations, dict):
        raise ValueError(f"Rule {rule_config.get('alert', 'unknown')}: labels and annotations must be mappings")

    return AlertRule(
        name=rule_config['alert'],
        expr=str(rule_config['expr']),
        group=group_name,
        for_duration=for_duration,
        labels={str(k): str(v) for k, v in labels.items()},
        annotations={str(k): str(v) for k, v in annotations.items()},
    )


def load_alert_rules(rules_file: str) -> List[AlertRule]:
    """
    Load alerting rules from a Prometheus rule-group YAML file.

    Recording rules (entries with 'record' instead of 'alert') are skipped.

    Args:
        rules_file: Path to YAML rule file

    Returns:
        List of AlertRule objects

    Raises:
        FileNotFoundError: If rules file doesn't exist
        ValueError: If rules file has invalid format or an invalid rule
    """
    try:
        with open(rules_file, 'r') as f:
            config = yaml.safe_load(f)

        if not config or 'groups' not in config:
            logger.warning(f"No rule groups found in {rules_file}")
            return []

        if not isinstance(config['groups'], list):
            raise ValueError("groups must be a list")

        rules = []
        seen_groups = set()
        for group_config in config['groups']:
            group_name = group_config.get('name')
            if not group_name:
                raise ValueError("Every rule group needs a name")
            if group_name in seen_groups:
                raise ValueError(f"Duplicate rule group: {group_name}")
            seen_groups.add(group_name)

            for rule_config in group_config.get('rules') or []:
                if 'record' in rule_config:
                    continue
                try:
                    rule = _build_rule(rule_config, group_name)
                except KeyError as e:
                    raise ValueError(f"Rule in group {group_name} is missing field {e}")
                rules.append(rule)
                logger.debug(f"Loaded alert rule: {rule.name}")

        logger.info(f"Loaded {len(rules)} alert rules from {rules_file}")
        return rules

    except FileNotFoundError:
        logger.error(f"Alert rules file not found: {rules_file}")
        raise
    except yaml.YAMLError as e:
        logger.error(f"Failed to parse YAML file {rules_file}: {e}")
        raise ValueError(f"Invalid YAML format: {e}")
