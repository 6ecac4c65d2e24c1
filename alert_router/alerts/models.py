"""
Alert and notification data structures.
"""

import hashlib
import re
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta
from typing import Dict, List, Optional

from alert_router.errors import InvalidAlertError
from alert_router.utils.helpers import parse_timestamp, utcnow

LABEL_NAME_RE = re.compile(r'^[a-zA-Z_][a-zA-Z0-9_]*$')

REQUIRED_LABELS = ('alertname',)


class AlertState:
    """Alert state constants"""
    FIRING = 'firing'        # ends_at unset or in the future
    RESOLVED = 'resolved'    # ends_at reached

    ALL = (FIRING, RESOLVED)


def label_fingerprint(labels: Dict[str, str]) -> str:
    """
    Compute the identity of a label set.

    The same labels always yield the same fingerprint regardless of
    insertion order.
    """
    digest = hashlib.sha256()
    for name, value in sorted(labels.items()):
        digest.update(name.encode('utf-8'))
        digest.update(b'\xff')
        digest.update(value.encode('utf-8'))
        digest.update(b'\xff')
    return digest.hexdigest()[:16]


def validate_labels(labels: Dict[str, str]) -> None:
    """
    Check that a label set can identify an alert.

    Raises:
        InvalidAlertError: If the label set is empty, has invalid names
            or non-string values, or lacks a required label
    """
    if not labels:
        raise InvalidAlertError("Alert has no labels")

    for name, value in labels.items():
        if not isinstance(name, str) or not LABEL_NAME_RE.match(name):
            raise InvalidAlertError(f"Invalid label name: {name!r}")
        if not isinstance(value, str):
            raise InvalidAlertError(f"Label {name} must be a string, got {type(value).__name__}")

    for name in REQUIRED_LABELS:
        if not labels.get(name):
            raise InvalidAlertError(f"Missing required label: {name}")


@dataclass
class Alert:
    """
    A single alert instance.

    The label set is the alert's identity: a later event with the same
    labels supersedes this instance rather than creating a new alert.
    """
    labels: Dict[str, str]
    starts_at: datetime
    ends_at: Optional[datetime] = None
    annotations: Dict[str, str] = field(default_factory=dict)
    generator_url: str = ''
    updated_at: Optional[datetime] = None
    timeout: bool = False
    fingerprint: str = field(init=False)

    def __post_init__(self):
        validate_labels(self.labels)
        self.labels = dict(self.labels)
        self.annotations = {str(k): str(v) for k, v in (self.annotations or {}).items()}
        if self.ends_at is not None and self.ends_at < self.starts_at:
            raise InvalidAlertError(
                f"endsAt {self.ends_at.isoformat()} is before startsAt {self.starts_at.isoformat()}"
            )
        if self.updated_at is None:
            self.updated_at = self.starts_at
        self.fingerprint = label_fingerprint(self.labels)

    @property
    def name(self) -> str:
        return self.labels['alertname']

    def resolved(self, now: Optional[datetime] = None) -> bool:
        """True once ends_at has been reached"""
        if self.ends_at is None:
            return False
        return self.ends_at <= (now or utcnow())

    def status(self, now: Optional[datetime] = None) -> str:
        return AlertState.RESOLVED if self.resolved(now) else AlertState.FIRING

    def merge(self, newer: 'Alert') -> 'Alert':
        """
        Combine this alert with a newer instance of the same label set.

        The most recently updated instance wins. While this instance is still
        firing its start time is carried over so a re-sent alert keeps the
        time it originally started.
        """
        if newer.fingerprint != self.fingerprint:
            raise ValueError("Cannot merge alerts with different label sets")

        if newer.updated_at < self.updated_at:
            older, latest = newer, self
        else:
            older, latest = self, newer

        merged = replace(latest, labels=dict(latest.labels), annotations=dict(latest.annotations))
        if not older.resolved(latest.updated_at) and older.starts_at < merged.starts_at:
            merged.starts_at = older.starts_at
        return merged

    @classmethod
    def from_event(cls, event: Dict, resolve_timeout: float,
                   now: Optional[datetime] = None) -> 'Alert':
        """
        Build an alert from an inbound event.

        Args:
            event: Dict with labels, annotations, and optional state
                ('firing'/'resolved'), startsAt, endsAt, generatorURL
            resolve_timeout: Seconds after which a firing alert without
                endsAt is considered resolved unless it is re-sent
            now: Reception time

        Raises:
            InvalidAlertError: If the event is malformed
        """
        now = now or utcnow()

        state = event.get('state') or event.get('status')
        if state is not None and state not in AlertState.ALL:
            raise InvalidAlertError(f"Invalid alert state: {state!r}")

        try:
            starts_at = parse_timestamp(event.get('startsAt'))
            ends_at = parse_timestamp(event.get('endsAt'))
        except ValueError as e:
            raise InvalidAlertError(str(e))

        if starts_at is None:
            starts_at = min(now, ends_at) if ends_at is not None else now

        timeout = False
        if ends_at is None:
            if state == AlertState.RESOLVED:
                ends_at = now
            else:
                ends_at = now + timedelta(seconds=resolve_timeout)
                timeout = True

        if state == AlertState.RESOLVED and starts_at > ends_at:
            # sender clock skew
            starts_at = ends_at

        return cls(
            labels=event.get('labels') or {},
            annotations=event.get('annotations') or {},
            starts_at=starts_at,
            ends_at=ends_at,
            generator_url=event.get('generatorURL') or '',
            updated_at=now,
            timeout=timeout,
        )

    def to_dict(self, now: Optional[datetime] = None) -> Dict:
        """Convert to the wire/storage representation"""
        return {
            'fingerprint': self.fingerprint,
            'status': self.status(now),
            'labels': dict(self.labels),
            'annotations': dict(self.annotations),
            'startsAt': self.starts_at.isoformat(),
            'endsAt': self.ends_at.isoformat() if self.ends_at else None,
            'updatedAt': self.updated_at.isoformat() if self.updated_at else None,
            'generatorURL': self.generator_url,
            'timeout': self.timeout,
        }

    @classmethod
    def from_dict(cls, data: Dict) -> 'Alert':
        """Create Alert from its wire/storage representation"""
        return cls(
            labels=data['labels'],
            annotations=data.get('annotations') or {},
            starts_at=parse_timestamp(data['startsAt']),
            ends_at=parse_timestamp(data.get('endsAt')),
            updated_at=parse_timestamp(data.get('updatedAt')),
            generator_url=data.get('generatorURL') or '',
            timeout=bool(data.get('timeout', False)),
        )


def common_items(dicts: List[Dict[str, str]]) -> Dict[str, str]:
    """Key/value pairs shared by every dict in the list"""
    if not dicts:
        return {}
    common = dict(dicts[0])
    for d in dicts[1:]:
        common = {k: v for k, v in common.items() if d.get(k) == v}
    return common


@dataclass
class Notification:
    """One batch of alerts sent to a receiver for an aggregation group"""
    receiver: str
    group_key: str
    group_labels: Dict[str, str]
    alerts: List[Alert]
    created_at: datetime = field(default_factory=utcnow)

    @property
    def common_labels(self) -> Dict[str, str]:
        return common_items([a.labels for a in self.alerts])

    @property
    def common_annotations(self) -> Dict[str, str]:
        return common_items([a.annotations for a in self.alerts])

    @property
    def status(self) -> str:
        if any(not a.resolved(self.created_at) for a in self.alerts):
            return AlertState.FIRING
        return AlertState.RESOLVED

    def firing(self) -> List[Alert]:
        return [a for a in self.alerts if not a.resolved(self.created_at)]

    def resolved(self) -> List[Alert]:
        return [a for a in self.alerts if a.resolved(self.created_at)]

    def with_alerts(self, alerts: List[Alert]) -> 'Notification':
        """Copy of this notification carrying a subset of its alerts"""
        return replace(self, alerts=list(alerts))

    def to_dict(self, external_url: str = '', truncated: int = 0) -> Dict:
        """Render the webhook (version 4) payload"""
        return {
            'version': '4',
            'groupKey': self.group_key,
            'truncatedAlerts': truncated,
            'status': self.status,
            'receiver': self.receiver,
            'groupLabels': dict(self.group_labels),
            'commonLabels': self.common_labels,
            'commonAnnotations': self.common_annotations,
            'externalURL': external_url,
            'alerts': [a.to_dict(self.created_at) for a in self.alerts],
        }
