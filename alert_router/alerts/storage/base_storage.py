"""
Base storage interface for alert snapshots and the notification log.
"""

import json
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional

from alert_router.alerts.models import Alert
from alert_router.utils.helpers import parse_timestamp


@dataclass
class NotificationRecord:
    """One delivery attempt of a notification to an integration"""
    group_key: str
    receiver: str
    integration: str
    status: str
    sent_at: datetime
    success: bool
    firing: List[str] = field(default_factory=list)
    resolved: List[str] = field(default_factory=list)
    attempts: int = 0
    error: Optional[str] = None

    def to_dict(self) -> Dict:
        """Convert to dictionary for storage"""
        return {
            'group_key': self.group_key,
            'receiver': self.receiver,
            'integration': self.integration,
            'status': self.status,
            'sent_at': self.sent_at.isoformat(),
            'success': 1 if self.success else 0,
            'firing': json.dumps(self.firing),
            'resolved': json.dumps(self.resolved),
            'attempts': self.attempts,
            'error': self.error,
        }

    @classmethod
    def from_dict(cls, data: Dict) -> 'NotificationRecord':
        """Create NotificationRecord from dictionary"""
        return cls(
            group_key=data['group_key'],
            receiver=data['receiver'],
            integration=data['integration'],
            status=data['status'],
            sent_at=parse_timestamp(data['sent_at']),
            success=bool(data['success']),
            firing=json.loads(data['firing']) if isinstance(data['firing'], str) else data['firing'],
            resolved=json.loads(data['resolved']) if isinstance(data['resolved'], str) else data['resolved'],
            attempts=data.get('attempts', 0),
            error=data.get('error'),
        )


class BaseStorage(ABC):
    """Abstract base class for storage backends"""

    retention_days: int = 5

    @abstractmethod
    def save_alert(self, alert: Alert) -> None:
        """
        Insert or replace the snapshot of an alert.

        Args:
            alert: Alert instance to save
        """
        pass

    @abstractmethod
    def get_alert(self, fingerprint: str) -> Optional[Alert]:
        """
        Retrieve alert by fingerprint.

        Returns:
            Alert instance or None if not found
        """
        pass

    @abstractmethod
    def get_active_alerts(self, now: datetime) -> List[Alert]:
        """
        Get all alerts still firing at the given time.

        Returns:
            List of firing Alert instances
        """
        pass

    @abstractmethod
    def get_alerts_by_name(self, alertname: str, limit: int = 100) -> List[Alert]:
        """
        Get recent alerts with the given alertname.

        Args:
            alertname: Value of the alertname label
            limit: Maximum number of alerts to return
        """
        pass

    @abstractmethod
    def record_notification(self, record: NotificationRecord) -> None:
        """
        Append an entry to the notification log.
        """
        pass

    @abstractmethod
    def get_notifications(self, receiver: Optional[str] = None,
                          limit: int = 100) -> List[NotificationRecord]:
        """
        Get recent notification log entries, newest first.
        """
        pass

    @abstractmethod
    def cleanup_old_alerts(self, days: int) -> int:
        """
        Delete resolved alerts and log entries older than specified days.

        Returns:
            Number of rows deleted
        """
        pass

    @abstractmethod
    def close(self) -> None:
        """Close storage connection and cleanup resources"""
        pass
