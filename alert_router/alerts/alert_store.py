"""
In-memory index of current alerts keyed by fingerprint.
"""

import logging
import threading
from collections import defaultdict
from datetime import datetime, timedelta
from typing import Dict, List, Optional

from alert_router.alerts.models import Alert, AlertState
from alert_router.utils.helpers import utcnow

logger = logging.getLogger(__name__)


class AlertStore:
    """Thread-safe store of the latest instance of every known alert"""

    def __init__(self):
        self._alerts: Dict[str, Alert] = {}
        self._lock = threading.Lock()

    def put(self, alert: Alert) -> Alert:
        """
        Insert or supersede an alert.

        Returns:
            The stored instance, merged with any previous one
        """
        with self._lock:
            existing = self._alerts.get(alert.fingerprint)
            if existing is not None:
                alert = existing.merge(alert)
            self._alerts[alert.fingerprint] = alert
            return alert

    def get(self, fingerprint: str) -> Optional[Alert]:
        with self._lock:
            return self._alerts.get(fingerprint)

    def list(self) -> List[Alert]:
        with self._lock:
            return list(self._alerts.values())

    def firing(self, now: Optional[datetime] = None) -> List[Alert]:
        now = now or utcnow()
        return [a for a in self.list() if not a.resolved(now)]

    def resolved(self, now: Optional[datetime] = None) -> List[Alert]:
        now = now or utcnow()
        return [a for a in self.list() if a.resolved(now)]

    def gc(self, retention: float, now: Optional[datetime] = None) -> int:
        """
        Drop alerts that have been resolved for longer than the retention.

        Args:
            retention: Seconds a resolved alert is kept
            now: Reference time

        Returns:
            Number of alerts removed
        """
        now = now or utcnow()
        cutoff = now - timedelta(seconds=retention)
        with self._lock:
            expired = [
                fp for fp, alert in self._alerts.items()
                if alert.ends_at is not None and alert.ends_at <= cutoff
            ]
            for fp in expired:
                del self._alerts[fp]

        if expired:
            logger.debug(f"Garbage collected {len(expired)} resolved alerts")
        return len(expired)

    def counts(self, now: Optional[datetime] = None) -> Dict[str, int]:
        """Alert counts by state"""
        now = now or utcnow()
        counts = defaultdict(int)
        for state in AlertState.ALL:
            counts[state] = 0
        for alert in self.list():
            counts[alert.status(now)] += 1
        return dict(counts)

    def __len__(self):
        with self._lock:
            return len(self._alerts)
