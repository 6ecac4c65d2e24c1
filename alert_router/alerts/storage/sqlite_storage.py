"""
SQLite storage backend for alert snapshots and the notification log.
"""

import json
import logging
import sqlite3
import threading
from datetime import datetime, timedelta
from pathlib import Path
from typing import Dict, List, Optional

from alert_router.alerts.models import Alert
from alert_router.alerts.storage.base_storage import BaseStorage, NotificationRecord
from alert_router.utils.helpers import utcnow

logger = logging.getLogger(__name__)


class SQLiteStorage(BaseStorage):
    """SQLite implementation of router storage"""

    def __init__(self, config: Dict):
        """
        Initialize SQLite storage.

        Args:
            config: Storage configuration dict with 'sqlite_path' key
        """
        self.db_path = config.get('sqlite_path', './data/alert_router.db')
        self.retention_days = config.get('retention_days', 5)

        # Ensure directory exists
        if self.db_path != ':memory:':
            Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)

        # Notifier workers and the maintenance loop share the connection
        self._lock = threading.Lock()

        # Initialize database
        self.conn = None
        self._init_db()

        logger.info(f"Initialized SQLite storage at {self.db_path}")

    def _init_db(self):
        """Create database tables and indexes"""
        self.conn = sqlite3.connect(self.db_path, check_same_thread=False)
        self.conn.row_factory = sqlite3.Row

        # Enable WAL mode for better concurrency
        self.conn.execute("PRAGMA journal_mode=WAL")

        self.conn.execute("""
            CREATE TABLE IF NOT EXISTS alerts (
                fingerprint VARCHAR(32) PRIMARY KEY,
                alertname VARCHAR(255) NOT NULL,
                labels TEXT NOT NULL,
                annotations TEXT,
                starts_at TIMESTAMP NOT NULL,
                ends_at TIMESTAMP,
                updated_at TIMESTAMP NOT NULL,
                generator_url TEXT,
                timeout INTEGER DEFAULT 0,
                created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            )
        """)

        self.conn.execute("""
            CREATE TABLE IF NOT EXISTS notification_log (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                group_key TEXT NOT NULL,
                receiver VARCHAR(255) NOT NULL,
                integration VARCHAR(64) NOT NULL,
                status VARCHAR(20) NOT NULL,
                firing TEXT,
                resolved TEXT,
                sent_at TIMESTAMP NOT NULL,
                success INTEGER NOT NULL,
                attempts INTEGER DEFAULT 0,
                error TEXT
            )
        """)

        # Create indexes
        self.conn.execute(
            "CREATE INDEX IF NOT EXISTS idx_alertname ON alerts(alertname)"
        )
        self.conn.execute(
            "CREATE INDEX IF NOT EXISTS idx_ends_at ON alerts(ends_at)"
        )
        self.conn.execute(
            "CREATE INDEX IF NOT EXISTS idx_receiver ON notification_log(receiver)"
        )
        self.conn.execute(
            "CREATE INDEX IF NOT EXISTS idx_sent_at ON notification_log(sent_at)"
        )

        self.conn.commit()

    def save_alert(self, alert: Alert) -> None:
        """Insert or replace an alert snapshot"""
        data = alert.to_dict()
        try:
            with self._lock:
                self.conn.execute("""
                    INSERT INTO alerts (
                        fingerprint, alertname, labels, annotations,
                        starts_at, ends_at, updated_at, generator_url, timeout
                    ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                    ON CONFLICT(fingerprint) DO UPDATE SET
                        annotations = excluded.annotations,
                        starts_at = excluded.starts_at,
                        ends_at = excluded.ends_at,
                        updated_at = excluded.updated_at,
                        generator_url = excluded.generator_url,
                        timeout = excluded.timeout
                """, (
                    data['fingerprint'],
                    alert.name,
                    json.dumps(data['labels'], sort_keys=True),
                    json.dumps(data['annotations'], sort_keys=True),
                    data['startsAt'],
                    data['endsAt'],
                    data['updatedAt'],
                    data['generatorURL'],
                    1 if data['timeout'] else 0,
                ))
                self.conn.commit()
            logger.debug(f"Saved alert: {alert.fingerprint}")

        except sqlite3.Error as e:
            logger.error(f"Failed to save alert {alert.fingerprint}: {e}")
            self.conn.rollback()
            raise

    def _row_to_alert(self, row: sqlite3.Row) -> Alert:
        return Alert.from_dict({
            'labels': json.loads(row['labels']),
            'annotations': json.loads(row['annotations'] or '{}'),
            'startsAt': row['starts_at'],
            'endsAt': row['ends_at'],
            'updatedAt': row['updated_at'],
            'generatorURL': row['generator_url'] or '',
            'timeout': bool(row['timeout']),
        })

    def get_alert(self, fingerprint: str) -> Optional[Alert]:
        """Retrieve alert by fingerprint"""
        try:
            with self._lock:
                row = self.conn.execute(
                    "SELECT * FROM alerts WHERE fingerprint = ?", (fingerprint,)
                ).fetchone()
            if row:
                return self._row_to_alert(row)
            return None

        except sqlite3.Error as e:
            logger.error(f"Failed to get alert {fingerprint}: {e}")
            return None

    def get_active_alerts(self, now: Optional[datetime] = None) -> List[Alert]:
        """Get all alerts that have not reached their end time"""
        now = now or utcnow()
        try:
            with self._lock:
                rows = self.conn.execute("""
                    SELECT * FROM alerts
                    WHERE ends_at IS NULL OR ends_at > ?
                    ORDER BY starts_at DESC
                """, (now.isoformat(),)).fetchall()

            return [self._row_to_alert(row) for row in rows]

        except sqlite3.Error as e:
            logger.error(f"Failed to get active alerts: {e}")
            return []

    def get_alerts_by_name(self, alertname: str, limit: int = 100) -> List[Alert]:
        """Get recent alerts with the given alertname"""
        try:
            with self._lock:
                rows = self.conn.execute("""
                    SELECT * FROM alerts
                    WHERE alertname = ?
                    ORDER BY starts_at DESC
                    LIMIT ?
                """, (alertname, limit)).fetchall()

            return [self._row_to_alert(row) for row in rows]

        except sqlite3.Error as e:
            logger.error(f"Failed to get alerts for {alertname}: {e}")
            return []

    def record_notification(self, record: NotificationRecord) -> None:
        """Append to the notification log"""
        data = record.to_dict()
        try:
            with self._lock:
                self.conn.execute("""
                    INSERT INTO notification_log (
                        group_key, receiver, integration, status, firing,
                        resolved, sent_at, success, attempts, error
                    ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """, (
                    data['group_key'],
                    data['receiver'],
                    data['integration'],
                    data['status'],
                    data['firing'],
                    data['resolved'],
                    data['sent_at'],
                    data['success'],
                    data['attempts'],
                    data['error'],
                ))
                self.conn.commit()

        except sqlite3.Error as e:
            logger.error(f"Failed to record notification for {record.group_key}: {e}")
            self.conn.rollback()
            raise

    def get_notifications(self, receiver: Optional[str] = None,
                          limit: int = 100) -> List[NotificationRecord]:
        """Get recent notification log entries, newest first"""
        try:
            with self._lock:
                if receiver:
                    rows = self.conn.execute("""
                        SELECT * FROM notification_log
                        WHERE receiver = ?
                        ORDER BY sent_at DESC, id DESC
                        LIMIT ?
                    """, (receiver, limit)).fetchall()
                else:
                    rows = self.conn.execute("""
                        SELECT * FROM notification_log
                        ORDER BY sent_at DESC, id DESC
                        LIMIT ?
                    """, (limit,)).fetchall()

            return [NotificationRecord.from_dict(dict(row)) for row in rows]

        except sqlite3.Error as e:
            logger.error(f"Failed to get notification log: {e}")
            return []

    def cleanup_old_alerts(self, days: int) -> int:
        """Delete resolved alerts and log entries older than specified days"""
        try:
            cutoff = (utcnow() - timedelta(days=days)).isoformat()

            with self._lock:
                alerts = self.conn.execute("""
                    DELETE FROM alerts
                    WHERE ends_at IS NOT NULL AND ends_at < ?
                """, (cutoff,)).rowcount

                entries = self.conn.execute("""
                    DELETE FROM notification_log
                    WHERE sent_at < ?
                """, (cutoff,)).rowcount
                self.conn.commit()

            deleted_count = alerts + entries
            if deleted_count > 0:
                logger.info(f"Cleaned up {alerts} old alerts and {entries} log entries (>{days} days)")

            return deleted_count

        except sqlite3.Error as e:
            logger.error(f"Failed to cleanup old alerts: {e}")
            self.conn.rollback()
            return 0

    def close(self) -> None:
        """Close database connection"""
        if self.conn:
            try:
                self.conn.close()
                logger.debug("Closed SQLite connection")
            except sqlite3.Error as e:
                logger.error(f"Error closing SQLite connection: {e}")
