"""
Storage backends for alert snapshots and the notification log.
"""

from alert_router.alerts.storage.base_storage import BaseStorage, NotificationRecord

__all__ = ['BaseStorage', 'NotificationRecord']
