"""
Alert routing: grouping, inhibition and notification of alerts.
"""

from alert_router.alerts.models import Alert, AlertState, Notification
from alert_router.alerts.routes import Route
from alert_router.alerts.inhibit import InhibitRule, Inhibitor
from alert_router.alerts.alert_store import AlertStore
from alert_router.alerts.dispatcher import Dispatcher
from alert_router.alerts.notifier import Notifier, Receiver

__all__ = [
    'Alert',
    'AlertState',
    'Notification',
    'Route',
    'InhibitRule',
    'Inhibitor',
    'AlertStore',
    'Dispatcher',
    'Notifier',
    'Receiver',
]
