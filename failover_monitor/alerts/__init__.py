"""Alert formatting and webhook delivery."""

from failover_monitor.alerts.dispatcher import Alert, AlertDispatcher, AlertKind, build_alert, format_alert_message
from failover_monitor.alerts.transport import HttpxNotificationTransport, NotificationTransport

__all__ = [
    "Alert",
    "AlertDispatcher",
    "AlertKind",
    "HttpxNotificationTransport",
    "NotificationTransport",
    "build_alert",
    "format_alert_message",
]
