"""Alert channels"""
from signal_scanner.notifications.email_service import EmailAlertService, format_alert_email, safe_string
from signal_scanner.notifications.notification_service import Alerter, AlertResult

__all__ = ["Alerter", "AlertResult", "EmailAlertService", "format_alert_email", "safe_string"]
