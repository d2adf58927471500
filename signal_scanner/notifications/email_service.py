"""Email alert service"""
import logging
import re
from datetime import datetime
from email.mime.text import MIMEText
from typing import Any, Dict, Optional, Tuple

import aiosmtplib
from sqlalchemy.orm import Session

from signal_scanner.core.domain.signal import SignalStatus
from signal_scanner.db.queries import create_alert_event, update_signal_status
from signal_scanner.notifications.notification_service import AlertResult

logger = logging.getLogger(__name__)

LINE_BREAKS = re.compile(r"[\r\n]+")

SUBJECT_MAX = 500
SYMBOL_MAX = 40
VENDOR_SYMBOL_MAX = 60
STRATEGY_MAX = 60
SHORT_FIELD_MAX = 10
REASON_KEY_MAX = 60
REASON_VALUE_MAX = 300


def safe_string(value: Any, max_len: int = 300) -> str:
    """
    Make a value safe to embed in a mail header or body line.

    CR/LF runs become a single space, the result is stripped and truncated
    to ``max_len`` characters.
    """
    text = "" if value is None else str(value)
    return LINE_BREAKS.sub(" ", text).strip()[:max_len]


def _reason_value(value: Any) -> str:
    if isinstance(value, (list, tuple)):
        return ", ".join(str(v) for v in value)
    return str(value)


def _format_detected(value: Optional[datetime]) -> str:
    if value is None:
        return "n/a"
    return value.strftime("%a, %d %b %Y %H:%M:%S UTC")


def format_alert_email(signal: Any, instrument: Any, reasons: Dict[str, Any]) -> Tuple[str, str]:
    """
    Build the subject and plain-text body of a signal alert.

    Args:
        signal: Stored signal (direction, strategy, timeframe, score, detected_at)
        instrument: Instrument (canonical_symbol, vendor_symbol)
        reasons: Reason payload of the signal

    Returns:
        (subject, body)
    """
    subject = safe_string(
        f"[Signal] {signal.direction} {instrument.canonical_symbol} - {signal.strategy} (Score: {signal.score})",
        SUBJECT_MAX,
    )

    reason_lines = "\n".join(
        f"  - {safe_string(key, REASON_KEY_MAX)}: {safe_string(_reason_value(value), REASON_VALUE_MAX)}"
        for key, value in (reasons or {}).items()
    )

    body = (
        "Trading Signal Detected\n"
        "=======================\n"
        "\n"
        f"Symbol: {safe_string(instrument.canonical_symbol, SYMBOL_MAX)} "
        f"({safe_string(instrument.vendor_symbol, VENDOR_SYMBOL_MAX)})\n"
        f"Direction: {safe_string(signal.direction, SHORT_FIELD_MAX)}\n"
        f"Strategy: {safe_string(signal.strategy, STRATEGY_MAX)}\n"
        f"Timeframe: {safe_string(signal.timeframe, SHORT_FIELD_MAX)}\n"
        f"Score: {signal.score}/100\n"
        f"Detected: {_format_detected(signal.detected_at)}\n"
        "\n"
        "Reasoning:\n"
        f"{reason_lines}\n"
        "\n"
        "---\n"
        "Signal Scanner"
    )
    return subject, body


class EmailAlertService:
    """
    Email alerts over SMTP.

    Transport settings come from the environment; recipient and sender may
    be overridden per deployment through the settings row.
    """

    def __init__(
        self,
        server: Optional[str] = None,
        port: Optional[int] = None,
        user: Optional[str] = None,
        password: Optional[str] = None,
        from_email: Optional[str] = None,
        to_email: Optional[str] = None,
        use_ssl: bool = False,
    ):
        """
        Initialize email service.

        Args:
            server: SMTP server
            port: SMTP port
            user: SMTP username
            password: SMTP password
            from_email: Default sender address
            to_email: Default recipient address
            use_ssl: Use an implicit TLS connection
        """
        self.server = server
        self.port = port
        self.user = user
        self.password = password
        self.from_email = from_email
        self.to_email = to_email
        self.use_ssl = use_ssl

    @classmethod
    def from_config(cls, smtp_config) -> "EmailAlertService":
        return cls(
            server=smtp_config.server,
            port=smtp_config.port,
            user=smtp_config.user,
            password=smtp_config.password,
            from_email=smtp_config.from_email,
            to_email=smtp_config.to_email,
            use_ssl=smtp_config.ssl_enabled,
        )

    @property
    def is_configured(self) -> bool:
        return bool(self.server and self.port and self.user and self.password)

    async def _send_email(self, sender: str, recipient: str, subject: str, body: str) -> None:
        """
        Send a plain-text email via SMTP.

        Raises:
            aiosmtplib.SMTPException: Transport failure
        """
        message = MIMEText(body, "plain", "utf-8")
        message["Subject"] = subject
        message["From"] = sender
        message["To"] = recipient

        await aiosmtplib.send(
            message,
            hostname=self.server,
            port=self.port,
            username=self.user,
            password=self.password,
            use_tls=self.use_ssl,
        )

    async def send_signal_alert(
        self,
        db: Session,
        signal: Any,
        instrument: Any,
        reasons: Dict[str, Any],
        settings: Any,
    ) -> AlertResult:
        """
        Email a signal alert and record the outcome.

        Args:
            db: Database session
            signal: Stored signal
            instrument: Signal's instrument
            reasons: Reason payload
            settings: Runtime settings row

        Returns:
            AlertResult; status "skipped" when SMTP or addresses are not configured
        """
        recipient = settings.alert_to_email or self.to_email
        sender = settings.smtp_from or self.from_email

        if not self.is_configured or not recipient or not sender:
            logger.info(
                f"Email alert skipped for {instrument.canonical_symbol} - SMTP not configured",
                extra={'component': 'Alerter', 'symbol': instrument.canonical_symbol}
            )
            return AlertResult(status="skipped")

        subject, body = format_alert_email(signal, instrument, reasons)

        try:
            await self._send_email(sender, recipient, subject, body)
        except (aiosmtplib.SMTPException, OSError) as e:
            create_alert_event(db, signal.id, recipient, subject, status="error", error=str(e))
            logger.error(
                f"Alert send failed for {instrument.canonical_symbol}: {e}",
                extra={'component': 'Alerter', 'symbol': instrument.canonical_symbol}
            )
            return AlertResult(status="error", recipient=recipient, subject=subject, error=str(e))

        create_alert_event(db, signal.id, recipient, subject, status="sent")
        update_signal_status(db, signal.id, SignalStatus.ALERTED)
        logger.info(
            f"Alert sent for {instrument.canonical_symbol} {signal.direction}",
            extra={'component': 'Alerter', 'symbol': instrument.canonical_symbol}
        )
        return AlertResult(status="sent", recipient=recipient, subject=subject)
