"""Alerter protocol"""
from dataclasses import dataclass
from typing import Any, Dict, Optional, Protocol

from sqlalchemy.orm import Session


@dataclass
class AlertResult:
    """
    Outcome of one alert dispatch.

    Attributes:
        status: "sent", "error" or "skipped"
        recipient: Destination address (None when skipped)
        subject: Sanitized subject line
        error: Transport error detail
    """
    status: str
    recipient: Optional[str] = None
    subject: Optional[str] = None
    error: Optional[str] = None

    @property
    def sent(self) -> bool:
        return self.status == "sent"


class Alerter(Protocol):
    """Protocol for signal alert channels"""

    async def send_signal_alert(
        self,
        db: Session,
        signal: Any,
        instrument: Any,
        reasons: Dict[str, Any],
        settings: Any,
    ) -> AlertResult:
        """
        Dispatch an alert for a stored signal.

        On success the signal becomes ALERTED and a sent AlertEvent is
        recorded; on failure an error AlertEvent is recorded and the signal
        status is left unchanged. Never raises for transport failures.
        """
        ...
