"""Alert event database model"""
from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, Text
from sqlalchemy.orm import relationship
from signal_scanner.core.timeframes import utc_now
from signal_scanner.db.database import Base


class AlertEvent(Base):
    """
    Append-only audit record of one alert dispatch attempt.
    """
    __tablename__ = "alert_events"

    id = Column(Integer, primary_key=True, index=True)
    signal_id = Column(Integer, ForeignKey("signals.id"), nullable=False, index=True)
    sent_at = Column(DateTime, nullable=False, default=utc_now)
    channel = Column(String(10), nullable=False, default="EMAIL")
    recipient = Column(String(255), nullable=False)
    subject = Column(String(500), nullable=False)
    status = Column(String(20), nullable=False)  # "sent" or "error"
    error = Column(Text, nullable=True)

    signal = relationship("Signal", back_populates="alert_events")

    def __repr__(self):
        return f"<AlertEvent(id={self.id}, signal={self.signal_id}, status={self.status})>"
