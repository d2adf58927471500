"""Signal database model"""
from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, JSON, UniqueConstraint
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import relationship
from signal_scanner.core.domain.signal import SignalStatus
from signal_scanner.core.timeframes import utc_now
from signal_scanner.db.database import Base


class Signal(Base):
    """
    Signal model representing a detected strategy setup.

    At most one row exists per (instrument, timeframe, strategy, direction,
    candle); re-detection refreshes score/reason/detected_at in place.
    """
    __tablename__ = "signals"
    __table_args__ = (
        UniqueConstraint(
            "instrument_id", "timeframe", "strategy", "direction", "candle_datetime_utc",
            name="signals_unique_idx",
        ),
    )

    id = Column(Integer, primary_key=True, index=True)
    instrument_id = Column(Integer, ForeignKey("instruments.id"), nullable=False, index=True)
    timeframe = Column(String(5), nullable=False)
    strategy = Column(String(30), nullable=False)
    direction = Column(String(5), nullable=False)  # "LONG" or "SHORT"
    detected_at = Column(DateTime, nullable=False, default=utc_now, index=True)
    candle_datetime_utc = Column(DateTime, nullable=False)
    score = Column(Integer, nullable=False)
    reason_json = Column(JSON().with_variant(JSONB(), "postgresql"), nullable=True)
    status = Column(String(10), nullable=False, default=SignalStatus.NEW.value, index=True)

    # Relationships
    instrument = relationship("Instrument")
    alert_events = relationship("AlertEvent", back_populates="signal")

    def __repr__(self):
        return f"<Signal(id={self.id}, strategy={self.strategy}, direction={self.direction}, status={self.status})>"
