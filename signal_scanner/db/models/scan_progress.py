"""Scan progress (watermark) database model"""
from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, UniqueConstraint
from signal_scanner.core.timeframes import utc_now
from signal_scanner.db.database import Base


class ScanProgress(Base):
    """
    Last bar fully evaluated per (instrument, timeframe). Only moves forward.
    """
    __tablename__ = "scan_progress"
    __table_args__ = (
        UniqueConstraint("instrument_id", "timeframe", name="scan_progress_unique_idx"),
    )

    id = Column(Integer, primary_key=True, index=True)
    instrument_id = Column(Integer, ForeignKey("instruments.id"), nullable=False)
    timeframe = Column(String(5), nullable=False)
    last_processed_bar_utc = Column(DateTime, nullable=False)
    updated_at = Column(DateTime, nullable=False, default=utc_now, onupdate=utc_now)

    def __repr__(self):
        return f"<ScanProgress(instrument={self.instrument_id}, tf={self.timeframe}, at={self.last_processed_bar_utc})>"
