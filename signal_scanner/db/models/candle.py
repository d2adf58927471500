"""Candle database model"""
from sqlalchemy import Column, Integer, String, Float, DateTime, ForeignKey, UniqueConstraint
from signal_scanner.db.database import Base


class Candle(Base):
    """
    One OHLCV bar. The most recent bar may still be forming and is
    overwritten by later ingests until its window has elapsed.
    """
    __tablename__ = "candles"
    __table_args__ = (
        UniqueConstraint("instrument_id", "timeframe", "datetime_utc", name="candles_unique_idx"),
    )

    id = Column(Integer, primary_key=True, index=True)
    instrument_id = Column(Integer, ForeignKey("instruments.id"), nullable=False)
    timeframe = Column(String(5), nullable=False)
    datetime_utc = Column(DateTime, nullable=False, index=True)
    open = Column(Float, nullable=False)
    high = Column(Float, nullable=False)
    low = Column(Float, nullable=False)
    close = Column(Float, nullable=False)
    volume = Column(Float, nullable=True)
    source = Column(String(20), nullable=False, default="twelvedata")

    def __repr__(self):
        return f"<Candle(instrument={self.instrument_id}, tf={self.timeframe}, at={self.datetime_utc})>"
