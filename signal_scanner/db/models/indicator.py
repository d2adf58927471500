"""Indicator database model"""
from sqlalchemy import Column, Integer, String, Float, DateTime, ForeignKey, UniqueConstraint
from signal_scanner.core.strategy.technical_utils import INDICATOR_FIELDS, VENDOR_INDICATOR_FIELDS
from signal_scanner.db.database import Base

__all__ = ["Indicator", "INDICATOR_FIELDS", "VENDOR_INDICATOR_FIELDS"]


class Indicator(Base):
    """
    Derived indicator values for one bar. Any column may be null while the
    vendor response is partial.
    """
    __tablename__ = "indicators"
    __table_args__ = (
        UniqueConstraint("instrument_id", "timeframe", "datetime_utc", name="indicators_unique_idx"),
    )

    id = Column(Integer, primary_key=True, index=True)
    instrument_id = Column(Integer, ForeignKey("instruments.id"), nullable=False)
    timeframe = Column(String(5), nullable=False)
    datetime_utc = Column(DateTime, nullable=False, index=True)
    ema9 = Column(Float, nullable=True)
    ema21 = Column(Float, nullable=True)
    ema55 = Column(Float, nullable=True)
    ema200 = Column(Float, nullable=True)
    bb_upper = Column(Float, nullable=True)
    bb_middle = Column(Float, nullable=True)
    bb_lower = Column(Float, nullable=True)
    bb_width = Column(Float, nullable=True)
    macd = Column(Float, nullable=True)
    macd_signal = Column(Float, nullable=True)
    macd_hist = Column(Float, nullable=True)
    atr = Column(Float, nullable=True)
    adx = Column(Float, nullable=True)

    def __repr__(self):
        return f"<Indicator(instrument={self.instrument_id}, tf={self.timeframe}, at={self.datetime_utc})>"
