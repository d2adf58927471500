"""Instrument database model"""
from sqlalchemy import Column, Integer, String, Boolean, DateTime
from signal_scanner.core.timeframes import utc_now
from signal_scanner.db.database import Base


class Instrument(Base):
    """
    Scannable instrument. ``enabled`` gates inclusion in scan cycles.
    """
    __tablename__ = "instruments"

    id = Column(Integer, primary_key=True, index=True)
    canonical_symbol = Column(String(20), nullable=False, unique=True)
    asset_class = Column(String(10), nullable=False)  # FOREX / METAL / CRYPTO
    vendor_symbol = Column(String(40), nullable=False)
    enabled = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, nullable=False, default=utc_now)
    updated_at = Column(DateTime, nullable=False, default=utc_now, onupdate=utc_now)

    def __repr__(self):
        return f"<Instrument(id={self.id}, symbol={self.canonical_symbol}, enabled={self.enabled})>"
