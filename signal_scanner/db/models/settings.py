"""Runtime settings database model"""
from sqlalchemy import Column, Integer, String, Boolean
from signal_scanner.db.database import Base


class Settings(Base):
    """
    Singleton row of runtime-tunable settings, created with defaults on
    first read.
    """
    __tablename__ = "settings"

    id = Column(Integer, primary_key=True)
    scan_enabled = Column(Boolean, nullable=False, default=False)
    email_enabled = Column(Boolean, nullable=False, default=False)
    alert_to_email = Column(String(255), nullable=True)
    smtp_from = Column(String(255), nullable=True)
    min_score_to_alert = Column(Integer, nullable=False, default=60)
    max_symbols_per_burst = Column(Integer, nullable=False, default=4)
    burst_sleep_ms = Column(Integer, nullable=False, default=1000)
    alert_cooldown_minutes = Column(Integer, nullable=False, default=60)

    def __repr__(self):
        return f"<Settings(scan_enabled={self.scan_enabled}, email_enabled={self.email_enabled})>"
