"""Scan run database model"""
from enum import Enum
from sqlalchemy import Column, Integer, String, DateTime, JSON
from signal_scanner.core.timeframes import utc_now
from signal_scanner.db.database import Base


class ScanRunStatus(str, Enum):
    """Scan run status enumeration"""
    RUNNING = "running"
    COMPLETED = "completed"
    COMPLETED_WITH_ERRORS = "completed_with_errors"
    ERROR = "error"


class ScanRun(Base):
    """
    One scheduler cycle. Terminal once ``finished_at`` is set.
    """
    __tablename__ = "scan_runs"

    id = Column(Integer, primary_key=True, index=True)
    timeframe = Column(String(5), nullable=False)
    status = Column(String(40), nullable=False, default=ScanRunStatus.RUNNING.value)
    started_at = Column(DateTime, nullable=False, default=utc_now, index=True)
    finished_at = Column(DateTime, nullable=True)
    credits_used_est = Column(Integer, nullable=True)
    notes = Column(JSON, nullable=True)

    def __repr__(self):
        return f"<ScanRun(id={self.id}, status={self.status})>"
