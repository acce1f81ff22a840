from datetime import datetime

from sqlalchemy import Column, DateTime, String, Text

from .database import Base


class StateRecord(Base):
    """One JSON document per fixed state key (fs_invoices, fs_transactions, fs_rates)."""
    __tablename__ = "fs_state"

    key = Column(String(64), primary_key=True)
    value = Column(Text, nullable=False)
    updated_at = Column(DateTime, default=datetime.now, onupdate=datetime.now)
