"""SQLAlchemy models."""
from sqlalchemy import JSON, Column, DateTime, String
from sqlalchemy.sql import func

from .config import settings
from .database import Base


class KVEntry(Base):
    """One JSON document stored under a string key."""
    __tablename__ = settings.KV_TABLE_NAME

    key = Column(String, primary_key=True)
    value = Column(JSON, nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
