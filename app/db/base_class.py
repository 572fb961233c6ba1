from datetime import datetime, timezone
from sqlalchemy.orm import declarative_base
from sqlalchemy import Column, String, DateTime
import uuid

# Create base class for SQLAlchemy models
Base = declarative_base()


def utcnow() -> datetime:
    """Naive UTC timestamp, the form SQLite round-trips unchanged"""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class BaseModel(Base):
    """Base model class with common fields for all SQLAlchemy models"""
    __abstract__ = True

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)
