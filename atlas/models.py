# atlas/models.py
from sqlalchemy import Column, Integer, String, Text, DateTime, JSON
from sqlalchemy.sql import func
from atlas.database import Base

class Document(Base):
    """SQLAlchemy model for storing document metadata."""
    __tablename__ = "documents"
    # Never reuse ids of deleted rows on SQLite.
    __table_args__ = {"sqlite_autoincrement": True}

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    title = Column(String, nullable=False)
    description = Column(Text, nullable=False, default="")
    date = Column(String(10), nullable=False) # YYYY-MM-DD
    type = Column(String(32), nullable=False)
    file = Column(String, unique=True, nullable=False) # Blob Store key
    url = Column(String, nullable=False)


class AuditEvent(Base):
    """Append-only record of a visit, download or admin action."""
    __tablename__ = "audit_events"

    id = Column(Integer, primary_key=True, index=True)
    timestamp = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    ip_address = Column(String(64), nullable=True)
    path = Column(String, nullable=True)
    action = Column(String(64), nullable=False, index=True)
    file_name = Column(String, nullable=True)
    extra = Column(JSON, nullable=True)
