"""
SQLAlchemy models for the Based-or-Biased hosted row store.
"""

from sqlalchemy import Column, Float, Index, JSON, String
from sqlalchemy.orm import declarative_base

Base = declarative_base()


class KVEntry(Base):
    """One key-value record (OAuth state, current access token)."""
    __tablename__ = "kv_entries"

    key = Column(String(255), primary_key=True)
    value = Column(JSON, nullable=False)
    expires_at = Column(Float)  # unix seconds; NULL never expires

    __table_args__ = (
        Index("idx_kv_entries_expires_at", "expires_at"),
    )

    def __repr__(self):
        return f"<KVEntry(key={self.key}, expires_at={self.expires_at})>"
