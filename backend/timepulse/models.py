from __future__ import annotations

import datetime as dt

from sqlalchemy import Column, Date, DateTime, Integer, String, Text
from sqlalchemy.orm import declarative_base

Base = declarative_base()


def utcnow() -> dt.datetime:
    return dt.datetime.now(dt.timezone.utc)


ENTRIES_KEY = "entries"
SETTINGS_KEY = "settings"


class StoredBlob(Base):
    """One JSON document of the key-value store (``entries`` or ``settings``)."""

    __tablename__ = "stored_blobs"

    key = Column(String(100), primary_key=True)
    value = Column(Text, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)


class ExportRecord(Base):
    __tablename__ = "exports"

    id = Column(Integer, primary_key=True)
    format = Column(String(10), nullable=False)
    range_start = Column(Date, nullable=True)
    range_end = Column(Date, nullable=True)
    path = Column(String(255), nullable=False)
    checksum = Column(String(128), nullable=False)
    entry_count = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
