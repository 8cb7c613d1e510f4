"""Flat key-value document table backing the form engine.

Each row holds one JSON document (``projectTypes``, the version histories
keyed by category and step) plus a ``revision`` counter that is bumped on
every write. Writers pass the revision they read; a mismatch means another
editor session saved in between.
"""

from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, Integer, String, Text

from stageforms.models import db


def _utcnow():
    return datetime.now(timezone.utc)


class KeyValueDocument(db.Model):
    """One JSON document addressed by a string key."""

    __tablename__ = "kv_documents"

    key = Column(String(200), primary_key=True)
    value = Column(Text, nullable=False, default="null")
    revision = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), default=_utcnow)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    def to_dict(self):
        return {
            "key": self.key,
            "value": self.value,
            "revision": self.revision,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }

    def __repr__(self):
        return f"<KeyValueDocument {self.key} rev={self.revision}>"
