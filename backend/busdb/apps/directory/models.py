# backend/busdb/apps/directory/models.py

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import JSON, Column, DateTime, Index, String

from busdb.database import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Document(Base):
    """
    One directory record stored as a JSON document.

    Every entity type (institutions, administrators, guardians, students,
    drivers, vehicles) shares this table; `collection` separates them and
    `key` is the entity's canonical key (RUT, plate or institution id).
    The composite primary key is what makes `SqlDocumentStore.create`
    an atomic insert-if-absent.
    """

    __tablename__ = "documents"
    __table_args__ = (
        Index("idx_documents_collection_updated", "collection", "updated_at"),
    )

    collection = Column(String(64), primary_key=True)
    key = Column(String(128), primary_key=True)

    body = Column(JSON, nullable=False)

    created_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=_utcnow,
    )
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=_utcnow,
        onupdate=_utcnow,
    )

    def __repr__(self) -> str:
        return f"<Document {self.collection}/{self.key}>"
