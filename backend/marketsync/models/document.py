"""
MarketSync Backend — Document SQLAlchemy Model
================================================

What:  ORM model for the `documents` table, the SQL rendition of a document store.
Why:   One row per (collection, id) keeps the store schemaless like the
       managed store it stands in for, while the composite primary key gives
       us the uniqueness constraint conversation creation depends on.
Who:   Used by SqlDocumentStore; read by Alembic for migrations.

Table Design Rationale:
    - (collection, id) primary key: a document id is unique per collection,
      and inserting an existing key fails atomically (IntegrityError)
    - data: JSON payload, the document body
    - version: incremented on every write; the change feed polls this column
    - created_at / updated_at: UTC, used for iteration order and auditing
"""

from datetime import datetime, timezone
from typing import Any, Dict

from sqlalchemy import JSON, Index, Integer, String, text
from sqlalchemy.dialects.postgresql import JSONB, TIMESTAMP
from sqlalchemy.orm import Mapped, mapped_column

from marketsync.database import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Document(Base):
    """
    A single document in a named collection.

    Lifecycle:
        Created once (explicit or generated id), then merged/appended in place.
        Never deleted by this layer.
    """

    __tablename__ = "documents"

    collection: Mapped[str] = mapped_column(
        String(64),
        primary_key=True,
        comment="Collection name, e.g. users, explore, messages",
    )

    id: Mapped[str] = mapped_column(
        String(255),
        primary_key=True,
        comment="Document id, unique within its collection",
    )

    # JSONB on PostgreSQL, plain JSON elsewhere (SQLite in development)
    data: Mapped[Dict[str, Any]] = mapped_column(
        JSON().with_variant(JSONB(), "postgresql"),
        nullable=False,
        default=dict,
    )

    version: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=1,
        server_default=text("1"),
        comment="Incremented on every write; polled by subscriptions",
    )

    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True),
        nullable=False,
        default=_utcnow,
        server_default=text("CURRENT_TIMESTAMP"),
    )

    updated_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True),
        nullable=False,
        default=_utcnow,
        onupdate=_utcnow,
        server_default=text("CURRENT_TIMESTAMP"),
    )

    # Collection scans come back in creation order
    __table_args__ = (
        Index("idx_documents_collection_created_at", "collection", "created_at"),
    )

    def __repr__(self) -> str:
        return f"<Document(collection='{self.collection}', id='{self.id}', version={self.version})>"
