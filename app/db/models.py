"""
Database Models - SQLAlchemy ORM models with strict typing.

Every entity lives in one hierarchical document table. A row's `path` is its
address in the tree (e.g. `tickets/{userId}/{ticketKey}`), `parent` is the
collection it belongs to, and `version` is bumped on every write so callers
can make conditional updates.
"""

from datetime import UTC, datetime
from typing import Any

from sqlalchemy import BigInteger, CheckConstraint, DateTime, Index, String
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


def utc_now() -> datetime:
    """Get current UTC timestamp."""
    return datetime.now(UTC)


class DocumentRecord(Base):
    """
    ORM model for documents table.

    Stores one JSON document per path with an optimistic-concurrency version.
    """

    __tablename__ = "documents"

    path: Mapped[str] = mapped_column(String(512), primary_key=True)
    parent: Mapped[str] = mapped_column(String(512), nullable=False)

    value: Mapped[dict[str, Any]] = mapped_column(JSONB, nullable=False)
    version: Mapped[int] = mapped_column(BigInteger, nullable=False, default=1)

    # Audit timestamps
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now, onupdate=utc_now
    )

    __table_args__ = (
        CheckConstraint("version >= 1", name="ck_documents_version_positive"),
        Index("idx_documents_parent", "parent"),
    )

    def __repr__(self) -> str:
        """String representation for debugging."""
        return f"<DocumentRecord(path={self.path}, version={self.version})>"
