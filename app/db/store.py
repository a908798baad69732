"""
Document Store - Persistence gateway over a hierarchical key-value tree.

Paths are slash-separated segments:
    tickets/{userId}/{ticketKey}
    accessKeys/{keyId}
    eventDetails
    userProfiles/{userId}

Every document carries a version that increases on each write.
`conditional_update` only succeeds when the caller's version is still current,
which is the single primitive the redemption and scan workflows rely on for
exactly-once transitions.
"""

import secrets
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any, Protocol

from sqlalchemy import delete, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from structlog import get_logger

from app.db.models import DocumentRecord, utc_now
from app.exceptions import TransportError
from app.observability import metrics

logger = get_logger(__name__)


@dataclass(frozen=True)
class Document:
    """A stored value together with its address and version."""

    path: str
    value: dict[str, Any]
    version: int

    @property
    def key(self) -> str:
        """Last path segment."""
        return self.path.rsplit("/", 1)[-1]

    @property
    def segments(self) -> list[str]:
        return self.path.split("/")


def join_path(*segments: str) -> str:
    """
    Build a store path from segments.

    Raises:
        ValueError: A segment is empty or contains a slash
    """
    for segment in segments:
        if not segment or "/" in segment:
            raise ValueError(f"Invalid path segment: {segment!r}")
    return "/".join(segments)


def parent_of(path: str) -> str:
    """Collection path a document belongs to ("" for top-level documents)."""
    if "/" not in path:
        return ""
    return path.rsplit("/", 1)[0]


def new_child_key() -> str:
    """Generate a unique, time-ordered child key."""
    return f"{time.time_ns():016x}{secrets.token_hex(4)}"


def format_timestamp(value: datetime) -> str:
    """Encode a datetime for storage (ISO 8601, UTC)."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return value.astimezone(UTC).isoformat()


def parse_timestamp(value: Any) -> datetime | None:
    """
    Decode a stored timestamp.

    Empty values decode to None. Naive values are treated as UTC, and a bare
    date (as typed into an expiry field) means midnight UTC of that day.
    """
    if value in (None, ""):
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        text = str(value).replace("Z", "+00:00")
        parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


class DocumentStore(Protocol):
    """Persistence gateway consumed by the ticketing services."""

    async def get(self, path: str) -> Document | None:
        """Read one document, or None when absent."""
        ...

    async def put(self, path: str, value: dict[str, Any]) -> Document:
        """Unconditionally create or replace a document."""
        ...

    async def create(self, path: str, value: dict[str, Any]) -> bool:
        """Create a document only if the path is free. False when it already exists."""
        ...

    async def conditional_update(
        self, path: str, expected_version: int, value: dict[str, Any]
    ) -> bool:
        """Replace a document only if its version still matches. False on conflict."""
        ...

    async def append(self, collection: str, value: dict[str, Any]) -> str:
        """Add a child with a generated key and return that key."""
        ...

    async def delete(self, path: str) -> bool:
        """Remove a document. False when it did not exist."""
        ...

    async def list_children(self, collection: str) -> list[Document]:
        """Direct children of a collection, ordered by path."""
        ...

    async def list_descendants(self, prefix: str) -> list[Document]:
        """Every document below a path, ordered by path."""
        ...


class SqlDocumentStore:
    """DocumentStore backed by the PostgreSQL `documents` table."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize store with database session."""
        self.session = session

    @asynccontextmanager
    async def _operation(self, name: str, path: str) -> AsyncIterator[None]:
        """Time a store call and turn driver failures into TransportError."""
        start = time.perf_counter()
        try:
            yield
        except (SQLAlchemyError, OSError) as exc:
            metrics.record_store_operation(name, False, time.perf_counter() - start)
            logger.error("document_store_operation_failed", operation=name, path=path, error=str(exc))
            await self.session.rollback()
            raise TransportError(name, str(exc)) from exc
        metrics.record_store_operation(name, True, time.perf_counter() - start)

    async def get(self, path: str) -> Document | None:
        async with self._operation("get", path):
            stmt = select(DocumentRecord).where(DocumentRecord.path == path)
            result = await self.session.execute(stmt)
            record = result.scalar_one_or_none()
        if record is None:
            return None
        return Document(path=record.path, value=dict(record.value), version=record.version)

    async def put(self, path: str, value: dict[str, Any]) -> Document:
        async with self._operation("put", path):
            now = utc_now()
            stmt = pg_insert(DocumentRecord).values(
                path=path,
                parent=parent_of(path),
                value=value,
                version=1,
                created_at=now,
                updated_at=now,
            )
            stmt = stmt.on_conflict_do_update(
                index_elements=[DocumentRecord.path],
                set_={
                    "value": stmt.excluded.value,
                    "version": DocumentRecord.version + 1,
                    "updated_at": now,
                },
            ).returning(DocumentRecord.version)
            result = await self.session.execute(stmt)
            version = result.scalar_one()
            await self.session.commit()
        return Document(path=path, value=dict(value), version=version)

    async def create(self, path: str, value: dict[str, Any]) -> bool:
        async with self._operation("create", path):
            now = utc_now()
            stmt = (
                pg_insert(DocumentRecord)
                .values(
                    path=path,
                    parent=parent_of(path),
                    value=value,
                    version=1,
                    created_at=now,
                    updated_at=now,
                )
                .on_conflict_do_nothing(index_elements=[DocumentRecord.path])
                .returning(DocumentRecord.path)
            )
            result = await self.session.execute(stmt)
            created = result.scalar_one_or_none() is not None
            await self.session.commit()
        return created

    async def conditional_update(
        self, path: str, expected_version: int, value: dict[str, Any]
    ) -> bool:
        async with self._operation("conditional_update", path):
            stmt = (
                update(DocumentRecord)
                .where(
                    DocumentRecord.path == path,
                    DocumentRecord.version == expected_version,
                )
                .values(value=value, version=expected_version + 1, updated_at=utc_now())
            )
            result = await self.session.execute(stmt)
            updated = result.rowcount == 1
            await self.session.commit()

        if not updated:
            logger.info(
                "document_version_conflict", path=path, expected_version=expected_version
            )
        return updated

    async def append(self, collection: str, value: dict[str, Any]) -> str:
        key = new_child_key()
        path = f"{collection}/{key}"
        if not await self.create(path, value):
            raise TransportError("append", f"generated key collided at {path}")
        return key

    async def delete(self, path: str) -> bool:
        async with self._operation("delete", path):
            stmt = delete(DocumentRecord).where(DocumentRecord.path == path)
            result = await self.session.execute(stmt)
            deleted = result.rowcount == 1
            await self.session.commit()
        return deleted

    async def list_children(self, collection: str) -> list[Document]:
        async with self._operation("list_children", collection):
            stmt = (
                select(DocumentRecord)
                .where(DocumentRecord.parent == collection)
                .order_by(DocumentRecord.path)
            )
            result = await self.session.execute(stmt)
            records = result.scalars().all()
        return [Document(path=r.path, value=dict(r.value), version=r.version) for r in records]

    async def list_descendants(self, prefix: str) -> list[Document]:
        async with self._operation("list_descendants", prefix):
            stmt = (
                select(DocumentRecord)
                .where(DocumentRecord.path.startswith(f"{prefix}/", autoescape=True))
                .order_by(DocumentRecord.path)
            )
            result = await self.session.execute(stmt)
            records = result.scalars().all()
        return [Document(path=r.path, value=dict(r.value), version=r.version) for r in records]
