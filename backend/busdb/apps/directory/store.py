# backend/busdb/apps/directory/store.py

"""
Document store used by the directory.

`DocumentStore` is the contract the core needs from its storage backend:
point reads, unconditional upserts, deletes, collection scans and an
insert-if-absent `create`. No multi-document transactions are assumed.

`SqlDocumentStore` implements it on the `documents` table. Statements go
through SQLAlchemy Core so that reads always see committed rows rather than
stale identity-map objects. Driver / connection failures surface as
`TransientError`; every other error category is left to the caller.
"""

from __future__ import annotations

from contextlib import contextmanager
from datetime import datetime, timezone
import logging
from typing import Callable, Iterator, List, Optional, Protocol

from fastapi import Depends
from sqlalchemy import delete, insert, select, update
from sqlalchemy import exc as sa_exc
from sqlalchemy.orm import Session

from busdb.database import get_db
from busdb.errors import DuplicateKey, TransientError
from .models import Document

logger = logging.getLogger(__name__)

Predicate = Callable[[dict], bool]


class DocumentStore(Protocol):
    def get(self, collection: str, key: str) -> Optional[dict]:
        ...

    def put(self, collection: str, key: str, record: dict) -> None:
        ...

    def create(self, collection: str, key: str, record: dict) -> None:
        ...

    def delete(self, collection: str, key: str) -> bool:
        ...

    def scan(self, collection: str, predicate: Optional[Predicate] = None) -> List[dict]:
        ...


class SqlDocumentStore:
    """DocumentStore backed by one SQLAlchemy session."""

    def __init__(self, db: Session) -> None:
        self.db = db

    @contextmanager
    def _transport(self, action: str, collection: str) -> Iterator[None]:
        try:
            yield
        except sa_exc.IntegrityError:
            self.db.rollback()
            raise
        except (sa_exc.OperationalError, sa_exc.DBAPIError) as exc:
            self.db.rollback()
            logger.warning(
                "Document store unavailable",
                extra={"action": action, "collection": collection, "error": str(exc)},
            )
            raise TransientError(f"Document store unavailable during {action} on {collection}.") from exc

    def get(self, collection: str, key: str) -> Optional[dict]:
        with self._transport("get", collection):
            body = self.db.execute(
                select(Document.body).where(
                    Document.collection == collection,
                    Document.key == key,
                )
            ).scalar_one_or_none()
        return dict(body) if body is not None else None

    def create(self, collection: str, key: str, record: dict) -> None:
        """
        Insert a new document; fails with DuplicateKey if the key exists.

        The primary key makes this atomic, so two concurrent creates for the
        same key cannot both succeed.
        """
        now = datetime.now(timezone.utc)
        try:
            with self._transport("create", collection):
                self.db.execute(
                    insert(Document).values(
                        collection=collection,
                        key=key,
                        body=record,
                        created_at=now,
                        updated_at=now,
                    )
                )
                self.db.commit()
        except sa_exc.IntegrityError as exc:
            raise DuplicateKey(collection, key) from exc

    def put(self, collection: str, key: str, record: dict) -> None:
        """Unconditional upsert."""
        now = datetime.now(timezone.utc)
        with self._transport("put", collection):
            result = self.db.execute(
                update(Document)
                .where(Document.collection == collection, Document.key == key)
                .values(body=record, updated_at=now)
            )
            if result.rowcount == 0:
                try:
                    self.db.execute(
                        insert(Document).values(
                            collection=collection,
                            key=key,
                            body=record,
                            created_at=now,
                            updated_at=now,
                        )
                    )
                except sa_exc.IntegrityError:
                    # Created concurrently between our update and insert.
                    self.db.rollback()
                    self.db.execute(
                        update(Document)
                        .where(Document.collection == collection, Document.key == key)
                        .values(body=record, updated_at=now)
                    )
            self.db.commit()

    def delete(self, collection: str, key: str) -> bool:
        with self._transport("delete", collection):
            result = self.db.execute(
                delete(Document).where(
                    Document.collection == collection,
                    Document.key == key,
                )
            )
            self.db.commit()
        return bool(result.rowcount)

    def scan(self, collection: str, predicate: Optional[Predicate] = None) -> List[dict]:
        with self._transport("scan", collection):
            rows = self.db.execute(
                select(Document.body)
                .where(Document.collection == collection)
                .order_by(Document.key.asc())
            ).scalars().all()
        records = [dict(body) for body in rows]
        if predicate is None:
            return records
        return [record for record in records if predicate(record)]


def get_document_store(db: Session = Depends(get_db)) -> SqlDocumentStore:
    """FastAPI dependency."""
    return SqlDocumentStore(db)
