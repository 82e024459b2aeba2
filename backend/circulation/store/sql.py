"""SQLAlchemy-backed document store."""
from typing import Any, List, Optional

from sqlalchemy import delete, select, update
from sqlalchemy.exc import DBAPIError, IntegrityError, OperationalError
from sqlalchemy.ext.asyncio import async_sessionmaker

from circulation.core.exceptions import (
    DocumentNotFoundError,
    StoreUnavailableError,
    VersionConflictError,
)
from circulation.core.logging import get_logger
from circulation.models.document import DocumentRow
from circulation.store.base import Document, new_id, normalize_value

logger = get_logger("store.sql")


def _to_document(row: DocumentRow) -> Document:
    return Document(row.collection, row.id, row.version, dict(row.data))


def _field_clause(field: str, value: Any):
    """Build an equality clause against one top-level JSON key."""
    column = DocumentRow.data[field]
    if value is None:
        return column.as_string().is_(None)
    if isinstance(value, bool):
        return column.as_boolean() == value
    if isinstance(value, int):
        return column.as_integer() == value
    if isinstance(value, float):
        return column.as_float() == value
    return column.as_string() == str(value)


class SQLDocumentStore:
    """
    Document store over a single ``documents`` table.

    Each method runs in its own transaction. Conditioned updates compare the
    row's version column inside the UPDATE statement, so the check and the
    write are atomic at the database level.
    """

    def __init__(self, session_factory: async_sessionmaker):
        self._session_factory = session_factory

    async def get(self, collection: str, id: str) -> Document:
        try:
            async with self._session_factory() as session:
                row = await session.get(DocumentRow, (collection, id))
        except (OperationalError, DBAPIError) as e:
            raise StoreUnavailableError(str(e))
        if row is None:
            raise DocumentNotFoundError(collection, id)
        return _to_document(row)

    async def query(self, collection: str, **equals: Any) -> List[Document]:
        stmt = select(DocumentRow).where(DocumentRow.collection == collection)
        for field, value in equals.items():
            stmt = stmt.where(_field_clause(field, normalize_value(value)))
        stmt = stmt.order_by(DocumentRow.created_at, DocumentRow.id)
        try:
            async with self._session_factory() as session:
                result = await session.execute(stmt)
                rows = result.scalars().all()
        except (OperationalError, DBAPIError) as e:
            raise StoreUnavailableError(str(e))
        return [_to_document(row) for row in rows]

    async def create(self, collection: str, data: dict, id: Optional[str] = None) -> Document:
        doc_id = id or new_id(collection.rstrip("s"))
        row = DocumentRow(collection=collection, id=doc_id, version=1, data=data)
        try:
            async with self._session_factory() as session:
                async with session.begin():
                    session.add(row)
        except IntegrityError:
            raise VersionConflictError(collection, doc_id)
        except (OperationalError, DBAPIError) as e:
            raise StoreUnavailableError(str(e))
        return Document(collection, doc_id, 1, dict(data))

    async def update(
        self, collection: str, id: str, data: dict, expected_version: int
    ) -> Document:
        stmt = (
            update(DocumentRow)
            .where(
                DocumentRow.collection == collection,
                DocumentRow.id == id,
                DocumentRow.version == expected_version,
            )
            .values(data=data, version=expected_version + 1)
            .execution_options(synchronize_session=False)
        )
        try:
            async with self._session_factory() as session:
                async with session.begin():
                    result = await session.execute(stmt)
                    if result.rowcount == 0:
                        exists = await session.get(DocumentRow, (collection, id))
                        if exists is None:
                            raise DocumentNotFoundError(collection, id)
                        raise VersionConflictError(collection, id, expected_version)
        except (OperationalError, DBAPIError) as e:
            raise StoreUnavailableError(str(e))
        return Document(collection, id, expected_version + 1, dict(data))

    async def delete(
        self, collection: str, id: str, expected_version: Optional[int] = None
    ) -> None:
        stmt = delete(DocumentRow).where(
            DocumentRow.collection == collection, DocumentRow.id == id
        )
        if expected_version is not None:
            stmt = stmt.where(DocumentRow.version == expected_version)
        try:
            async with self._session_factory() as session:
                async with session.begin():
                    result = await session.execute(stmt)
                    if result.rowcount == 0:
                        exists = await session.get(DocumentRow, (collection, id))
                        if exists is None:
                            raise DocumentNotFoundError(collection, id)
                        raise VersionConflictError(collection, id, expected_version)
        except (OperationalError, DBAPIError) as e:
            raise StoreUnavailableError(str(e))
