"""Document store collaborator."""
from circulation.store.base import (
    BOOKS,
    FINES,
    LOANS,
    USERS,
    Document,
    DocumentStore,
    new_id,
    with_timeout,
)
from circulation.store.memory import MemoryDocumentStore
from circulation.store.sql import SQLDocumentStore

__all__ = [
    "BOOKS",
    "FINES",
    "LOANS",
    "USERS",
    "Document",
    "DocumentStore",
    "MemoryDocumentStore",
    "SQLDocumentStore",
    "new_id",
    "with_timeout",
]
