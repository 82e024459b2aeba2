"""User directory backed by the ``users`` collection."""
from typing import List, Optional, Protocol

from circulation.core.exceptions import (
    ConflictError,
    DocumentNotFoundError,
    NotFoundError,
)
from circulation.core.logging import get_logger
from circulation.schemas.common import utcnow
from circulation.schemas.user import DirectoryEntry, UserCreate, UserRecord, UserRole
from circulation.store.base import USERS, DocumentStore, new_id

logger = get_logger("directory")


class UserDirectory(Protocol):
    """Identity/directory collaborator consulted before issuing."""

    async def lookup(self, borrower_id: str) -> Optional[DirectoryEntry]:
        ...


class DocumentUserDirectory:
    """Directory over the document store's ``users`` collection."""

    def __init__(self, store: DocumentStore):
        self._store = store

    async def lookup(self, borrower_id: str) -> Optional[DirectoryEntry]:
        """Return eligibility facts for a borrower, or None if unknown."""
        try:
            doc = await self._store.get(USERS, borrower_id)
        except DocumentNotFoundError:
            return None
        user = UserRecord.from_document(doc)
        return DirectoryEntry(
            borrower_id=user.id,
            exists=True,
            is_suspended=user.is_suspended,
            role=user.role,
        )

    async def register(self, user_data: UserCreate) -> UserRecord:
        """Register a new account; emails are unique case-insensitively."""
        email = user_data.email.lower()
        if await self._store.query(USERS, email=email):
            raise ConflictError("Email already registered", field="email")
        user = UserRecord(
            id=new_id("usr"),
            email=email,
            full_name=user_data.full_name,
            role=user_data.role,
            created_at=utcnow(),
        )
        await self._store.create(USERS, user.to_data(), id=user.id)
        logger.info(f"Registered {user.role.value} {user.id}")
        return user

    async def get_user(self, user_id: str) -> UserRecord:
        try:
            doc = await self._store.get(USERS, user_id)
        except DocumentNotFoundError:
            raise NotFoundError("User", user_id)
        return UserRecord.from_document(doc)

    async def list_users(self, role: Optional[UserRole] = None) -> List[UserRecord]:
        filters = {"role": role} if role else {}
        docs = await self._store.query(USERS, **filters)
        return [UserRecord.from_document(doc) for doc in docs]

    async def set_suspended(self, user_id: str, suspended: bool) -> UserRecord:
        """Suspend or reinstate an account."""
        try:
            doc = await self._store.get(USERS, user_id)
        except DocumentNotFoundError:
            raise NotFoundError("User", user_id)
        user = UserRecord.from_document(doc).evolve(is_suspended=suspended)
        await self._store.update(USERS, user_id, user.to_data(), expected_version=doc.version)
        logger.info(f"User {user_id} {'suspended' if suspended else 'reinstated'}")
        return user
