# ------------------------------ IMPORTS ------------------------------
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional, List
import logging

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from core.database.connection import SessionLocal, get_db_session
from core.database.models import TenantSessionRecord
from core.exceptions import PersistenceFailure

logger = logging.getLogger(__name__)

# Marker for "leave this column untouched" in partial updates.
UNSET = object()

# ------------------------------ DATA CLASSES ------------------------------

@dataclass
class StoredSession:
    """Detached copy of a durable session record."""
    id: str
    credential_key: str
    username: Optional[str]
    storage_state: Optional[str]
    is_active: bool
    created_at: Optional[datetime]
    last_used_at: Optional[datetime]

    @classmethod
    def from_record(cls, record: TenantSessionRecord) -> "StoredSession":
        return cls(
            id=record.id,
            credential_key=record.credential_key,
            username=record.username,
            storage_state=record.storage_state,
            is_active=record.is_active,
            created_at=record.created_at,
            last_used_at=record.last_used_at,
        )

# ------------------------------ SESSION STORE ------------------------------

class SessionStore:
    """Durable per-tenant session records, keyed by credential."""

    def __init__(self, session_factory: sessionmaker = SessionLocal):
        self._session_factory = session_factory

    def create(self, session_id: str, credential_key: str) -> StoredSession:
        """Persist a new record.

        Args:
            session_id: Opaque session identifier.
            credential_key: Caller-facing key, unique across records.

        Returns:
            The stored record.

        Raises:
            PersistenceFailure: if the write did not succeed.
        """
        now = datetime.now(timezone.utc)
        try:
            with get_db_session(self._session_factory) as db:
                record = TenantSessionRecord(
                    id=session_id,
                    credential_key=credential_key,
                    is_active=True,
                    created_at=now,
                    last_used_at=now,
                )
                db.add(record)
                db.flush()
                stored = StoredSession.from_record(record)

            logger.info(f"Created session record {session_id}")
            return stored

        except SQLAlchemyError as e:
            logger.error(f"Error creating session record {session_id}: {e}")
            raise PersistenceFailure(f"Could not create session record: {e}") from e

    def find_by_credential(self, credential_key: str) -> Optional[StoredSession]:
        """Return the record for a credential key, or None."""
        try:
            with get_db_session(self._session_factory) as db:
                record = db.query(TenantSessionRecord).filter(
                    TenantSessionRecord.credential_key == credential_key
                ).first()
                return StoredSession.from_record(record) if record else None

        except SQLAlchemyError as e:
            logger.error(f"Error looking up session record: {e}")
            raise PersistenceFailure(f"Could not read session record: {e}") from e

    def list_all(self) -> List[StoredSession]:
        """Return every durable record, oldest first."""
        try:
            with get_db_session(self._session_factory) as db:
                records = db.query(TenantSessionRecord).order_by(TenantSessionRecord.created_at).all()
                return [StoredSession.from_record(record) for record in records]

        except SQLAlchemyError as e:
            logger.error(f"Error listing session records: {e}")
            raise PersistenceFailure(f"Could not list session records: {e}") from e

    def update(
        self,
        credential_key: str,
        username=UNSET,
        storage_state=UNSET,
        last_used_at: Optional[datetime] = None,
    ) -> bool:
        """Partially update a record; columns not passed are left untouched.

        Passing ``None`` explicitly for ``username`` or ``storage_state`` clears it.
        ``last_used_at`` defaults to now.

        Returns:
            True if a record was updated, False if none exists for the key.
        """
        try:
            with get_db_session(self._session_factory) as db:
                record = db.query(TenantSessionRecord).filter(
                    TenantSessionRecord.credential_key == credential_key
                ).first()
                if not record:
                    return False

                if username is not UNSET:
                    record.username = username
                if storage_state is not UNSET:
                    record.storage_state = storage_state
                record.last_used_at = last_used_at or datetime.now(timezone.utc)
                session_id = record.id

            logger.debug(f"Updated session record {session_id}")
            return True

        except SQLAlchemyError as e:
            logger.error(f"Error updating session record: {e}")
            raise PersistenceFailure(f"Could not update session record: {e}") from e

    def delete(self, credential_key: str) -> bool:
        """Delete a record. Returns False if none existed."""
        try:
            with get_db_session(self._session_factory) as db:
                deleted = db.query(TenantSessionRecord).filter(
                    TenantSessionRecord.credential_key == credential_key
                ).delete()

            if deleted:
                logger.info("Deleted session record")
            return bool(deleted)

        except SQLAlchemyError as e:
            logger.error(f"Error deleting session record: {e}")
            raise PersistenceFailure(f"Could not delete session record: {e}") from e

# ------------------------------ END OF FILE ------------------------------
