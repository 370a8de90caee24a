# ------------------------------ IMPORTS ------------------------------
from sqlalchemy import Column, String, Boolean, DateTime, Text, func
from core.database.connection import Base

# ------------------------------ TENANT SESSION MODEL ------------------------------

class TenantSessionRecord(Base):
    """Durable record of one tenant session on the Shalom portal."""

    __tablename__ = "tenant_sessions"

    id = Column(String(36), primary_key=True, index=True)
    credential_key = Column(String(64), unique=True, nullable=False, index=True, comment="Caller-facing API key")

    username = Column(String(255), nullable=True, comment="Bound after a successful login, never the password")
    storage_state = Column(Text, nullable=True, comment="JSON string of browser storage state")
    is_active = Column(Boolean, default=True, nullable=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    last_used_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    def __repr__(self):
        return f"<TenantSessionRecord(id={self.id}, username={self.username})>"

# ------------------------------ END OF FILE ------------------------------
