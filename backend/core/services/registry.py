# ------------------------------ IMPORTS ------------------------------
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional, Dict, List

from playwright.async_api import BrowserContext, Page

# ------------------------------ TENANT SESSION ------------------------------

@dataclass
class TenantSession:
    """One tenant's automated presence on the external site."""
    id: str
    credential_key: str
    username: Optional[str] = None
    cached_auth_state: Optional[str] = None
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    last_used_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    last_shipment_at: Optional[datetime] = None
    context: Optional[BrowserContext] = None
    page: Optional[Page] = None

    @property
    def is_live(self) -> bool:
        return self.context is not None and self.page is not None

    def touch(self) -> None:
        self.last_used_at = datetime.now(timezone.utc)

# ------------------------------ SESSION REGISTRY ------------------------------

class SessionRegistry:
    """In-memory map of live sessions keyed by credential. No I/O."""

    def __init__(self):
        self._sessions: Dict[str, TenantSession] = {}

    def get(self, credential_key: str) -> Optional[TenantSession]:
        return self._sessions.get(credential_key)

    def put(self, session: TenantSession) -> None:
        self._sessions[session.credential_key] = session

    def remove(self, credential_key: str) -> Optional[TenantSession]:
        return self._sessions.pop(credential_key, None)

    def list_live(self) -> List[TenantSession]:
        return list(self._sessions.values())

    def __contains__(self, credential_key: str) -> bool:
        return credential_key in self._sessions

    def __len__(self) -> int:
        return len(self._sessions)

# ------------------------------ END OF FILE ------------------------------
