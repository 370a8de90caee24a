# ------------------------------ IMPORTS ------------------------------
import asyncio
import logging
import uuid
from datetime import datetime, timezone
from typing import Optional, Dict, Any, List, Tuple

from playwright.async_api import BrowserContext, Page, TimeoutError as PlaywrightTimeoutError

from core.config.browser_settings import BrowserEngine
from core.config.settings import settings, WorkflowConfig
from core.database.session_store import SessionStore, StoredSession
from core.exceptions import (
    AutomationError,
    PersistenceFailure,
    ShuttingDown,
    WorkflowStepTimeout,
    WorkflowStepError,
)
from core.security.session import (
    is_login_location,
    extract_storage_state,
    parse_storage_state,
)
from core.services.registry import SessionRegistry, TenantSession

logger = logging.getLogger(__name__)

# ------------------------------ LIFECYCLE MANAGER ------------------------------

class SessionLifecycleManager:
    """
    Creates, restores, releases and closes tenant sessions.

    The registry says which sessions are live in this process; the store is
    only best-effort durability. ``urls`` must provide ``root``, ``login`` and
    ``login_marker``.
    """

    def __init__(
        self,
        store: SessionStore,
        engine: BrowserEngine,
        urls,
        registry: Optional[SessionRegistry] = None,
        config: WorkflowConfig = None,
    ):
        self.store = store
        self.engine = engine
        self.urls = urls
        self.registry = registry or SessionRegistry()
        self.config = config or settings.workflow
        self._restore_locks: Dict[str, asyncio.Lock] = {}
        self._shutdown_lock = asyncio.Lock()
        self._shutting_down = False
        self._shut_down = False

    # ---------------------------- STATE ----------------------------

    @property
    def is_shutting_down(self) -> bool:
        return self._shutting_down

    def ensure_running(self) -> None:
        if self._shutting_down:
            raise ShuttingDown("Service is shutting down")

    def begin_shutdown(self) -> None:
        """Refuse new work from now on; live sessions stay open until ``shutdown``."""
        if not self._shutting_down:
            self._shutting_down = True
            logger.info("Shutdown requested, refusing new operations")

    # ---------------------------- LIVE HANDLES ----------------------------

    async def _open_live(self, session_id: str, storage_state: Optional[Dict[str, Any]], target: str) -> Tuple[BrowserContext, Page]:
        """Open a context and page and load ``target``; nothing is left open on failure."""
        context = await self.engine.new_context(storage_state=storage_state)

        try:
            page = await self.engine.new_page(context)
            await page.goto(target, wait_until="domcontentloaded", timeout=self.config.page_load_timeout)
            return context, page

        except AutomationError:
            await self._safe_close(session_id, context)
            raise
        except PlaywrightTimeoutError as e:
            await self._safe_close(session_id, context)
            raise WorkflowStepTimeout("open_page", str(e)) from e
        except Exception as e:
            await self._safe_close(session_id, context)
            raise WorkflowStepError("open_page", str(e)) from e

    async def _safe_close(self, session_id: str, context: Optional[BrowserContext]) -> None:
        if context is None:
            return
        try:
            await context.close()
        except Exception as e:
            # The driver may already have closed it
            logger.warning(f"[{session_id}] Error closing context: {e}")

    async def _detach(self, session: TenantSession) -> None:
        await self._safe_close(session.id, session.context)
        session.context = None
        session.page = None

    # ---------------------------- CREATE ----------------------------

    async def create_session(self) -> TenantSession:
        """Create a durable record and a live context parked on the login page."""
        self.ensure_running()

        session_id = str(uuid.uuid4())
        credential_key = str(uuid.uuid4())

        stored = self.store.create(session_id, credential_key)

        try:
            context, page = await self._open_live(session_id, None, self.urls.login)
        except AutomationError:
            self._discard_record(session_id, credential_key)
            raise

        session = TenantSession(
            id=session_id,
            credential_key=credential_key,
            created_at=stored.created_at or datetime.now(timezone.utc),
            last_used_at=stored.last_used_at or datetime.now(timezone.utc),
            context=context,
            page=page,
        )
        self.registry.put(session)
        logger.info(f"[{session_id}] Session created")
        return session

    def _discard_record(self, session_id: str, credential_key: str) -> None:
        try:
            self.store.delete(credential_key)
        except PersistenceFailure as e:
            logger.error(f"[{session_id}] Could not remove record of failed session: {e}")

    # ---------------------------- RESTORE ----------------------------

    async def get_or_restore(self, credential_key: str) -> Optional[TenantSession]:
        """Return the live session, rehydrating it from the store if needed."""
        session = self.registry.get(credential_key)
        if session is not None:
            return session

        self.ensure_running()
        # Only keys with a durable record get a restore lock
        if self.store.find_by_credential(credential_key) is None:
            return None

        lock = self._restore_locks.setdefault(credential_key, asyncio.Lock())
        async with lock:
            session = self.registry.get(credential_key)
            if session is not None:
                return session

            record = self.store.find_by_credential(credential_key)
            if record is None:
                # Closed while we waited
                if self._restore_locks.get(credential_key) is lock:
                    del self._restore_locks[credential_key]
                return None

            return await self._restore(record)

    async def _restore(self, record: StoredSession) -> TenantSession:
        storage_state = parse_storage_state(record.storage_state)
        context, page = await self._open_live(record.id, storage_state, self.urls.root)

        authenticated = storage_state is not None and not is_login_location(page.url, self.urls.login_marker)
        session = TenantSession(
            id=record.id,
            credential_key=record.credential_key,
            username=record.username if authenticated else None,
            cached_auth_state=record.storage_state if storage_state is not None else None,
            created_at=record.created_at or datetime.now(timezone.utc),
            context=context,
            page=page,
        )
        self.registry.put(session)
        logger.info(f"[{record.id}] Session restored (authenticated={authenticated})")

        if authenticated:
            await self.save_state(session)
        else:
            self._touch_record(session)

        return session

    def _touch_record(self, session: TenantSession) -> None:
        session.touch()
        try:
            self.store.update(session.credential_key, last_used_at=session.last_used_at)
        except PersistenceFailure as e:
            logger.error(f"[{session.id}] Could not update last use: {e}")

    async def restore_all(self) -> int:
        """Bring every durable session back to life; returns how many are live afterwards."""
        restored = 0
        for record in self.store.list_all():
            if self._shutting_down:
                logger.info("Restore aborted due to shutdown")
                break
            try:
                await self.get_or_restore(record.credential_key)
                restored += 1
            except AutomationError as e:
                logger.error(f"[{record.id}] Failed to restore session: {e.message}")

        logger.info(f"Restored {restored} session(s)")
        return restored

    # ---------------------------- STATE PERSISTENCE ----------------------------

    async def save_state(self, session: TenantSession) -> bool:
        """Persist the session's current auth state; failures are logged, never raised."""
        if not session.is_live:
            return False

        try:
            storage_state = await extract_storage_state(session.context)
        except Exception as e:
            logger.warning(f"[{session.id}] Could not read storage state: {e}")
            return False

        session.cached_auth_state = storage_state
        session.touch()

        try:
            self.store.update(
                session.credential_key,
                username=session.username,
                storage_state=storage_state,
                last_used_at=session.last_used_at,
            )
        except PersistenceFailure as e:
            logger.error(f"[{session.id}] Failed to save storage state: {e}")
            return False

        logger.debug(f"[{session.id}] Saved storage state")
        return True

    def forget_auth(self, session: TenantSession) -> None:
        """Unbind the user and drop the cached state, in memory and durably."""
        session.username = None
        session.cached_auth_state = None
        session.touch()
        try:
            self.store.update(session.credential_key, username=None, storage_state=None, last_used_at=session.last_used_at)
        except PersistenceFailure as e:
            logger.error(f"[{session.id}] Failed to clear stored auth state: {e}")

    # ---------------------------- RELEASE / CLOSE ----------------------------

    async def release(self, credential_key: str) -> bool:
        """Close the live handle but keep the durable record for a later restore."""
        session = self.registry.get(credential_key)
        if session is None:
            return False

        await self.save_state(session)
        await self._detach(session)
        self.registry.remove(credential_key)
        logger.info(f"[{session.id}] Session released")
        return True

    async def close(self, credential_key: str) -> bool:
        """Close the live handle and delete the durable record."""
        session = self.registry.get(credential_key)
        if session is not None:
            await self.save_state(session)
            await self._detach(session)
            self.registry.remove(credential_key)

        deleted = self.store.delete(credential_key)
        self._restore_locks.pop(credential_key, None)

        if session is None and not deleted:
            return False

        logger.info(f"[{session.id if session else 'offline'}] Session closed")
        return True

    # ---------------------------- LISTING ----------------------------

    def list_all(self) -> List[Dict[str, Any]]:
        """Durable records merged with liveness from the registry."""
        live = {session.credential_key: session for session in self.registry.list_live()}
        listing = []

        for record in self.store.list_all():
            session = live.pop(record.credential_key, None)
            listing.append({
                "id": record.id,
                "credential_key": record.credential_key,
                "username": session.username if session else record.username,
                "created_at": record.created_at,
                "last_used_at": session.last_used_at if session else record.last_used_at,
                "is_live": session is not None,
            })

        # Live sessions whose record went missing are still reported
        for session in live.values():
            listing.append({
                "id": session.id,
                "credential_key": session.credential_key,
                "username": session.username,
                "created_at": session.created_at,
                "last_used_at": session.last_used_at,
                "is_live": True,
            })

        return listing

    # ---------------------------- SHUTDOWN ----------------------------

    async def shutdown(self) -> None:
        """Flush and close every live session, then stop the shared browser. Idempotent."""
        async with self._shutdown_lock:
            if self._shut_down:
                return

            self.begin_shutdown()
            logger.info("Shutting down session manager...")

            for session in self.registry.list_live():
                await self.save_state(session)
                await self._detach(session)
                self.registry.remove(session.credential_key)

            await self.engine.stop()
            self._shut_down = True
            logger.info("Session manager shutdown complete")

# ------------------------------ END OF FILE ------------------------------
