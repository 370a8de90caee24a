# ------------------------------ IMPORTS ------------------------------
import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Optional, Dict, Any, List, AsyncIterator

from sqlalchemy.orm import sessionmaker
from playwright.async_api import Browser

from core.config.browser_settings import BrowserEngine
from core.config.settings import settings as default_settings, Settings
from core.database.connection import SessionLocal
from core.database.session_store import SessionStore
from core.exceptions import (
    ValidationError,
    SessionNotFound,
    AccessDenied,
    MissingApiKey,
    ShuttingDown,
)
from core.security.session import is_login_location
from core.services.concurrency import ConcurrencyController
from core.services.registry import TenantSession
from core.services.session_manager import SessionLifecycleManager
from .data.login import LoginStateMachine, LoginOutcome, LoginState, perform_logout
from .data.massive import MassiveShipmentWorkflow, MassiveShipmentResult
from .data.selectors import Locators, SiteUrls, DEFAULT_LOCATORS
from .data.shipments import ShipmentWorkflow, ShipmentRequest, ShipmentResult
from .data.spreadsheet import write_massive_spreadsheet
from .validators import validate_security_code, validate_credentials, validate_batch_file, validate_retries

logger = logging.getLogger(__name__)

# ------------------------------ SHALOM SERVICE ------------------------------

class ShalomService:
    """
    Entry point for every tenant operation against the Shalom portal.

    Built once at startup and handed to the HTTP layer. Every operation that
    drives a page holds that session's lock and one global browser slot.
    """

    def __init__(
        self,
        manager: SessionLifecycleManager,
        concurrency: ConcurrencyController,
        locators: Locators = DEFAULT_LOCATORS,
        app_settings: Settings = None,
    ):
        self.settings = app_settings or default_settings
        self.manager = manager
        self.concurrency = concurrency
        self.locators = locators
        self.urls: SiteUrls = manager.urls
        self.workflow_config = self.settings.workflow

    @classmethod
    def build(
        cls,
        app_settings: Settings = None,
        session_factory: sessionmaker = SessionLocal,
        browser: Optional[Browser] = None,
        locators: Locators = DEFAULT_LOCATORS,
    ) -> "ShalomService":
        """Wire the store, browser engine, lifecycle manager and concurrency controller."""
        app_settings = app_settings or default_settings
        urls = SiteUrls(base_url=app_settings.site.base_url.rstrip("/"), login_marker=app_settings.site.login_marker)
        manager = SessionLifecycleManager(
            store=SessionStore(session_factory),
            engine=BrowserEngine(app_settings.browser, browser=browser),
            urls=urls,
            config=app_settings.workflow,
        )
        return cls(manager, ConcurrencyController(app_settings.concurrency), locators, app_settings)

    async def start(self) -> None:
        await self.manager.engine.start()
        if self.workflow_config.restore_on_startup:
            await self.manager.restore_all()

    async def shutdown(self) -> None:
        """Stop taking work, let running operations finish, then close every session."""
        self.manager.begin_shutdown()
        live_keys = [session.credential_key for session in self.manager.registry.list_live()]
        busy = await self.concurrency.drain(live_keys)
        if busy:
            logger.warning(f"Closing {len(busy)} session(s) with operations still running")
        await self.manager.shutdown()

    # ---------------------------- SESSIONS ----------------------------

    async def create_session(self) -> Dict[str, str]:
        session = await self.manager.create_session()
        return {"credential_key": session.credential_key, "id": session.id}

    def list_sessions(self) -> List[Dict[str, Any]]:
        return self.manager.list_all()

    async def get_or_restore_session(self, credential_key: str) -> Optional[TenantSession]:
        return await self.manager.get_or_restore(credential_key)

    async def _require(self, credential_key: str) -> TenantSession:
        self.manager.ensure_running()
        session = await self.manager.get_or_restore(credential_key)
        if session is None:
            raise SessionNotFound("Instance not found")
        return session

    @asynccontextmanager
    async def _operate(self, credential_key: str, operation: str, massive: bool = False) -> AsyncIterator[TenantSession]:
        """
        Hold the session's slot and yield the session to drive.

        The session is looked up again once the lock is held, since a close or
        release queued ahead of us may have detached it. Failures caused by a
        shutdown tearing the session down are reported as ``ShuttingDown``.
        """
        await self._require(credential_key)
        slot = self.concurrency.massive_slot(credential_key) if massive else self.concurrency.session_slot(credential_key, operation)

        async with slot:
            self.manager.ensure_running()
            session = self.manager.registry.get(credential_key)
            if session is None or not session.is_live:
                session = await self._require(credential_key)

            try:
                yield session
            except ShuttingDown:
                raise
            except Exception as e:
                if self.manager.is_shutting_down:
                    logger.warning(f"[{session.id}] {operation} interrupted by shutdown: {e}")
                    raise ShuttingDown("Service shut down while the operation was running") from e
                raise

    async def authorize(self, api_key: Optional[str], instance_id: Optional[str]) -> str:
        """Resolve the caller's key and instance id to the credential key to act on."""
        if not api_key:
            raise MissingApiKey("Missing x-api-key header")

        admin_key = self.settings.api.admin_api_key
        if admin_key and api_key == admin_key:
            if not instance_id:
                raise ValidationError("Missing instance_id in request body")
            for entry in self.manager.list_all():
                if entry["id"] == instance_id:
                    return entry["credential_key"]
            raise SessionNotFound("Instance not found")

        session = await self.manager.get_or_restore(api_key)
        if session is None:
            raise AccessDenied("Invalid API Key or Instance not active")
        if not instance_id:
            raise ValidationError("Missing instance_id in request body")
        if instance_id != session.id:
            raise AccessDenied("instance_id does not match the API Key")
        return api_key

    def is_admin_key(self, api_key: Optional[str]) -> bool:
        admin_key = self.settings.api.admin_api_key
        return bool(admin_key) and api_key == admin_key

    async def close_session(self, credential_key: str) -> bool:
        """Close the live handle and delete the durable record."""
        async with self.concurrency.session_slot(credential_key, "close"):
            closed = await self.manager.close(credential_key)
        self.concurrency.forget(credential_key)
        return closed

    async def release_session(self, credential_key: str) -> bool:
        """Close the live handle only; the session can be restored later."""
        async with self.concurrency.session_slot(credential_key, "release"):
            return await self.manager.release(credential_key)

    async def get_status(self, credential_key: str) -> Dict[str, Any]:
        session = await self._require(credential_key)
        location = session.page.url
        authenticated = not is_login_location(location, self.urls.login_marker) and session.username is not None

        return {
            "authenticated": authenticated,
            "username": session.username if authenticated else None,
            "location": location,
        }

    # ---------------------------- AUTH ----------------------------

    async def login(self, credential_key: str, identifier: str, secret: str, retries: Optional[int] = None) -> LoginOutcome:
        validate_credentials(identifier, secret)
        retries = validate_retries(retries)

        async with self._operate(credential_key, "login") as session:
            machine = LoginStateMachine(session.page, self.locators, self.urls, self.workflow_config, session.id)
            outcome = await machine.run(identifier, secret, retries)

            if outcome.state == LoginState.SUCCEEDED or (outcome.state == LoginState.ALREADY_AUTHENTICATED and not session.username):
                session.username = identifier
            if outcome.success:
                await self.manager.save_state(session)

        return outcome

    async def logout(self, credential_key: str) -> Dict[str, Any]:
        async with self._operate(credential_key, "logout") as session:
            await perform_logout(session.page, session.context, self.urls, self.workflow_config.page_load_timeout)
            self.manager.forget_auth(session)

        logger.info(f"[{session.id}] Logged out")
        return {"success": True, "message": "Logged out"}

    # ---------------------------- SHIPMENTS ----------------------------

    async def register_shipment(self, credential_key: str, request: ShipmentRequest) -> ShipmentResult:
        request.security_code = validate_security_code(request.security_code or self.workflow_config.default_security_code)

        async with self._operate(credential_key, "shipment registration") as session:
            workflow = ShipmentWorkflow(session.page, request, self.locators, self.urls, self.workflow_config, session.id)
            result = await workflow.run()

            session.last_shipment_at = datetime.now(timezone.utc)
            await self.manager.save_state(session)

        return result

    async def register_massive_shipment(
        self,
        credential_key: str,
        batch_ref: Optional[str] = None,
        shared_code: Optional[str] = None,
        rows: Optional[List[Dict[str, Any]]] = None,
    ) -> MassiveShipmentResult:
        """Register a batch from a prepared spreadsheet, or from rows written to one first."""
        shared_code = validate_security_code(shared_code or self.workflow_config.default_massive_security_code)

        if rows:
            try:
                batch_ref = write_massive_spreadsheet(rows, self.workflow_config.spreadsheet_dir)
            except ValueError as e:
                raise ValidationError(str(e)) from e
        batch_ref = validate_batch_file(batch_ref, self.workflow_config.spreadsheet_dir)

        async with self._operate(credential_key, "massive registration", massive=True) as session:
            workflow = MassiveShipmentWorkflow(
                session.page, batch_ref, shared_code, self.locators, self.urls, self.workflow_config, session.id
            )
            result = await workflow.run()

            session.last_shipment_at = datetime.now(timezone.utc)
            await self.manager.save_state(session)

        return result

# ------------------------------ END OF FILE ------------------------------
