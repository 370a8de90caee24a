# ------------------------------ IMPORTS ------------------------------
from fastapi import APIRouter, Depends, Header, Request
from fastapi.responses import JSONResponse
from typing import Optional
import logging

from core.exceptions import (
    ERROR_SITE,
    AccessDenied,
    AuthenticationFailure,
    InvalidCredentials,
    MissingApiKey,
    SessionNotFound,
    TransientFailure,
)
from .data.login import LoginState
from .service import ShalomService
from .schemas import (
    InstanceRequest,
    InstanceCreatedOut,
    InstanceListOut,
    InstanceOut,
    CloseInstanceRequest,
    LoginRequest,
    ShipmentIn,
    MassiveShipmentIn,
)

logger = logging.getLogger(__name__)

# ------------------------------ ROUTER SETUP ------------------------------
router = APIRouter()

LOGIN_FAILURES = {
    LoginState.INVALID_CREDENTIALS: InvalidCredentials,
    LoginState.TRANSIENT_FAILURE: TransientFailure,
    LoginState.EXHAUSTED_RETRIES: AuthenticationFailure,
}

# ------------------------------ DEPENDENCIES ------------------------------

def get_shalom_service(request: Request) -> ShalomService:
    """Service built at startup and stored on the app."""
    return request.app.state.shalom_service

async def authorize(
    body: InstanceRequest,
    service: ShalomService,
    x_api_key: Optional[str],
) -> str:
    return await service.authorize(x_api_key, body.instance_id)

# ------------------------------ INSTANCE ENDPOINTS ------------------------------

@router.post("/instances", response_model=InstanceCreatedOut, tags=["Instances"])
async def create_instance(service: ShalomService = Depends(get_shalom_service)) -> InstanceCreatedOut:
    """Create a tenant session and open its browser context."""
    created = await service.create_session()
    return InstanceCreatedOut(api_key=created["credential_key"], instance_id=created["id"])

@router.get("/instances", response_model=InstanceListOut, tags=["Instances"])
async def list_instances(
    service: ShalomService = Depends(get_shalom_service),
    x_api_key: Optional[str] = Header(None),
) -> InstanceListOut:
    """List durable sessions with their liveness. Requires the admin key when one is configured."""
    if service.settings.api.admin_api_key:
        if not x_api_key:
            raise MissingApiKey("Missing x-api-key header")
        if not service.is_admin_key(x_api_key):
            raise AccessDenied("Admin API key required")

    instances = [
        InstanceOut(api_key=entry["credential_key"], **{k: v for k, v in entry.items() if k != "credential_key"})
        for entry in service.list_sessions()
    ]
    return InstanceListOut(instances=instances)

@router.delete("/instances", tags=["Instances"])
async def close_instance(
    body: CloseInstanceRequest,
    service: ShalomService = Depends(get_shalom_service),
    x_api_key: Optional[str] = Header(None),
):
    """Close a session; with keep_record the browser is released but the session stays restorable."""
    credential_key = await authorize(body, service, x_api_key)

    if body.keep_record:
        if not await service.release_session(credential_key):
            raise SessionNotFound("Instance not active")
        return {"status": "released", "message": "Instance released; it will be restored on next use"}

    if not await service.close_session(credential_key):
        raise SessionNotFound("Instance not found")
    return {"status": "closed", "message": "Instance closed successfully"}

@router.post("/status", tags=["Instances"])
async def instance_status(
    body: InstanceRequest,
    service: ShalomService = Depends(get_shalom_service),
    x_api_key: Optional[str] = Header(None),
):
    credential_key = await authorize(body, service, x_api_key)
    return await service.get_status(credential_key)

# ------------------------------ AUTH ENDPOINTS ------------------------------

@router.post("/login", tags=["Auth"])
async def login(
    body: LoginRequest,
    service: ShalomService = Depends(get_shalom_service),
    x_api_key: Optional[str] = Header(None),
):
    """Log the session into the portal."""
    credential_key = await authorize(body, service, x_api_key)
    outcome = await service.login(credential_key, body.username, body.password, body.retries)

    if outcome.success:
        return outcome.to_dict()

    error = LOGIN_FAILURES.get(outcome.state, AuthenticationFailure)(outcome.message)
    return JSONResponse(status_code=error.status_code, content={**error.to_dict(), "state": outcome.state.value})

@router.post("/logout", tags=["Auth"])
async def logout(
    body: InstanceRequest,
    service: ShalomService = Depends(get_shalom_service),
    x_api_key: Optional[str] = Header(None),
):
    credential_key = await authorize(body, service, x_api_key)
    return await service.logout(credential_key)

# ------------------------------ SHIPMENT ENDPOINTS ------------------------------

@router.post("/shipments", tags=["Shipments"])
async def register_shipment(
    body: ShipmentIn,
    service: ShalomService = Depends(get_shalom_service),
    x_api_key: Optional[str] = Header(None),
):
    """Register a single shipment."""
    credential_key = await authorize(body, service, x_api_key)
    result = await service.register_shipment(credential_key, body.to_request())

    if not result.success:
        return JSONResponse(status_code=422, content={**result.to_dict(), "error_type": ERROR_SITE})
    return result.to_dict()

@router.post("/shipments/massive", tags=["Shipments"])
async def register_massive_shipment(
    body: MassiveShipmentIn,
    service: ShalomService = Depends(get_shalom_service),
    x_api_key: Optional[str] = Header(None),
):
    """Register a batch from a prepared spreadsheet or from rows."""
    credential_key = await authorize(body, service, x_api_key)
    result = await service.register_massive_shipment(
        credential_key,
        batch_ref=body.file_path,
        shared_code=body.security_code,
        rows=body.rows(),
    )
    return result.to_dict()

# ------------------------------ END OF FILE ------------------------------
