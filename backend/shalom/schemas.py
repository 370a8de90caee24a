# ------------------------------ IMPORTS ------------------------------
from pydantic import BaseModel, Field, field_serializer
from pydantic.alias_generators import to_camel
from typing import Optional, List, Any, Dict
from datetime import datetime

from .data.selectors import DEFAULT_PRODUCT_TYPE
from .data.shipments import ShipmentRequest, Recipient, Dimensions

# ------------------------------ BASE MODELS ------------------------------

class CamelModel(BaseModel):
    """Accepts both snake_case and camelCase keys."""

    class Config:
        alias_generator = to_camel
        populate_by_name = True

class InstanceRequest(CamelModel):
    instance_id: Optional[str] = None

# ------------------------------ INSTANCES ------------------------------

class InstanceCreatedOut(BaseModel):
    status: str = "created"
    api_key: str
    instance_id: str
    message: str = "Instance created and browser opened"

class InstanceOut(BaseModel):
    id: str
    api_key: str
    username: Optional[str] = None
    created_at: Optional[datetime] = None
    last_used_at: Optional[datetime] = None
    is_live: bool = False

    @field_serializer("created_at", "last_used_at")
    def serialize_datetime(self, dt: Optional[datetime]) -> Optional[str]:
        return dt.isoformat() if dt else None

class InstanceListOut(BaseModel):
    instances: List[InstanceOut]

class CloseInstanceRequest(InstanceRequest):
    keep_record: bool = Field(False, description="Release the browser context but keep the session restorable")

# ------------------------------ AUTH ------------------------------

class LoginRequest(InstanceRequest):
    username: Optional[str] = None
    password: Optional[str] = None
    retries: int = Field(3, ge=1, le=10)

    class Config:
        alias_generator = to_camel
        populate_by_name = True
        json_schema_extra = {
            "example": {
                "instance_id": "3f1c7e0a-2b7d-4c1e-9a55-0d6f2f1b8c11",
                "username": "user@example.com",
                "password": "your_password",
                "retries": 3,
            }
        }

# ------------------------------ SHIPMENTS ------------------------------

class RecipientIn(CamelModel):
    document_number: str = Field(..., min_length=1)
    name: Optional[str] = None
    phone: Optional[str] = None

class DimensionsIn(CamelModel):
    height: Optional[float] = Field(None, gt=0)
    width: Optional[float] = Field(None, gt=0)
    length: Optional[float] = Field(None, gt=0)
    weight: Optional[float] = Field(None, gt=0)

class ShipmentIn(InstanceRequest):
    product_type: str = DEFAULT_PRODUCT_TYPE
    origin: str = Field(..., min_length=1, description="Search text for the origin agency")
    destination: str = Field(..., min_length=1, description="Search text for the destination agency")
    recipient: RecipientIn
    warranty: bool = False
    secure_billing: bool = False
    security_code: Optional[str] = None
    content_type: Optional[str] = None
    dimensions: Optional[DimensionsIn] = None

    def to_request(self) -> ShipmentRequest:
        return ShipmentRequest(
            origin=self.origin,
            destination=self.destination,
            recipient=Recipient(**self.recipient.model_dump()),
            product_type=self.product_type,
            warranty=self.warranty,
            secure_billing=self.secure_billing,
            security_code=self.security_code,
            content_type=self.content_type,
            dimensions=Dimensions(**self.dimensions.model_dump()) if self.dimensions else None,
        )

class MassiveRowIn(CamelModel):
    origin: str
    destination: str
    recipient_doc: Optional[str] = None
    recipient_phone: Optional[str] = None
    recipient: Optional[RecipientIn] = None
    contact_doc: Optional[str] = None
    contact_phone: Optional[str] = None
    grr: Optional[str] = None
    content: Optional[str] = None
    height: Optional[float] = None
    width: Optional[float] = None
    length: Optional[float] = None
    weight: Optional[float] = None
    quantity: int = Field(1, ge=1)

class MassiveShipmentIn(InstanceRequest):
    file_path: Optional[str] = None
    shipments: Optional[List[MassiveRowIn]] = None
    security_code: Optional[str] = None

    def rows(self) -> Optional[List[Dict[str, Any]]]:
        if not self.shipments:
            return None
        return [row.model_dump() for row in self.shipments]

# ------------------------------ END OF FILE ------------------------------
