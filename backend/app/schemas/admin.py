from pydantic import BaseModel
from datetime import datetime
from typing import Any, Optional

from app.schemas.patient import PatientResponse


class DoctorResponse(BaseModel):
    id: int
    name: str
    specialization: str
    email: str
    is_verified: bool = False
    is_active: bool = True
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class DoctorListing(BaseModel):
    doctors: list[DoctorResponse]
    total: int
    active: int
    inactive: int


class PatientListing(BaseModel):
    patients: list[PatientResponse]
    total: int
    active: int
    inactive: int


class AuditLogResponse(BaseModel):
    id: int
    user_id: Optional[int] = None
    user_role: str
    action: str
    action_type: str
    details: Optional[dict[str, Any]] = None
    timestamp: Optional[datetime] = None

    class Config:
        from_attributes = True
