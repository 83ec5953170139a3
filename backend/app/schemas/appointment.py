from pydantic import BaseModel, Field
from datetime import datetime
from typing import Literal, Optional


class AppointmentCreate(BaseModel):
    doctor_id: int
    start_time: datetime
    end_time: datetime
    reason: Optional[str] = None


class AppointmentStatusUpdate(BaseModel):
    status: Literal["pending", "accepted", "rejected", "completed"]


class AppointmentResponse(BaseModel):
    id: int
    patient_id: int
    doctor_id: int
    start_time: datetime
    end_time: datetime
    reason: Optional[str] = None
    status: str

    class Config:
        from_attributes = True


class PatientSummary(BaseModel):
    upcoming: list[AppointmentResponse] = []
    prescriptions: list[dict] = []
    summary: dict = Field(default_factory=dict)
