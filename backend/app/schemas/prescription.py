from pydantic import BaseModel, Field
from datetime import date, datetime
from typing import Optional


class PrescriptionCreate(BaseModel):
    medicine_name: str = Field(min_length=1, max_length=200)
    dosage: str
    duration: str
    instructions: Optional[str] = None
    side_effects: Optional[str] = None
    reported_allergy: bool = False


class PrescriptionResponse(PrescriptionCreate):
    id: int
    appointment_id: int
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class DiseaseHistoryCreate(BaseModel):
    disease_name: str = Field(min_length=1, max_length=200)
    diagnosed_date: date


class DiseaseHistoryResponse(DiseaseHistoryCreate):
    id: int
    patient_id: int

    class Config:
        from_attributes = True
