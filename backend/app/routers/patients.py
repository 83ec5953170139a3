from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession
from app.auth import get_current_user, require_role, UserPrincipal
from app.database import get_db
from app.models.patient import Patient
from app.schemas.patient import PatientResponse
from app.schemas.prescription import DiseaseHistoryCreate, DiseaseHistoryResponse, PrescriptionResponse
from app.services.appointment_service import appointment_service

router = APIRouter()


async def _get_patient(db: AsyncSession, patient_id: int, user: UserPrincipal) -> Patient:
    if not user.can_view_patient(patient_id):
        raise HTTPException(status_code=403, detail=f"Access denied: patient {patient_id}")
    patient = await db.get(Patient, patient_id)
    if not patient or not patient.is_active:
        raise HTTPException(status_code=404, detail=f"Patient {patient_id} not found")
    return patient


@router.get("/{patient_id}", response_model=PatientResponse)
async def get_patient(
    patient_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: UserPrincipal = Depends(get_current_user),
):
    return PatientResponse.model_validate(await _get_patient(db, patient_id, current_user))


@router.get("/{patient_id}/prescriptions")
async def list_prescriptions(
    patient_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: UserPrincipal = Depends(get_current_user),
):
    await _get_patient(db, patient_id, current_user)
    prescriptions = await appointment_service.list_prescriptions(db, patient_id)
    return {
        "prescriptions": [PrescriptionResponse.model_validate(p) for p in prescriptions],
        "total": len(prescriptions),
    }


@router.get("/{patient_id}/disease-history")
async def list_disease_history(
    patient_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: UserPrincipal = Depends(get_current_user),
):
    await _get_patient(db, patient_id, current_user)
    entries = await appointment_service.list_disease_history(db, patient_id)
    return {
        "disease_history": [DiseaseHistoryResponse.model_validate(e) for e in entries],
        "total": len(entries),
    }


@router.post("/{patient_id}/disease-history", response_model=DiseaseHistoryResponse, status_code=201)
async def add_disease_history(
    patient_id: int,
    data: DiseaseHistoryCreate,
    db: AsyncSession = Depends(get_db),
    current_user: UserPrincipal = Depends(require_role("doctor")),
):
    await _get_patient(db, patient_id, current_user)
    entry = await appointment_service.add_disease_history(
        db, patient_id, data.disease_name, data.diagnosed_date
    )
    return DiseaseHistoryResponse.model_validate(entry)
