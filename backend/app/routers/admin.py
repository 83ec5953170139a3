from typing import Optional
from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession
from app.auth import require_role, UserPrincipal
from app.database import get_db
from app.exceptions import DoctorNotFoundError, PatientNotFoundError
from app.models.audit_log import AUDIT_ACTION_TYPES
from app.schemas.admin import AuditLogResponse, DoctorListing, DoctorResponse, PatientListing
from app.schemas.patient import PatientResponse
from app.services.admin_service import AUDIT_LOG_LIMIT, admin_service

require_admin = require_role("admin")

router = APIRouter(dependencies=[Depends(require_admin)])


# --- Doctors ------------------------------------------------------------------

@router.get("/doctors", response_model=DoctorListing)
async def list_doctors(db: AsyncSession = Depends(get_db)):
    listing = await admin_service.list_doctors(db)
    return DoctorListing(**{**listing, "doctors": [DoctorResponse.model_validate(d) for d in listing["doctors"]]})


@router.get("/doctors/unverified")
async def list_unverified_doctors(db: AsyncSession = Depends(get_db)):
    doctors = await admin_service.list_unverified_doctors(db)
    return {"doctors": [DoctorResponse.model_validate(d) for d in doctors], "total": len(doctors)}


@router.post("/doctors/{doctor_id}/verify", response_model=DoctorResponse)
async def verify_doctor(
    doctor_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: UserPrincipal = Depends(require_admin),
):
    try:
        doctor = await admin_service.verify_doctor(db, doctor_id, current_user.username)
    except DoctorNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return DoctorResponse.model_validate(doctor)


async def _set_doctor_active(db: AsyncSession, doctor_id: int, active: bool, admin: str) -> DoctorResponse:
    try:
        doctor = await admin_service.set_doctor_active(db, doctor_id, active, admin)
    except DoctorNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return DoctorResponse.model_validate(doctor)


@router.post("/doctors/{doctor_id}/activate", response_model=DoctorResponse)
async def activate_doctor(
    doctor_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: UserPrincipal = Depends(require_admin),
):
    return await _set_doctor_active(db, doctor_id, True, current_user.username)


@router.post("/doctors/{doctor_id}/deactivate", response_model=DoctorResponse)
async def deactivate_doctor(
    doctor_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: UserPrincipal = Depends(require_admin),
):
    return await _set_doctor_active(db, doctor_id, False, current_user.username)


# --- Patients -----------------------------------------------------------------

@router.get("/patients", response_model=PatientListing)
async def list_patients(db: AsyncSession = Depends(get_db)):
    listing = await admin_service.list_patients(db)
    return PatientListing(**{**listing, "patients": [PatientResponse.model_validate(p) for p in listing["patients"]]})


async def _set_patient_active(db: AsyncSession, patient_id: int, active: bool, admin: str) -> PatientResponse:
    try:
        patient = await admin_service.set_patient_active(db, patient_id, active, admin)
    except PatientNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return PatientResponse.model_validate(patient)


@router.post("/patients/{patient_id}/activate", response_model=PatientResponse)
async def activate_patient(
    patient_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: UserPrincipal = Depends(require_admin),
):
    return await _set_patient_active(db, patient_id, True, current_user.username)


@router.post("/patients/{patient_id}/deactivate", response_model=PatientResponse)
async def deactivate_patient(
    patient_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: UserPrincipal = Depends(require_admin),
):
    return await _set_patient_active(db, patient_id, False, current_user.username)


# --- Audit trail --------------------------------------------------------------

@router.get("/audit-logs")
async def audit_logs(
    limit: int = Query(AUDIT_LOG_LIMIT, ge=1, le=500),
    action_type: Optional[str] = Query(None),
    db: AsyncSession = Depends(get_db),
):
    if action_type and action_type not in AUDIT_ACTION_TYPES:
        raise HTTPException(status_code=400, detail=f"Unknown action type '{action_type}'")
    page = await admin_service.list_audit_logs(db, limit=limit, action_type=action_type)
    return {
        "logs": [AuditLogResponse.model_validate(entry) for entry in page["logs"]],
        "total": page["total"],
    }
