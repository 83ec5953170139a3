from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession
from app.auth import require_role, UserPrincipal
from app.database import get_db
from app.exceptions import AppointmentConflictError, AppointmentNotFoundError, UnauthorizedActionError
from app.models.doctor import Doctor
from app.schemas.appointment import AppointmentCreate, AppointmentResponse, AppointmentStatusUpdate, PatientSummary
from app.schemas.prescription import PrescriptionCreate, PrescriptionResponse
from app.services.appointment_service import appointment_service

router = APIRouter()


@router.post("", response_model=AppointmentResponse, status_code=201)
async def book_appointment(
    data: AppointmentCreate,
    db: AsyncSession = Depends(get_db),
    current_user: UserPrincipal = Depends(require_role("patient")),
):
    doctor = await db.get(Doctor, data.doctor_id)
    if not doctor or not doctor.is_active or not doctor.is_verified:
        raise HTTPException(status_code=404, detail=f"Doctor {data.doctor_id} not found")
    try:
        appointment = await appointment_service.book(
            db,
            patient_id=current_user.patient_id,
            doctor_id=data.doctor_id,
            start_time=data.start_time,
            end_time=data.end_time,
            reason=data.reason,
        )
    except AppointmentConflictError as e:
        raise HTTPException(status_code=409, detail=e.reason)
    return AppointmentResponse.model_validate(appointment)


@router.get("/mine")
async def my_appointments(
    db: AsyncSession = Depends(get_db),
    current_user: UserPrincipal = Depends(require_role("patient", "doctor")),
):
    if current_user.role == "doctor":
        appointments = await appointment_service.list_for_doctor(db, current_user.doctor_id)
        return {"appointments": appointments, "total": len(appointments)}

    appointments = await appointment_service.list_for_patient(db, current_user.patient_id)
    return {
        "appointments": [AppointmentResponse.model_validate(a) for a in appointments],
        "total": len(appointments),
    }


@router.get("/summary", response_model=PatientSummary)
async def patient_summary(
    db: AsyncSession = Depends(get_db),
    current_user: UserPrincipal = Depends(require_role("patient")),
):
    return await appointment_service.patient_summary(db, current_user.patient_id)


@router.patch("/{appointment_id}/status", response_model=AppointmentResponse)
async def update_status(
    appointment_id: int,
    data: AppointmentStatusUpdate,
    db: AsyncSession = Depends(get_db),
    current_user: UserPrincipal = Depends(require_role("doctor", "admin")),
):
    try:
        appointment = await appointment_service.update_status(
            db, appointment_id, data.status, doctor_id=current_user.doctor_id
        )
    except AppointmentNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except UnauthorizedActionError as e:
        raise HTTPException(status_code=403, detail=e.reason)
    return AppointmentResponse.model_validate(appointment)


@router.post("/{appointment_id}/prescriptions", response_model=PrescriptionResponse, status_code=201)
async def add_prescription(
    appointment_id: int,
    data: PrescriptionCreate,
    db: AsyncSession = Depends(get_db),
    current_user: UserPrincipal = Depends(require_role("doctor")),
):
    try:
        prescription = await appointment_service.add_prescription(
            db, appointment_id, current_user.doctor_id, **data.model_dump()
        )
    except AppointmentNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except UnauthorizedActionError as e:
        raise HTTPException(status_code=403, detail=e.reason)
    return PrescriptionResponse.model_validate(prescription)
