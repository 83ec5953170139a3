from datetime import datetime
from typing import Optional
from loguru import logger
from sqlalchemy import select, func, or_
from sqlalchemy.ext.asyncio import AsyncSession
from app.config import get_settings
from app.exceptions import AppointmentConflictError, AppointmentNotFoundError, UnauthorizedActionError
from app.models.appointment import ACTIVE_STATUSES, Appointment
from app.models.disease_history import DiseaseHistory
from app.models.prescription import Prescription
from app.schemas.appointment import AppointmentResponse
from app.schemas.prescription import PrescriptionResponse
from app.services.cache_service import CachePort, cache_key, get_cache
from app.utils.dates import utcnow

PATIENT_SUMMARY = "patient_summary"
DOCTOR_APPOINTMENTS = "doctor_appointments"


def patient_summary_key(patient_id: int) -> str:
    return cache_key(PATIENT_SUMMARY, patient_id)


def doctor_appointments_key(doctor_id: int) -> str:
    return cache_key(DOCTOR_APPOINTMENTS, doctor_id)


def _serialize(appointment: Appointment) -> dict:
    return AppointmentResponse.model_validate(appointment).model_dump(mode="json")


class AppointmentService:
    def __init__(self, cache: CachePort, ttl_seconds: int):
        self.cache = cache
        self.ttl_seconds = ttl_seconds

    async def _commit_and_invalidate(self, db: AsyncSession, *keys: str) -> None:
        # Keys are dropped only once the write is visible to other sessions.
        await db.commit()
        await self.cache.delete(*keys)

    async def has_overlap(
        self,
        db: AsyncSession,
        patient_id: int,
        doctor_id: int,
        start_time: datetime,
        end_time: datetime,
    ) -> bool:
        count = await db.scalar(
            select(func.count(Appointment.id)).where(
                Appointment.status.in_(ACTIVE_STATUSES),
                or_(Appointment.patient_id == patient_id, Appointment.doctor_id == doctor_id),
                Appointment.start_time < end_time,
                Appointment.end_time > start_time,
            )
        )
        return (count or 0) > 0

    async def book(
        self,
        db: AsyncSession,
        patient_id: int,
        doctor_id: int,
        start_time: datetime,
        end_time: datetime,
        reason: Optional[str] = None,
    ) -> Appointment:
        if end_time <= start_time:
            raise AppointmentConflictError("Appointment must end after it starts")
        if await self.has_overlap(db, patient_id, doctor_id, start_time, end_time):
            raise AppointmentConflictError("Patient or doctor already has an appointment in this slot")

        appointment = Appointment(
            patient_id=patient_id,
            doctor_id=doctor_id,
            start_time=start_time,
            end_time=end_time,
            reason=reason,
            status="pending",
        )
        db.add(appointment)
        await db.flush()
        await db.refresh(appointment)

        await self._commit_and_invalidate(db, patient_summary_key(patient_id), doctor_appointments_key(doctor_id))
        logger.info(f"Appointment {appointment.id} booked: patient {patient_id} with doctor {doctor_id}")
        return appointment

    async def get(self, db: AsyncSession, appointment_id: int) -> Appointment:
        appointment = await db.get(Appointment, appointment_id)
        if appointment is None:
            raise AppointmentNotFoundError(appointment_id)
        return appointment

    async def update_status(
        self, db: AsyncSession, appointment_id: int, status: str, doctor_id: Optional[int] = None
    ) -> Appointment:
        appointment = await self.get(db, appointment_id)
        if doctor_id is not None and appointment.doctor_id != doctor_id:
            raise UnauthorizedActionError("doctor is not assigned to this appointment")

        appointment.status = status
        await db.flush()
        await db.refresh(appointment)
        await self._commit_and_invalidate(
            db,
            patient_summary_key(appointment.patient_id),
            doctor_appointments_key(appointment.doctor_id),
        )
        return appointment

    async def list_for_patient(self, db: AsyncSession, patient_id: int) -> list[Appointment]:
        result = await db.execute(
            select(Appointment)
            .where(Appointment.patient_id == patient_id)
            .order_by(Appointment.start_time.desc())
        )
        return list(result.scalars().all())

    async def list_for_doctor(self, db: AsyncSession, doctor_id: int) -> list[dict]:
        key = doctor_appointments_key(doctor_id)
        cached = await self.cache.get(key)
        if cached is not None:
            return cached

        result = await db.execute(
            select(Appointment)
            .where(Appointment.doctor_id == doctor_id)
            .order_by(Appointment.start_time.asc())
        )
        appointments = [_serialize(a) for a in result.scalars().all()]
        await self.cache.set(key, appointments, self.ttl_seconds)
        return appointments

    async def patient_summary(self, db: AsyncSession, patient_id: int) -> dict:
        key = patient_summary_key(patient_id)
        cached = await self.cache.get(key)
        if cached is not None:
            return cached

        upcoming_result = await db.execute(
            select(Appointment)
            .where(
                Appointment.patient_id == patient_id,
                Appointment.status.in_(ACTIVE_STATUSES),
                Appointment.start_time >= utcnow(),
            )
            .order_by(Appointment.start_time.asc())
            .limit(5)
        )
        prescriptions_result = await db.execute(
            select(Prescription)
            .join(Appointment, Prescription.appointment_id == Appointment.id)
            .where(Appointment.patient_id == patient_id)
            .order_by(Prescription.created_at.desc())
            .limit(5)
        )
        total_appointments = await db.scalar(
            select(func.count(Appointment.id)).where(Appointment.patient_id == patient_id)
        ) or 0
        completed = await db.scalar(
            select(func.count(Appointment.id)).where(
                Appointment.patient_id == patient_id, Appointment.status == "completed"
            )
        ) or 0
        diseases = await db.scalar(
            select(func.count(DiseaseHistory.id)).where(DiseaseHistory.patient_id == patient_id)
        ) or 0

        summary = {
            "upcoming": [_serialize(a) for a in upcoming_result.scalars().all()],
            "prescriptions": [
                PrescriptionResponse.model_validate(p).model_dump(mode="json")
                for p in prescriptions_result.scalars().all()
            ],
            "summary": {
                "total_appointments": total_appointments,
                "completed_appointments": completed,
                "recorded_diseases": diseases,
            },
        }
        await self.cache.set(key, summary, self.ttl_seconds)
        return summary

    # --- Consult flow ----------------------------------------------------------------

    async def add_prescription(self, db: AsyncSession, appointment_id: int, doctor_id: Optional[int], **fields) -> Prescription:
        appointment = await self.get(db, appointment_id)
        if doctor_id is not None and appointment.doctor_id != doctor_id:
            raise UnauthorizedActionError("doctor is not assigned to this appointment")

        prescription = Prescription(appointment_id=appointment_id, **fields)
        db.add(prescription)
        await db.flush()
        await db.refresh(prescription)
        await self._commit_and_invalidate(db, patient_summary_key(appointment.patient_id))
        return prescription

    async def add_disease_history(self, db: AsyncSession, patient_id: int, disease_name: str, diagnosed_date) -> DiseaseHistory:
        entry = DiseaseHistory(patient_id=patient_id, disease_name=disease_name, diagnosed_date=diagnosed_date)
        db.add(entry)
        await db.flush()
        await db.refresh(entry)
        await self._commit_and_invalidate(db, patient_summary_key(patient_id))
        return entry

    async def list_disease_history(self, db: AsyncSession, patient_id: int) -> list[DiseaseHistory]:
        result = await db.execute(
            select(DiseaseHistory)
            .where(DiseaseHistory.patient_id == patient_id)
            .order_by(DiseaseHistory.diagnosed_date.desc())
        )
        return list(result.scalars().all())

    async def list_prescriptions(self, db: AsyncSession, patient_id: int) -> list[Prescription]:
        result = await db.execute(
            select(Prescription)
            .join(Appointment, Prescription.appointment_id == Appointment.id)
            .where(Appointment.patient_id == patient_id)
            .order_by(Prescription.created_at.desc())
        )
        return list(result.scalars().all())


appointment_service = AppointmentService(get_cache(), get_settings().cache_ttl_seconds)
