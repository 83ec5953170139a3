"""
Admin operations over doctor and patient accounts, plus the audit trail.

Every state change is written to audit_logs in the same transaction as the
change itself and echoed to the application log.
"""

from typing import Optional
from loguru import logger
from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession
from app.exceptions import DoctorNotFoundError, PatientNotFoundError
from app.models.audit_log import AuditLog
from app.models.doctor import Doctor
from app.models.patient import Patient

AUDIT_LOG_LIMIT = 100


class AdminService:

    async def audit(
        self,
        db: AsyncSession,
        user_role: str,
        action: str,
        action_type: str,
        details: Optional[dict] = None,
        user_id: Optional[int] = None,
    ) -> AuditLog:
        entry = AuditLog(
            user_id=user_id,
            user_role=user_role,
            action=action,
            action_type=action_type,
            details=details or {},
        )
        db.add(entry)
        logger.info(f"[audit] {user_role}:{user_id} {action_type} - {action}")
        return entry

    # --- Doctors ----------------------------------------------------------------

    async def _get_doctor(self, db: AsyncSession, doctor_id: int) -> Doctor:
        doctor = await db.get(Doctor, doctor_id)
        if doctor is None:
            raise DoctorNotFoundError(doctor_id)
        return doctor

    async def list_doctors(self, db: AsyncSession) -> dict:
        result = await db.execute(select(Doctor).order_by(Doctor.name))
        doctors = list(result.scalars().all())
        active = sum(1 for d in doctors if d.is_active)
        return {"doctors": doctors, "total": len(doctors), "active": active, "inactive": len(doctors) - active}

    async def list_unverified_doctors(self, db: AsyncSession) -> list[Doctor]:
        result = await db.execute(
            select(Doctor).where(Doctor.is_verified.is_(False)).order_by(Doctor.name)
        )
        return list(result.scalars().all())

    async def verify_doctor(self, db: AsyncSession, doctor_id: int, admin: str) -> Doctor:
        doctor = await self._get_doctor(db, doctor_id)
        doctor.is_verified = True
        await self.audit(
            db, "admin", f"Verified doctor: {doctor.name}", "verify",
            {"doctor_id": doctor_id, "by": admin},
        )
        await db.commit()
        return doctor

    async def set_doctor_active(self, db: AsyncSession, doctor_id: int, active: bool, admin: str) -> Doctor:
        doctor = await self._get_doctor(db, doctor_id)
        doctor.is_active = active
        verb = "Activated" if active else "Deactivated"
        await self.audit(
            db, "admin", f"{verb} doctor: {doctor.name}", "update",
            {"doctor_id": doctor_id, "is_active": active, "by": admin},
        )
        await db.commit()
        return doctor

    # --- Patients ---------------------------------------------------------------

    async def list_patients(self, db: AsyncSession) -> dict:
        result = await db.execute(select(Patient).order_by(Patient.name))
        patients = list(result.scalars().all())
        active = sum(1 for p in patients if p.is_active)
        return {"patients": patients, "total": len(patients), "active": active, "inactive": len(patients) - active}

    async def set_patient_active(self, db: AsyncSession, patient_id: int, active: bool, admin: str) -> Patient:
        patient = await db.get(Patient, patient_id)
        if patient is None:
            raise PatientNotFoundError(patient_id)
        patient.is_active = active
        verb = "Activated" if active else "Deactivated"
        await self.audit(
            db, "admin", f"{verb} patient: {patient.name}", "update",
            {"patient_id": patient_id, "is_active": active, "by": admin},
        )
        await db.commit()
        return patient

    # --- Audit trail ------------------------------------------------------------

    async def list_audit_logs(
        self, db: AsyncSession, limit: int = AUDIT_LOG_LIMIT, action_type: Optional[str] = None
    ) -> dict:
        query = select(AuditLog).order_by(AuditLog.timestamp.desc(), AuditLog.id.desc())
        if action_type:
            query = query.where(AuditLog.action_type == action_type)

        total = await db.scalar(select(func.count()).select_from(query.subquery())) or 0
        result = await db.execute(query.limit(limit))
        return {"logs": list(result.scalars().all()), "total": total}


admin_service = AdminService()
