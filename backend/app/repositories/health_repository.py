"""
Read/write queries behind the health intelligence engine.

Every method opens its own short-lived session from the injected session
factory, so independent reads for one patient can be awaited concurrently
with asyncio.gather. Timeouts come from the engine's connect arguments; no
method retries.
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Optional
from sqlalchemy import select, func, case, distinct
from sqlalchemy.dialects.postgresql import array_agg, insert
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from app.exceptions import PatientNotFoundError
from app.models.patient import Patient
from app.models.appointment import Appointment
from app.models.prescription import Prescription
from app.models.disease_history import DiseaseHistory
from app.models.medicine_side_effect import MedicineSideEffect
from app.models.health_risk_score import HealthRiskScore


@dataclass
class DiseaseOccurrence:
    disease_name: str
    count: int
    first_date: date
    last_date: date


@dataclass
class MedicineStat:
    medicine_name: str
    count: int
    first_prescribed: Optional[datetime]
    last_prescribed: Optional[datetime]
    allergy_reports: int = 0
    side_effects: list[str] = field(default_factory=list)


@dataclass
class PrescriptionTotals:
    total_prescriptions: int = 0
    unique_medicines: int = 0
    first_prescription: Optional[datetime] = None
    latest_prescription: Optional[datetime] = None


@dataclass
class SideEffectEntry:
    medicine_name: str
    side_effect: str
    severity: str


SEVERITY_RANK = {"severe": 0, "moderate": 1, "mild": 2}


def build_risk_score_upsert(
    patient_id: int,
    day: date,
    score: int,
    level: str,
    policy: str,
    factors: list[dict],
):
    """INSERT ... ON CONFLICT (patient_id, calculated_on) DO UPDATE, one row per patient per day."""
    stmt = insert(HealthRiskScore).values(
        patient_id=patient_id,
        risk_score=score,
        risk_level=level,
        policy=policy,
        factors=factors,
        calculated_on=day,
    )
    return stmt.on_conflict_do_update(
        constraint="uq_health_risk_per_day",
        set_={
            "risk_score": stmt.excluded.risk_score,
            "risk_level": stmt.excluded.risk_level,
            "policy": stmt.excluded.policy,
            "factors": stmt.excluded.factors,
            "calculated_at": func.now(),
        },
    )


class HealthRepository:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def get_patient_age(self, patient_id: int) -> Optional[int]:
        """Age of an active patient (None when unrecorded). Raises PatientNotFoundError otherwise."""
        async with self._session_factory() as session:
            result = await session.execute(
                select(Patient.id, Patient.age).where(
                    Patient.id == patient_id, Patient.is_active.is_(True)
                )
            )
            row = result.one_or_none()
        if row is None:
            raise PatientNotFoundError(patient_id)
        return row.age

    async def get_disease_occurrences(
        self, patient_id: int, since: Optional[date] = None
    ) -> list[DiseaseOccurrence]:
        frequency = func.count(DiseaseHistory.id).label("frequency")
        query = (
            select(
                DiseaseHistory.disease_name,
                frequency,
                func.min(DiseaseHistory.diagnosed_date).label("first_date"),
                func.max(DiseaseHistory.diagnosed_date).label("last_date"),
            )
            .join(Patient, Patient.id == DiseaseHistory.patient_id)
            .where(DiseaseHistory.patient_id == patient_id, Patient.is_active.is_(True))
            .group_by(DiseaseHistory.disease_name)
            .order_by(frequency.desc(), DiseaseHistory.disease_name)
        )
        if since is not None:
            query = query.where(DiseaseHistory.diagnosed_date >= since)

        async with self._session_factory() as session:
            result = await session.execute(query)
            return [
                DiseaseOccurrence(
                    disease_name=r.disease_name,
                    count=int(r.frequency),
                    first_date=r.first_date,
                    last_date=r.last_date,
                )
                for r in result.all()
            ]

    async def get_patient_disease_names(self, patient_id: int) -> list[str]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(distinct(DiseaseHistory.disease_name))
                .where(DiseaseHistory.patient_id == patient_id)
                .order_by(DiseaseHistory.disease_name)
            )
            return list(result.scalars().all())

    async def get_medicine_stats(self, patient_id: int) -> list[MedicineStat]:
        prescribed = func.count(Prescription.id).label("times_prescribed")
        query = (
            select(
                Prescription.medicine_name,
                prescribed,
                func.min(Prescription.created_at).label("first_prescribed"),
                func.max(Prescription.created_at).label("last_prescribed"),
                func.sum(case((Prescription.reported_allergy.is_(True), 1), else_=0)).label("allergy_reports"),
                array_agg(distinct(Prescription.side_effects))
                .filter(Prescription.side_effects.isnot(None))
                .label("side_effects"),
            )
            .join(Appointment, Prescription.appointment_id == Appointment.id)
            .where(Appointment.patient_id == patient_id)
            .group_by(Prescription.medicine_name)
            .order_by(prescribed.desc(), Prescription.medicine_name)
        )
        async with self._session_factory() as session:
            result = await session.execute(query)
            return [
                MedicineStat(
                    medicine_name=r.medicine_name,
                    count=int(r.times_prescribed),
                    first_prescribed=r.first_prescribed,
                    last_prescribed=r.last_prescribed,
                    allergy_reports=int(r.allergy_reports or 0),
                    side_effects=list(r.side_effects or []),
                )
                for r in result.all()
            ]

    async def get_prescription_totals(
        self, patient_id: int, since: Optional[datetime] = None
    ) -> PrescriptionTotals:
        query = (
            select(
                func.count(Prescription.id).label("total"),
                func.count(distinct(Prescription.medicine_name)).label("unique"),
                func.min(Prescription.created_at).label("first"),
                func.max(Prescription.created_at).label("latest"),
            )
            .join(Appointment, Prescription.appointment_id == Appointment.id)
            .where(Appointment.patient_id == patient_id)
        )
        if since is not None:
            query = query.where(Prescription.created_at >= since)

        async with self._session_factory() as session:
            row = (await session.execute(query)).one()
        return PrescriptionTotals(
            total_prescriptions=int(row.total or 0),
            unique_medicines=int(row.unique or 0),
            first_prescription=row.first,
            latest_prescription=row.latest,
        )

    async def get_allergy_incident_count(self, patient_id: int) -> int:
        async with self._session_factory() as session:
            count = await session.scalar(
                select(func.count(Prescription.id))
                .join(Appointment, Prescription.appointment_id == Appointment.id)
                .where(Appointment.patient_id == patient_id, Prescription.reported_allergy.is_(True))
            )
        return int(count or 0)

    async def get_doctor_count(self, patient_id: int) -> int:
        async with self._session_factory() as session:
            count = await session.scalar(
                select(func.count(distinct(Appointment.doctor_id))).where(
                    Appointment.patient_id == patient_id
                )
            )
        return int(count or 0)

    async def get_known_side_effects(self, patient_id: int) -> list[SideEffectEntry]:
        prescribed_names = (
            select(Prescription.medicine_name)
            .join(Appointment, Prescription.appointment_id == Appointment.id)
            .where(Appointment.patient_id == patient_id)
        )
        severity_order = case(
            *[(MedicineSideEffect.severity == s, rank) for s, rank in SEVERITY_RANK.items()],
            else_=len(SEVERITY_RANK),
        )
        query = (
            select(
                MedicineSideEffect.medicine_name,
                MedicineSideEffect.side_effect,
                MedicineSideEffect.severity,
            )
            .where(MedicineSideEffect.medicine_name.in_(prescribed_names))
            .order_by(severity_order, MedicineSideEffect.medicine_name, MedicineSideEffect.side_effect)
        )
        async with self._session_factory() as session:
            result = await session.execute(query)
            return [
                SideEffectEntry(medicine_name=r.medicine_name, side_effect=r.side_effect, severity=r.severity)
                for r in result.all()
            ]

    async def upsert_risk_score(
        self,
        patient_id: int,
        day: date,
        score: int,
        level: str,
        policy: str,
        factors: list[dict],
    ) -> None:
        async with self._session_factory() as session:
            await session.execute(
                build_risk_score_upsert(patient_id, day, score, level, policy, factors)
            )
            await session.commit()
