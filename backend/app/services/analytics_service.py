from datetime import datetime, time, timezone
from loguru import logger
from sqlalchemy import select, func, case, distinct
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from app.config import get_settings
from app.models.patient import Patient
from app.models.doctor import Doctor
from app.models.appointment import Appointment
from app.models.prescription import Prescription
from app.models.disease_history import DiseaseHistory
from app.models.health_risk_score import HealthRiskScore
from app.services.cache_service import CachePort, cache_key, get_cache
from app.utils.dates import months_ago

DASHBOARD_STATS_KEY = cache_key("admin_dashboard", "stats")
RISK_DISTRIBUTION_KEY = cache_key("analytics", "risk_distribution")

RISK_LEVELS = ("low", "moderate", "high", "critical")

COUNTED_MODELS = (
    ("total_patients", Patient),
    ("total_doctors", Doctor),
    ("total_appointments", Appointment),
    ("total_prescriptions", Prescription),
    ("total_diseases_recorded", DiseaseHistory),
)


class AnalyticsService:
    def __init__(self, cache: CachePort, ttl_seconds: int):
        self.cache = cache
        self.ttl_seconds = ttl_seconds

    async def get_system_stats(self, db: AsyncSession) -> dict:
        cached = await self.cache.get(DASHBOARD_STATS_KEY)
        if cached is not None:
            return cached

        totals = {name: 0 for name, _ in COUNTED_MODELS}
        try:
            for name, model in COUNTED_MODELS:
                totals[name] = await db.scalar(select(func.count(model.id))) or 0

            status_rows = await db.execute(
                select(Appointment.status, func.count(Appointment.id)).group_by(Appointment.status)
            )
        except SQLAlchemyError as e:
            logger.error(f"System stats failed: {e}")
            return {**{name: 0 for name in totals}, "appointment_status_distribution": {}}
        stats = {
            **totals,
            "appointment_status_distribution": {status: int(count) for status, count in status_rows.all()},
        }
        await self.cache.set(DASHBOARD_STATS_KEY, stats, self.ttl_seconds)
        return stats

    async def get_disease_analytics(self, db: AsyncSession, limit: int = 10) -> list[dict]:
        count = func.count(DiseaseHistory.id).label("count")
        try:
            result = await db.execute(
                select(
                    DiseaseHistory.disease_name,
                    count,
                    func.count(distinct(DiseaseHistory.patient_id)).label("affected_patients"),
                    func.max(DiseaseHistory.diagnosed_date).label("last_diagnosed"),
                )
                .group_by(DiseaseHistory.disease_name)
                .order_by(count.desc())
                .limit(limit)
            )
        except SQLAlchemyError as e:
            logger.error(f"Disease analytics failed: {e}")
            return []
        return [dict(r._mapping) for r in result.all()]

    async def get_medicine_analytics(self, db: AsyncSession, limit: int = 10) -> list[dict]:
        count = func.count(Prescription.id).label("prescription_count")
        try:
            result = await db.execute(
                select(
                    Prescription.medicine_name,
                    count,
                    func.count(distinct(Appointment.patient_id)).label("unique_patients"),
                    func.max(Prescription.created_at).label("last_used"),
                )
                .join(Appointment, Prescription.appointment_id == Appointment.id)
                .group_by(Prescription.medicine_name)
                .order_by(count.desc())
                .limit(limit)
            )
        except SQLAlchemyError as e:
            logger.error(f"Medicine analytics failed: {e}")
            return []
        return [dict(r._mapping) for r in result.all()]

    async def get_appointment_analytics(self, db: AsyncSession) -> list[dict]:
        try:
            result = await db.execute(
                select(Appointment.status, func.count(Appointment.id).label("count"))
                .group_by(Appointment.status)
            )
            rows = result.all()
        except SQLAlchemyError as e:
            logger.error(f"Appointment analytics failed: {e}")
            return []
        total = sum(r.count for r in rows)
        return [
            {
                "status": r.status,
                "count": r.count,
                "percentage": round(r.count * 100.0 / total, 2) if total else 0.0,
            }
            for r in rows
        ]

    async def get_doctor_analytics(self, db: AsyncSession) -> list[dict]:
        total = func.count(Appointment.id).label("total_appointments")
        completed = func.count(case((Appointment.status == "completed", 1))).label("completed_appointments")
        try:
            result = await db.execute(
                select(
                    Doctor.id.label("doctor_id"),
                    Doctor.name,
                    Doctor.specialization,
                    total,
                    completed,
                    func.count(distinct(Appointment.patient_id)).label("unique_patients"),
                )
                .outerjoin(Appointment, Appointment.doctor_id == Doctor.id)
                .group_by(Doctor.id, Doctor.name, Doctor.specialization)
                .order_by(total.desc())
            )
        except SQLAlchemyError as e:
            logger.error(f"Doctor analytics failed: {e}")
            return []
        doctors = []
        for r in result.all():
            row = dict(r._mapping)
            row["completion_rate"] = (
                round(r.completed_appointments * 100.0 / r.total_appointments, 2)
                if r.total_appointments else 0.0
            )
            doctors.append(row)
        return doctors

    async def get_specialization_analytics(self, db: AsyncSession) -> list[dict]:
        total = func.count(Appointment.id).label("total_appointments")
        try:
            result = await db.execute(
                select(
                    Doctor.specialization,
                    func.count(distinct(Doctor.id)).label("doctor_count"),
                    total,
                    func.count(distinct(Appointment.patient_id)).label("unique_patients"),
                )
                .outerjoin(Appointment, Appointment.doctor_id == Doctor.id)
                .group_by(Doctor.specialization)
                .order_by(total.desc(), Doctor.specialization)
            )
        except SQLAlchemyError as e:
            logger.error(f"Specialization analytics failed: {e}")
            return []
        return [dict(r._mapping) for r in result.all()]

    async def get_monthly_trends(self, db: AsyncSession, months: int = 12) -> list[dict]:
        since = datetime.combine(months_ago(months), time.min, tzinfo=timezone.utc)
        month = func.to_char(Appointment.start_time, "YYYY-MM").label("month")
        try:
            result = await db.execute(
                select(
                    month,
                    func.count(Appointment.id).label("count"),
                    func.count(case((Appointment.status == "completed", 1))).label("completed"),
                )
                .where(Appointment.start_time >= since)
                .group_by(month)
                .order_by(month)
            )
        except SQLAlchemyError as e:
            logger.error(f"Monthly trends failed: {e}")
            return []
        return [dict(r._mapping) for r in result.all()]

    async def get_risk_distribution(self, db: AsyncSession) -> dict:
        """Latest score per patient, bucketed by level. Invalidated whenever a score is upserted."""
        cached = await self.cache.get(RISK_DISTRIBUTION_KEY)
        if cached is not None:
            return cached

        latest = (
            select(
                HealthRiskScore.patient_id,
                func.max(HealthRiskScore.calculated_on).label("calculated_on"),
            )
            .group_by(HealthRiskScore.patient_id)
            .subquery()
        )
        try:
            result = await db.execute(
                select(HealthRiskScore.risk_level, func.count(HealthRiskScore.id))
                .join(
                    latest,
                    (HealthRiskScore.patient_id == latest.c.patient_id)
                    & (HealthRiskScore.calculated_on == latest.c.calculated_on),
                )
                .group_by(HealthRiskScore.risk_level)
            )
            counts = {level: int(count) for level, count in result.all()}
            top = await db.execute(
                select(HealthRiskScore.patient_id, Patient.name, HealthRiskScore.risk_score, HealthRiskScore.risk_level)
                .join(
                    latest,
                    (HealthRiskScore.patient_id == latest.c.patient_id)
                    & (HealthRiskScore.calculated_on == latest.c.calculated_on),
                )
                .join(Patient, Patient.id == HealthRiskScore.patient_id)
                .where(HealthRiskScore.risk_level.in_(("high", "critical")))
                .order_by(HealthRiskScore.risk_score.desc())
                .limit(20)
            )
            top_patients = [dict(r._mapping) for r in top.all()]
        except SQLAlchemyError as e:
            logger.error(f"Risk distribution failed: {e}")
            return {"levels": {level: 0 for level in RISK_LEVELS}, "high_risk_patients": []}

        distribution = {
            "levels": {level: counts.get(level, 0) for level in RISK_LEVELS},
            "high_risk_patients": top_patients,
        }
        await self.cache.set(RISK_DISTRIBUTION_KEY, distribution, self.ttl_seconds)
        return distribution

    async def get_dashboard(self, db: AsyncSession) -> dict:
        stats = await self.get_system_stats(db)
        diseases = await self.get_disease_analytics(db)
        medicines = await self.get_medicine_analytics(db)
        specializations = await self.get_specialization_analytics(db)
        risk = await self.get_risk_distribution(db)
        return {
            "stats": stats,
            "top_diseases": diseases,
            "top_medicines": medicines,
            "specializations": specializations,
            "risk": risk,
        }


analytics_service = AnalyticsService(get_cache(), get_settings().cache_ttl_seconds)
