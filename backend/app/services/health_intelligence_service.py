import asyncio
from datetime import datetime, time, timezone
from typing import Optional
from loguru import logger
from app.config import get_settings
from app.database import async_session
from app.exceptions import PatientNotFoundError
from app.repositories.health_repository import HealthRepository
from app.schemas.health_intelligence import (
    AllergyRisks,
    DiseasePattern,
    HealthIntelligenceReport,
    KnownSideEffect,
    PrescriptionRisk,
    RiskFactor,
    RiskScore,
)
from app.services.analytics_service import RISK_DISTRIBUTION_KEY
from app.services.cache_service import CachePort, get_cache
from app.services.detection import Detection, run_detection
from app.services.medicine_service import DEPENDENCY_THRESHOLD, MedicineService, medicine_service
from app.services.recommendations import generate_recommendations
from app.services.risk_policies import ScoringPolicy, get_policy
from app.utils.dates import months_ago, utcnow

PATTERN_WINDOW_MONTHS = 6
MEDICINE_WINDOW_MONTHS = 2
CHRONIC_FREQUENCY = 3
HIGH_FREQUENCY_PRESCRIPTIONS = 4

ALERT_LEVELS = {"severe": "CRITICAL", "moderate": "WARNING", "mild": "INFO"}


def classify_disease(disease_name: str, frequency: int, first_occurrence, last_occurrence) -> DiseasePattern:
    if frequency >= CHRONIC_FREQUENCY:
        assessment = "Possible chronic condition - recommend specialist consultation"
    elif frequency == 2:
        assessment = "Recurring pattern detected - monitor closely"
    else:
        assessment = "Single occurrence - standard monitoring"
    return DiseasePattern(
        disease_name=disease_name,
        frequency=frequency,
        first_occurrence=first_occurrence,
        last_occurrence=last_occurrence,
        is_chronic=frequency >= CHRONIC_FREQUENCY,
        risk_assessment=assessment,
    )


def unknown_risk_score(policy: Optional[str] = None) -> RiskScore:
    return RiskScore(score=0, level="unknown", description="Unable to calculate risk score", policy=policy)


class HealthIntelligenceService:
    def __init__(
        self,
        repository: HealthRepository,
        medicines: MedicineService,
        cache: CachePort,
        policy: ScoringPolicy,
    ):
        self.repository = repository
        self.medicines = medicines
        self.cache = cache
        self.policy = policy

    # --- Disease pattern detection -------------------------------------------------

    async def _disease_patterns(self, patient_id: int) -> list[DiseasePattern]:
        since = months_ago(PATTERN_WINDOW_MONTHS)
        occurrences = await self.repository.get_disease_occurrences(patient_id, since=since)
        patterns = [
            classify_disease(o.disease_name, o.count, o.first_date, o.last_date)
            for o in occurrences
        ]
        return sorted(patterns, key=lambda p: p.frequency, reverse=True)

    async def detect_disease_patterns(self, patient_id: int) -> Detection[list[DiseasePattern]]:
        return await run_detection("Disease pattern detection", patient_id, self._disease_patterns(patient_id))

    # --- Allergy / side-effect detection -------------------------------------------

    async def _allergy_risks(self, patient_id: int) -> AllergyRisks:
        stats, catalog = await asyncio.gather(
            self.repository.get_medicine_stats(patient_id),
            self.repository.get_known_side_effects(patient_id),
        )

        prescription_risks = []
        for s in stats:
            if s.allergy_reports == 0 and s.count < HIGH_FREQUENCY_PRESCRIPTIONS:
                continue
            if s.allergy_reports > 0:
                level = "ALLERGY_ALERT"
                action = f"ALLERGY RISK: {s.medicine_name} has {s.allergy_reports} allergy report(s)"
            else:
                level = "FREQUENCY_WARNING"
                action = f"HIGH FREQUENCY: {s.medicine_name} prescribed {s.count} times"
            prescription_risks.append(PrescriptionRisk(
                medicine_name=s.medicine_name,
                times_prescribed=s.count,
                allergy_reports=s.allergy_reports,
                reported_side_effects=sorted(set(s.side_effects)),
                risk_level=level,
                action=action,
            ))

        known_side_effects = [
            KnownSideEffect(
                medicine_name=e.medicine_name,
                side_effect=e.side_effect,
                severity=e.severity,
                alert_level=ALERT_LEVELS.get(e.severity, "INFO"),
            )
            for e in catalog
        ]
        return AllergyRisks(prescription_risks=prescription_risks, known_side_effects=known_side_effects)

    async def detect_allergy_risks(self, patient_id: int) -> Detection[AllergyRisks]:
        return await run_detection("Allergy detection", patient_id, self._allergy_risks(patient_id))

    # --- Risk score ------------------------------------------------------------------

    async def _signal_patient(self, patient_id: int) -> dict:
        age = await self.repository.get_patient_age(patient_id)
        return {"age": age or 0}

    async def _signal_recent_prescriptions(self, patient_id: int) -> dict:
        since = datetime.combine(months_ago(MEDICINE_WINDOW_MONTHS), time.min, tzinfo=timezone.utc)
        totals = await self.repository.get_prescription_totals(patient_id, since=since)
        return {"recent_prescriptions": totals.total_prescriptions}

    async def _signal_total_prescriptions(self, patient_id: int) -> dict:
        totals = await self.repository.get_prescription_totals(patient_id)
        return {"total_prescriptions": totals.total_prescriptions}

    async def _signal_recent_diseases(self, patient_id: int) -> dict:
        since = months_ago(PATTERN_WINDOW_MONTHS)
        occurrences = await self.repository.get_disease_occurrences(patient_id, since=since)
        return {
            "recent_diagnoses": sum(o.count for o in occurrences),
            "max_single_disease": max((o.count for o in occurrences), default=0),
        }

    async def _signal_disease_history(self, patient_id: int) -> dict:
        occurrences = await self.repository.get_disease_occurrences(patient_id)
        return {"repeated_diseases": sum(1 for o in occurrences if o.count >= CHRONIC_FREQUENCY)}

    async def _signal_allergies(self, patient_id: int) -> dict:
        return {"allergy_incidents": await self.repository.get_allergy_incident_count(patient_id)}

    async def _signal_doctors(self, patient_id: int) -> dict:
        return {"doctor_count": await self.repository.get_doctor_count(patient_id)}

    async def _signal_medicine_repetition(self, patient_id: int) -> dict:
        detection = await self.medicines.detect_medicine_repetition(patient_id)
        if not detection.ok:
            raise RuntimeError(f"medicine repetition unavailable: {detection.error}")
        high = [m for m in detection.value if m.prescription_count > DEPENDENCY_THRESHOLD]
        return {"high_risk_medicines": len(high)}

    SIGNAL_SOURCES = {
        "age": "_signal_patient",
        "recent_prescriptions": "_signal_recent_prescriptions",
        "total_prescriptions": "_signal_total_prescriptions",
        "recent_diagnoses": "_signal_recent_diseases",
        "max_single_disease": "_signal_recent_diseases",
        "repeated_diseases": "_signal_disease_history",
        "allergy_incidents": "_signal_allergies",
        "doctor_count": "_signal_doctors",
        "high_risk_medicines": "_signal_medicine_repetition",
    }

    async def _load_signals(self, patient_id: int, policy: ScoringPolicy) -> dict[str, int]:
        # The patient lookup always runs: it is the existence check.
        sources = sorted({self.SIGNAL_SOURCES[s] for s in policy.signals | {"age"}})
        results = await asyncio.gather(*(getattr(self, name)(patient_id) for name in sources))
        signals: dict[str, int] = {}
        for r in results:
            signals.update(r)
        return signals

    def score_signals(self, signals: dict[str, int], policy: Optional[ScoringPolicy] = None) -> RiskScore:
        """Pure scoring step: apply the policy's factor table to already-loaded signals."""
        policy = policy or self.policy
        factors: list[RiskFactor] = []
        total = 0
        for rule in policy.rules:
            value = signals.get(rule.signal, 0)
            points = rule.score(value)
            total += points
            if points > 0 or rule.always_report:
                factors.append(RiskFactor(
                    key=rule.key,
                    name=rule.name,
                    value=value,
                    points=points,
                    description=rule.describe(value, points),
                ))

        score = min(policy.max_score, total)
        level = policy.classify(score)
        return RiskScore(
            score=score,
            level=level.level,
            description=level.description,
            policy=policy.name,
            factors=factors,
        )

    async def calculate_risk_score(self, patient_id: int, policy: Optional[ScoringPolicy] = None) -> RiskScore:
        policy = policy or self.policy
        try:
            signals = await self._load_signals(patient_id, policy)
            risk = self.score_signals(signals, policy)
            risk.calculated_at = utcnow()
            await self.repository.upsert_risk_score(
                patient_id=patient_id,
                day=risk.calculated_at.date(),
                score=risk.score,
                level=risk.level,
                policy=policy.name,
                factors=[f.model_dump() for f in risk.factors],
            )
        except PatientNotFoundError:
            logger.info(f"Risk score requested for unknown patient {patient_id}")
            return RiskScore(score=0, level="unknown", description="Patient not found", policy=policy.name)
        except Exception as e:
            logger.opt(exception=e).error(f"Health risk score calculation failed for patient {patient_id}: {e}")
            return unknown_risk_score(policy.name)

        await self.cache.delete(RISK_DISTRIBUTION_KEY)
        logger.debug(f"Risk score for patient {patient_id}: {risk.score} ({risk.level}, policy={policy.name})")
        return risk

    # --- Report ----------------------------------------------------------------------

    async def build_report(self, patient_id: int) -> HealthIntelligenceReport:
        patterns, allergies, risk = await asyncio.gather(
            self.detect_disease_patterns(patient_id),
            self.detect_allergy_risks(patient_id),
            self.calculate_risk_score(patient_id),
        )
        disease_patterns = patterns.or_default([])
        allergy_risks = allergies.or_default(AllergyRisks())
        return HealthIntelligenceReport(
            patient_id=patient_id,
            disease_patterns=disease_patterns,
            allergy_risks=allergy_risks,
            risk_score=risk,
            recommendations=generate_recommendations(
                disease_patterns,
                allergy_risks,
                risk,
                medicine_alert_points=self.policy.medicine_alert_points,
            ),
        )


health_intelligence_service = HealthIntelligenceService(
    repository=HealthRepository(async_session),
    medicines=medicine_service,
    cache=get_cache(),
    policy=get_policy(get_settings().risk_scoring_policy),
)
