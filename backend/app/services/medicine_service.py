from datetime import datetime
from typing import Optional
from app.database import async_session
from app.repositories.health_repository import HealthRepository
from app.schemas.health_intelligence import DependencyWarnings, MedicineRepetition, MedicineUsageStats
from app.services.detection import Detection, run_detection

REPETITION_THRESHOLD = 2   # a medicine must be prescribed more than this to be reported
DEPENDENCY_THRESHOLD = 4   # above this it is flagged "high"


def classify_repetition(
    medicine_name: str,
    count: int,
    associated_diseases: str,
    last_prescribed: Optional[datetime] = None,
) -> MedicineRepetition:
    high = count > DEPENDENCY_THRESHOLD
    if high:
        warning = f"{medicine_name} prescribed {count} times – risk of dependency."
    else:
        warning = f"{medicine_name} prescribed {count} times – monitor usage."
    return MedicineRepetition(
        medicine_name=medicine_name,
        prescription_count=count,
        associated_diseases=associated_diseases or None,
        last_prescribed=last_prescribed,
        risk_level="high" if high else "moderate",
        warning=warning,
    )


def summarize_dependency(repetitions: list[MedicineRepetition]) -> DependencyWarnings:
    warnings = [m for m in repetitions if m.risk_level == "high"]
    return DependencyWarnings(
        total_repeated_medicines=len(repetitions),
        high_risk_count=len(warnings),
        warnings=warnings,
        recommendation=(
            "Consult doctor about medicine dependency risks"
            if warnings
            else "No high-risk medicine dependencies detected"
        ),
    )


class MedicineService:
    def __init__(self, repository: HealthRepository):
        self.repository = repository

    async def _repetitions(self, patient_id: int) -> list[MedicineRepetition]:
        stats = await self.repository.get_medicine_stats(patient_id)
        repeated = [s for s in stats if s.count > REPETITION_THRESHOLD]
        if not repeated:
            return []

        # Diseases are joined through the patient, not the medicine's indication,
        # so every row carries the patient's whole disease list.
        diseases = ", ".join(await self.repository.get_patient_disease_names(patient_id))

        return [
            classify_repetition(s.medicine_name, s.count, diseases, s.last_prescribed)
            for s in sorted(repeated, key=lambda x: x.count, reverse=True)
        ]

    async def detect_medicine_repetition(self, patient_id: int) -> Detection[list[MedicineRepetition]]:
        return await run_detection("Medicine repetition detection", patient_id, self._repetitions(patient_id))

    async def get_dependency_warnings(self, patient_id: int) -> DependencyWarnings:
        detection = await self.detect_medicine_repetition(patient_id)
        if not detection.ok:
            return DependencyWarnings(recommendation="Unable to assess")
        return summarize_dependency(detection.value)

    async def _usage_stats(self, patient_id: int) -> MedicineUsageStats:
        totals = await self.repository.get_prescription_totals(patient_id)
        return MedicineUsageStats(
            total_unique_medicines=totals.unique_medicines,
            total_prescriptions=totals.total_prescriptions,
            first_prescription=totals.first_prescription,
            latest_prescription=totals.latest_prescription,
        )

    async def get_usage_stats(self, patient_id: int) -> MedicineUsageStats:
        detection = await run_detection("Medicine usage stats", patient_id, self._usage_stats(patient_id))
        return detection.or_default(MedicineUsageStats())


medicine_service = MedicineService(HealthRepository(async_session))
