from datetime import date
from unittest.mock import MagicMock

import pytest
from sqlalchemy.dialects import postgresql

from app.repositories.health_repository import HealthRepository, SideEffectEntry
from app.services.health_intelligence_service import classify_disease
from app.services.medicine_service import classify_repetition, summarize_dependency


class TestDiseasePatterns:

    @pytest.mark.asyncio
    async def test_recurring_disease_marked_chronic(self, repo, service):
        repo.add_patient(1, age=40)
        repo.add_disease(1, "Hypertension", times=4)
        repo.add_disease(1, "Migraine", times=2)

        detection = await service.detect_disease_patterns(1)

        assert detection.ok
        patterns = detection.value
        assert [p.disease_name for p in patterns] == ["Hypertension", "Migraine"]
        assert patterns[0].frequency == 4
        assert patterns[0].is_chronic is True
        assert "chronic" in patterns[0].risk_assessment
        assert patterns[1].is_chronic is False
        assert patterns[1].risk_assessment.startswith("Recurring pattern")

    @pytest.mark.asyncio
    async def test_occurrences_outside_window_ignored(self, repo, service):
        repo.add_patient(1)
        repo.add_disease(1, "Bronchitis", days_ago=400, times=5)

        detection = await service.detect_disease_patterns(1)

        assert detection.ok
        assert detection.value == []

    @pytest.mark.asyncio
    async def test_no_history_is_empty_not_failure(self, repo, service):
        repo.add_patient(1)
        detection = await service.detect_disease_patterns(1)
        assert detection.ok
        assert detection.value == []

    @pytest.mark.asyncio
    async def test_inactive_patient_has_no_patterns(self, repo, service):
        repo.add_patient(1, age=40, active=False)
        repo.add_disease(1, "Hypertension", times=4)

        detection = await service.detect_disease_patterns(1)

        assert detection.ok
        assert detection.value == []

    @pytest.mark.asyncio
    async def test_data_fault_reports_unavailable(self, repo, service):
        repo.add_patient(1)
        repo.failing.add("get_disease_occurrences")

        detection = await service.detect_disease_patterns(1)

        assert not detection.ok
        assert "database unavailable" in detection.error
        assert detection.or_default([]) == []

    def test_single_occurrence_assessment(self):
        pattern = classify_disease("Flu", 1, date(2024, 1, 1), date(2024, 1, 1))
        assert pattern.is_chronic is False
        assert pattern.risk_assessment == "Single occurrence - standard monitoring"


class TestMedicineRepetition:

    @pytest.mark.asyncio
    async def test_threshold_and_dependency_levels(self, repo, medicines):
        repo.add_patient(1)
        repo.add_disease(1, "Hypertension")
        repo.add_disease(1, "Asthma")
        repo.add_prescription(1, "Ibuprofen", times=6)
        repo.add_prescription(1, "Salbutamol", times=3)
        repo.add_prescription(1, "Paracetamol", times=2)

        detection = await medicines.detect_medicine_repetition(1)

        assert detection.ok
        by_name = {m.medicine_name: m for m in detection.value}
        assert "Paracetamol" not in by_name
        assert [m.medicine_name for m in detection.value] == ["Ibuprofen", "Salbutamol"]

        assert by_name["Ibuprofen"].risk_level == "high"
        assert "dependency" in by_name["Ibuprofen"].warning
        assert by_name["Salbutamol"].risk_level == "moderate"
        assert by_name["Salbutamol"].warning.endswith("monitor usage.")
        assert by_name["Salbutamol"].associated_diseases == "Asthma, Hypertension"

    @pytest.mark.asyncio
    async def test_no_repetition_skips_disease_lookup(self, repo, medicines):
        repo.add_patient(1)
        repo.add_prescription(1, "Paracetamol", times=2)
        repo.failing.add("get_patient_disease_names")

        detection = await medicines.detect_medicine_repetition(1)

        assert detection.ok
        assert detection.value == []

    @pytest.mark.asyncio
    async def test_dependency_warnings_summary(self, repo, medicines):
        repo.add_patient(1)
        repo.add_prescription(1, "Ibuprofen", times=5)
        repo.add_prescription(1, "Salbutamol", times=3)

        warnings = await medicines.get_dependency_warnings(1)

        assert warnings.total_repeated_medicines == 2
        assert warnings.high_risk_count == 1
        assert warnings.warnings[0].medicine_name == "Ibuprofen"
        assert warnings.recommendation == "Consult doctor about medicine dependency risks"

    @pytest.mark.asyncio
    async def test_dependency_warnings_when_unavailable(self, repo, medicines):
        repo.failing.add("get_medicine_stats")
        warnings = await medicines.get_dependency_warnings(1)
        assert warnings.recommendation == "Unable to assess"
        assert warnings.total_repeated_medicines == 0

    @pytest.mark.asyncio
    async def test_usage_stats(self, repo, medicines):
        repo.add_patient(1)
        repo.add_prescription(1, "Ibuprofen", times=3)
        repo.add_prescription(1, "Metformin", times=2)

        stats = await medicines.get_usage_stats(1)

        assert stats.total_prescriptions == 5
        assert stats.total_unique_medicines == 2
        assert stats.first_prescription <= stats.latest_prescription

    @pytest.mark.asyncio
    async def test_usage_stats_default_on_fault(self, repo, medicines):
        repo.failing.add("get_prescription_totals")
        stats = await medicines.get_usage_stats(1)
        assert stats.total_prescriptions == 0
        assert stats.first_prescription is None

    def test_summarize_empty(self):
        summary = summarize_dependency([])
        assert summary.high_risk_count == 0
        assert summary.recommendation == "No high-risk medicine dependencies detected"

    def test_boundary_counts(self):
        assert classify_repetition("A", 4, "").risk_level == "moderate"
        assert classify_repetition("A", 5, "").risk_level == "high"
        assert classify_repetition("A", 4, "").associated_diseases is None


class TestAllergyRisks:

    @pytest.mark.asyncio
    async def test_nothing_prescribed(self, repo, service):
        repo.add_patient(1)
        detection = await service.detect_allergy_risks(1)
        assert detection.ok
        assert detection.value.prescription_risks == []
        assert detection.value.known_side_effects == []

    @pytest.mark.asyncio
    async def test_alert_and_frequency_warning(self, repo, service):
        repo.add_patient(1)
        repo.add_prescription(1, "Amoxicillin", allergy=True, side_effect="Rash")
        repo.add_prescription(1, "Ibuprofen", times=4)
        repo.add_prescription(1, "Metformin", times=3)

        risks = (await service.detect_allergy_risks(1)).value

        by_name = {r.medicine_name: r for r in risks.prescription_risks}
        assert set(by_name) == {"Amoxicillin", "Ibuprofen"}
        assert by_name["Amoxicillin"].risk_level == "ALLERGY_ALERT"
        assert by_name["Amoxicillin"].allergy_reports == 1
        assert by_name["Amoxicillin"].reported_side_effects == ["Rash"]
        assert by_name["Ibuprofen"].risk_level == "FREQUENCY_WARNING"
        assert by_name["Ibuprofen"].action == "HIGH FREQUENCY: Ibuprofen prescribed 4 times"

    @pytest.mark.asyncio
    async def test_known_side_effects_ordered_by_severity(self, repo, service):
        repo.add_patient(1)
        repo.add_prescription(1, "Ibuprofen")
        repo.catalog = [
            SideEffectEntry("Ibuprofen", "Stomach upset", "mild"),
            SideEffectEntry("Ibuprofen", "Gastrointestinal bleeding", "severe"),
            SideEffectEntry("Ibuprofen", "Dizziness", "moderate"),
            SideEffectEntry("Warfarin", "Bleeding", "severe"),
        ]

        risks = (await service.detect_allergy_risks(1)).value

        assert [e.severity for e in risks.known_side_effects] == ["severe", "moderate", "mild"]
        assert [e.alert_level for e in risks.known_side_effects] == ["CRITICAL", "WARNING", "INFO"]
        assert all(e.medicine_name == "Ibuprofen" for e in risks.known_side_effects)

    @pytest.mark.asyncio
    async def test_catalog_fault_reports_unavailable(self, repo, service):
        repo.add_patient(1)
        repo.failing.add("get_known_side_effects")
        detection = await service.detect_allergy_risks(1)
        assert not detection.ok

    def test_serialized_with_camel_case_keys(self):
        from app.schemas.health_intelligence import AllergyRisks
        dumped = AllergyRisks().model_dump(by_alias=True)
        assert set(dumped) == {"prescriptionRisks", "knownSideEffects"}

    def test_accepts_field_names_and_aliases(self):
        from app.schemas.health_intelligence import AllergyRisks, HealthIntelligenceReport
        by_name = AllergyRisks(prescription_risks=[])
        by_alias = AllergyRisks(prescriptionRisks=[])
        assert by_name == by_alias

        report = HealthIntelligenceReport(patientId=4)
        assert report.patient_id == 4
        assert HealthIntelligenceReport(patient_id=4).model_dump(by_alias=True)["patientId"] == 4


class RecordingSession:
    """Async session stand-in that keeps every statement it is asked to run."""

    def __init__(self):
        self.statements = []

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        return False

    async def execute(self, statement):
        self.statements.append(statement)
        result = MagicMock()
        result.all.return_value = []
        return result


class TestRepositoryQueries:

    @pytest.mark.asyncio
    async def test_disease_occurrences_only_for_active_patients(self):
        session = RecordingSession()
        repository = HealthRepository(lambda: session)

        assert await repository.get_disease_occurrences(1, since=date(2024, 1, 1)) == []

        [statement] = session.statements
        sql = str(statement.compile(dialect=postgresql.dialect())).lower()
        assert "join patients on patients.id = disease_history.patient_id" in sql
        assert "patients.is_active is true" in sql
        assert "disease_history.diagnosed_date >=" in sql
