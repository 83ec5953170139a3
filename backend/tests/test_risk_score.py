from datetime import date

import pytest
from sqlalchemy.dialects import postgresql

from app.repositories.health_repository import build_risk_score_upsert
from app.services.analytics_service import RISK_DISTRIBUTION_KEY
from app.services.health_intelligence_service import HealthIntelligenceService
from app.services.risk_policies import ENHANCED_POLICY, STANDARD_POLICY, get_policy
from app.utils.dates import utcnow


class TestStandardPolicy:

    def test_age_factor_monotone_and_bounded(self, service):
        previous = -1
        for age in range(0, 121):
            points = STANDARD_POLICY.rules[0].score(age)
            assert 0 <= points <= 15
            assert points >= previous
            previous = points
        assert STANDARD_POLICY.rules[0].score(80) == 15
        assert STANDARD_POLICY.rules[0].score(40) == 7

    @pytest.mark.parametrize("score,level", [
        (0, "low"), (19, "low"), (20, "low"), (40, "moderate"),
        (59, "moderate"), (60, "high"), (79, "high"), (80, "critical"), (100, "critical"),
    ])
    def test_level_thresholds(self, score, level):
        assert STANDARD_POLICY.classify(score).level == level

    def test_fallback_description_below_twenty(self):
        assert STANDARD_POLICY.classify(5).description == "Your health is in good condition"
        assert STANDARD_POLICY.classify(25).description.startswith("LOW RISK")

    def test_scores_clamped_to_max(self, service):
        signals = {
            "age": 120,
            "recent_prescriptions": 50,
            "recent_diagnoses": 40,
            "max_single_disease": 9,
            "allergy_incidents": 12,
        }
        risk = service.score_signals(signals)
        assert risk.score == 100
        assert risk.level == "critical"
        assert risk.breakdown == {
            "age_factor": 15,
            "medicine_usage": 30,
            "disease_frequency": 25,
            "chronic_condition": 10,
            "allergy_incidents": 20,
        }

    def test_get_policy(self):
        assert get_policy("ENHANCED") is ENHANCED_POLICY
        with pytest.raises(ValueError):
            get_policy("experimental")


class TestCalculateRiskScore:

    @pytest.mark.asyncio
    async def test_standard_scenario(self, repo, service):
        repo.add_patient(1, age=64)
        repo.add_disease(1, "Hypertension", times=4)
        repo.add_prescription(1, "Lisinopril", times=4)
        repo.add_prescription(1, "Amoxicillin", allergy=True)

        risk = await service.calculate_risk_score(1)

        assert risk.breakdown == {
            "age_factor": 12,
            "medicine_usage": 15,
            "disease_frequency": 12,
            "chronic_condition": 10,
            "allergy_incidents": 5,
        }
        assert risk.score == 54
        assert risk.level == "moderate"
        assert risk.policy == "standard"

    @pytest.mark.asyncio
    async def test_old_prescriptions_outside_window(self, repo, service):
        repo.add_patient(1, age=30)
        repo.add_prescription(1, "Ibuprofen", times=5, days_ago=90)

        risk = await service.calculate_risk_score(1)

        assert risk.breakdown["medicine_usage"] == 0

    @pytest.mark.asyncio
    async def test_brand_new_patient(self, repo, service):
        repo.add_patient(7, age=None)

        risk = await service.calculate_risk_score(7)

        assert risk.score == 0
        assert risk.level == "low"
        assert risk.description == "Your health is in good condition"
        assert "chronic_condition" not in risk.breakdown
        assert set(risk.breakdown) == {"age_factor", "medicine_usage", "disease_frequency", "allergy_incidents"}

    @pytest.mark.asyncio
    async def test_unknown_patient(self, repo, service, cache):
        risk = await service.calculate_risk_score(404)

        assert risk.score == 0
        assert risk.level == "unknown"
        assert risk.description == "Patient not found"
        assert repo.upsert_calls == 0
        cache.delete.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_data_fault_gives_unknown(self, repo, service):
        repo.add_patient(1, age=50)
        repo.failing.add("get_allergy_incident_count")

        risk = await service.calculate_risk_score(1)

        assert risk.level == "unknown"
        assert risk.description == "Unable to calculate risk score"
        assert repo.upsert_calls == 0

    @pytest.mark.asyncio
    async def test_same_day_recalculation_keeps_one_row(self, repo, service):
        repo.add_patient(1, age=40)
        await service.calculate_risk_score(1)
        repo.add_prescription(1, "Ibuprofen", times=3)
        second = await service.calculate_risk_score(1)

        today = utcnow().date()
        assert repo.upsert_calls == 2
        assert list(repo.scores) == [(1, today)]
        assert repo.scores[(1, today)]["risk_score"] == second.score

    @pytest.mark.asyncio
    async def test_success_invalidates_distribution_cache(self, repo, service, cache):
        repo.add_patient(1, age=40)
        await service.calculate_risk_score(1)
        cache.delete.assert_awaited_once_with(RISK_DISTRIBUTION_KEY)

    @pytest.mark.asyncio
    async def test_enhanced_scenario(self, repo, medicines, cache):
        service = HealthIntelligenceService(repo, medicines, cache, ENHANCED_POLICY)
        repo.add_patient(1, age=65)
        repo.add_disease(1, "Diabetes", times=4)
        repo.add_prescription(1, "Metformin", times=8, doctor_id=3)

        risk = await service.calculate_risk_score(1)

        assert risk.score == 50
        assert risk.level == "high"
        assert risk.policy == "enhanced"
        assert {f.name for f in risk.factors} == {"Age Factor", "Repeated Diseases", "Repeated Medicines"}

    @pytest.mark.asyncio
    async def test_policy_override(self, repo, service):
        repo.add_patient(1, age=65)
        risk = await service.calculate_risk_score(1, policy=ENHANCED_POLICY)
        assert risk.policy == "enhanced"
        assert risk.score == 10
        assert repo.scores[(1, utcnow().date())]["policy"] == "enhanced"


class TestRiskScoreUpsert:

    def test_compiles_to_on_conflict_update(self):
        stmt = build_risk_score_upsert(1, date(2024, 5, 1), 40, "moderate", "standard", [])
        sql = str(stmt.compile(dialect=postgresql.dialect()))
        assert "INSERT INTO health_risk_score " in sql
        assert "ON CONFLICT ON CONSTRAINT uq_health_risk_per_day DO UPDATE" in sql
        assert "calculated_at = now()" in sql


class TestReport:

    @pytest.mark.asyncio
    async def test_report_combines_detectors(self, repo, service):
        repo.add_patient(1, age=30)
        repo.add_disease(1, "Asthma", times=4)
        repo.add_prescription(1, "Amoxicillin", allergy=True)

        report = await service.build_report(1)

        assert report.patient_id == 1
        assert report.disease_patterns[0].disease_name == "Asthma"
        assert report.allergy_risks.prescription_risks[0].risk_level == "ALLERGY_ALERT"
        assert report.risk_score.score == 35
        assert [r.type for r in report.recommendations] == ["ALLERGY_WARNING", "CHRONIC_DISEASE"]

        dumped = report.model_dump(by_alias=True)
        assert {"patientId", "diseasePatterns", "allergyRisks", "riskScore", "recommendations"} <= set(dumped)

    @pytest.mark.asyncio
    async def test_report_survives_detector_faults(self, repo, service):
        repo.add_patient(1, age=30)
        repo.failing.update({"get_disease_occurrences", "get_known_side_effects"})

        report = await service.build_report(1)

        assert report.disease_patterns == []
        assert report.allergy_risks.prescription_risks == []
        assert report.risk_score.level == "unknown"
