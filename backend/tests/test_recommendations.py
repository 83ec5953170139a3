from datetime import date

from app.schemas.health_intelligence import (
    AllergyRisks,
    DiseasePattern,
    PrescriptionRisk,
    RiskFactor,
    RiskScore,
)
from app.services.recommendations import generate_recommendations


def _pattern(name: str, frequency: int) -> DiseasePattern:
    return DiseasePattern(
        disease_name=name,
        frequency=frequency,
        first_occurrence=date(2024, 1, 1),
        last_occurrence=date(2024, 3, 1),
        is_chronic=frequency >= 3,
        risk_assessment="",
    )


def _allergy(name: str) -> PrescriptionRisk:
    return PrescriptionRisk(
        medicine_name=name,
        times_prescribed=1,
        allergy_reports=1,
        risk_level="ALLERGY_ALERT",
        action="",
    )


def _risk(level: str, medicine_points: int = 0) -> RiskScore:
    return RiskScore(
        score=0,
        level=level,
        description="",
        factors=[RiskFactor(key="medicine_usage", name="Medicine Usage", value=0, points=medicine_points, description="")],
    )


def test_nothing_to_report():
    assert generate_recommendations([], AllergyRisks(), _risk("low")) == []


def test_critical_items_sorted_first():
    recommendations = generate_recommendations(
        [_pattern("Hypertension", 4), _pattern("Migraine", 2)],
        AllergyRisks(prescription_risks=[_allergy("Amoxicillin")]),
        _risk("critical", medicine_points=27),
    )

    assert [(r.type, r.priority) for r in recommendations] == [
        ("ALLERGY_WARNING", "CRITICAL"),
        ("CRITICAL_HEALTH", "CRITICAL"),
        ("CHRONIC_DISEASE", "HIGH"),
        ("HIGH_MEDICINE_USE", "MEDIUM"),
    ]
    assert "Hypertension" in recommendations[2].message
    assert "4 times" in recommendations[2].message


def test_high_risk_level():
    recommendations = generate_recommendations([], AllergyRisks(), _risk("high"))
    assert [r.type for r in recommendations] == ["HIGH_RISK"]


def test_medicine_alert_threshold_is_exclusive():
    at_threshold = generate_recommendations([], AllergyRisks(), _risk("low", medicine_points=20))
    assert at_threshold == []

    enhanced = generate_recommendations([], AllergyRisks(), _risk("low", medicine_points=15), medicine_alert_points=10)
    assert [r.type for r in enhanced] == ["HIGH_MEDICINE_USE"]


def test_unknown_score_adds_nothing():
    recommendations = generate_recommendations([], AllergyRisks(), RiskScore())
    assert recommendations == []
