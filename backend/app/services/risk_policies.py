"""
Risk scoring policies.

A policy is a named table of factor rules plus level thresholds; the scorer in
health_intelligence_service evaluates whichever policy is configured. Only one
policy is canonical ("standard"). "enhanced" reproduces the flag-based
weighting some dashboards were built against and is opt-in through
RISK_SCORING_POLICY.

Rule kinds:
    scaled   -> min(points, floor(value * points / scale))
    per_unit -> min(points, value * per_unit)
    flag     -> points when value > above, else 0
"""

from dataclasses import dataclass, field
from typing import Optional


@dataclass(frozen=True)
class FactorRule:
    key: str
    name: str
    signal: str
    points: int
    kind: str = "flag"
    scale: Optional[int] = None
    per_unit: Optional[int] = None
    above: Optional[int] = None
    description: str = "{name}: +{points}"
    always_report: bool = False

    def score(self, value: int) -> int:
        value = max(0, int(value))
        if self.kind == "scaled":
            return min(self.points, value * self.points // self.scale)
        if self.kind == "per_unit":
            return min(self.points, value * self.per_unit)
        return self.points if value > self.above else 0

    def describe(self, value: int, points: int) -> str:
        return self.description.format(name=self.name, value=value, points=points)


@dataclass(frozen=True)
class RiskLevel:
    min_score: int
    level: str
    description: str


@dataclass(frozen=True)
class ScoringPolicy:
    name: str
    rules: tuple[FactorRule, ...]
    levels: tuple[RiskLevel, ...]  # highest threshold first
    fallback: RiskLevel
    # HIGH_MEDICINE_USE fires when the "medicine_usage" factor scores above this
    medicine_alert_points: int = 20
    max_score: int = 100
    signals: frozenset = field(init=False)

    def __post_init__(self):
        object.__setattr__(self, "signals", frozenset(r.signal for r in self.rules))

    def classify(self, score: int) -> RiskLevel:
        for level in self.levels:
            if score >= level.min_score:
                return level
        return self.fallback


STANDARD_POLICY = ScoringPolicy(
    name="standard",
    rules=(
        FactorRule(
            key="age_factor", name="Age Factor", signal="age",
            kind="scaled", points=15, scale=80, always_report=True,
            description="Age ({value} years): +{points}",
        ),
        FactorRule(
            key="medicine_usage", name="Medicine Usage", signal="recent_prescriptions",
            kind="scaled", points=30, scale=10, always_report=True,
            description="High medicine usage ({value} prescriptions): +{points}",
        ),
        FactorRule(
            key="disease_frequency", name="Disease Frequency", signal="recent_diagnoses",
            kind="scaled", points=25, scale=8, always_report=True,
            description="Disease frequency ({value} diagnosed): +{points}",
        ),
        FactorRule(
            key="chronic_condition", name="Chronic Condition", signal="max_single_disease",
            kind="flag", points=10, above=2,
            description="Chronic disease detected: +{points}",
        ),
        FactorRule(
            key="allergy_incidents", name="Allergy Incidents", signal="allergy_incidents",
            kind="per_unit", points=20, per_unit=5, always_report=True,
            description="Allergy incidents ({value}): +{points}",
        ),
    ),
    levels=(
        RiskLevel(80, "critical", "CRITICAL: Immediate medical attention recommended"),
        RiskLevel(60, "high", "HIGH RISK: Schedule specialist consultation"),
        RiskLevel(40, "moderate", "MODERATE: Monitor health patterns closely"),
        RiskLevel(20, "low", "LOW RISK: Continue regular check-ups"),
    ),
    fallback=RiskLevel(0, "low", "Your health is in good condition"),
    medicine_alert_points=20,
)

ENHANCED_POLICY = ScoringPolicy(
    name="enhanced",
    rules=(
        FactorRule(
            key="age_factor", name="Age Factor", signal="age", points=10, above=50,
            description="Age {value} exceeds threshold of 50",
        ),
        FactorRule(
            key="repeated_diseases", name="Repeated Diseases", signal="repeated_diseases",
            points=20, above=0,
            description="{value} disease(s) diagnosed multiple times",
        ),
        FactorRule(
            key="repeated_medicines", name="Repeated Medicines", signal="high_risk_medicines",
            points=20, above=0,
            description="{value} medicine(s) prescribed > 4 times",
        ),
        FactorRule(
            key="multiple_doctors", name="Multiple Doctors", signal="doctor_count",
            points=10, above=2,
            description="Patient seeing {value} different doctors",
        ),
        FactorRule(
            key="chronic_conditions", name="Chronic Conditions", signal="repeated_diseases",
            points=15, above=2,
            description="Multiple chronic conditions detected",
        ),
        FactorRule(
            key="medicine_usage", name="High Medicine Usage", signal="total_prescriptions",
            points=15, above=10,
            description="{value} total prescriptions",
        ),
    ),
    levels=(
        RiskLevel(75, "critical", "CRITICAL: Urgent health intervention needed"),
        RiskLevel(50, "high", "HIGH RISK: Comprehensive health evaluation recommended"),
        RiskLevel(25, "moderate", "MODERATE: Schedule regular health checkups"),
    ),
    fallback=RiskLevel(0, "low", "Continue maintaining good health practices"),
    medicine_alert_points=10,
)

POLICIES = {p.name: p for p in (STANDARD_POLICY, ENHANCED_POLICY)}


def get_policy(name: str) -> ScoringPolicy:
    try:
        return POLICIES[name.lower()]
    except KeyError:
        raise ValueError(f"Unknown risk scoring policy '{name}'. Expected one of: {', '.join(POLICIES)}")
