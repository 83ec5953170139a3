from pydantic import BaseModel, Field
from datetime import date, datetime
from typing import Optional


class DiseasePattern(BaseModel):
    disease_name: str
    frequency: int
    first_occurrence: date
    last_occurrence: date
    is_chronic: bool
    risk_assessment: str


class MedicineRepetition(BaseModel):
    medicine_name: str
    prescription_count: int
    associated_diseases: Optional[str] = None
    last_prescribed: Optional[datetime] = None
    risk_level: str  # "high" | "moderate"
    warning: str


class DependencyWarnings(BaseModel):
    total_repeated_medicines: int = 0
    high_risk_count: int = 0
    warnings: list[MedicineRepetition] = []
    recommendation: str


class MedicineUsageStats(BaseModel):
    total_unique_medicines: int = 0
    total_prescriptions: int = 0
    first_prescription: Optional[datetime] = None
    latest_prescription: Optional[datetime] = None


class PrescriptionRisk(BaseModel):
    medicine_name: str
    times_prescribed: int
    allergy_reports: int
    reported_side_effects: list[str] = []
    risk_level: str  # "ALLERGY_ALERT" | "FREQUENCY_WARNING"
    action: str


class KnownSideEffect(BaseModel):
    medicine_name: str
    side_effect: str
    severity: str
    alert_level: str  # "CRITICAL" | "WARNING" | "INFO"


class AllergyRisks(BaseModel):
    class Config:
        populate_by_name = True

    prescription_risks: list[PrescriptionRisk] = Field(default_factory=list, alias="prescriptionRisks")
    known_side_effects: list[KnownSideEffect] = Field(default_factory=list, alias="knownSideEffects")


class RiskFactor(BaseModel):
    key: str
    name: str
    value: float
    points: int
    description: str


class RiskScore(BaseModel):
    score: int = 0
    level: str = "unknown"
    description: str = "Unable to calculate risk score"
    policy: Optional[str] = None
    factors: list[RiskFactor] = []
    calculated_at: Optional[datetime] = None

    @property
    def breakdown(self) -> dict[str, int]:
        return {f.key: f.points for f in self.factors}


class Recommendation(BaseModel):
    type: str
    priority: str  # "CRITICAL" | "HIGH" | "MEDIUM" | "LOW"
    message: str


class HealthIntelligenceReport(BaseModel):
    class Config:
        populate_by_name = True

    patient_id: int = Field(alias="patientId")
    disease_patterns: list[DiseasePattern] = Field(default_factory=list, alias="diseasePatterns")
    allergy_risks: AllergyRisks = Field(default_factory=AllergyRisks, alias="allergyRisks")
    risk_score: RiskScore = Field(default_factory=RiskScore, alias="riskScore")
    recommendations: list[Recommendation] = []
