from app.schemas.health_intelligence import AllergyRisks, DiseasePattern, Recommendation, RiskScore

PRIORITY_RANK = {"CRITICAL": 0, "HIGH": 1, "MEDIUM": 2, "LOW": 3}


def generate_recommendations(
    disease_patterns: list[DiseasePattern],
    allergy_risks: AllergyRisks,
    risk_score: RiskScore,
    medicine_alert_points: int = 20,
) -> list[Recommendation]:
    """Turn detector findings and the risk score into advisories, most urgent first."""
    recommendations: list[Recommendation] = []

    for disease in disease_patterns:
        if disease.is_chronic:
            recommendations.append(Recommendation(
                type="CHRONIC_DISEASE",
                priority="HIGH",
                message=(
                    f"You have been diagnosed with {disease.disease_name} {disease.frequency} times. "
                    "Consider consulting a specialist for chronic disease management."
                ),
            ))

    for risk in allergy_risks.prescription_risks:
        if risk.risk_level == "ALLERGY_ALERT":
            recommendations.append(Recommendation(
                type="ALLERGY_WARNING",
                priority="CRITICAL",
                message=(
                    f"ALERT: {risk.medicine_name} has triggered allergic reactions. "
                    "Inform your doctor before it's prescribed again."
                ),
            ))

    if risk_score.level == "critical":
        recommendations.append(Recommendation(
            type="CRITICAL_HEALTH",
            priority="CRITICAL",
            message="Your health risk score is critical. Schedule an urgent appointment with your doctor.",
        ))
    elif risk_score.level == "high":
        recommendations.append(Recommendation(
            type="HIGH_RISK",
            priority="HIGH",
            message="Your health risk score indicates elevated risk. Please consult with a healthcare professional.",
        ))

    if risk_score.breakdown.get("medicine_usage", 0) > medicine_alert_points:
        recommendations.append(Recommendation(
            type="HIGH_MEDICINE_USE",
            priority="MEDIUM",
            message=(
                "You are taking multiple medicines frequently. Discuss with your doctor "
                "about possible interactions and long-term effects."
            ),
        ))

    return sorted(recommendations, key=lambda r: PRIORITY_RANK[r.priority])
