from typing import Optional
from fastapi import APIRouter, Depends, HTTPException, Query
from app.auth import get_current_user, require_role, UserPrincipal
from app.schemas.health_intelligence import (
    AllergyRisks,
    DependencyWarnings,
    HealthIntelligenceReport,
    MedicineUsageStats,
    RiskScore,
)
from app.services.health_intelligence_service import health_intelligence_service
from app.services.medicine_service import medicine_service
from app.services.risk_policies import get_policy

router = APIRouter()


def _ensure_access(user: UserPrincipal, patient_id: int) -> None:
    if not user.can_view_patient(patient_id):
        raise HTTPException(status_code=403, detail="Access denied: you can only view your own health data")


@router.get("/report", response_model=HealthIntelligenceReport)
async def my_report(current_user: UserPrincipal = Depends(require_role("patient"))):
    return await health_intelligence_service.build_report(current_user.patient_id)


@router.get("/patients/{patient_id}/report", response_model=HealthIntelligenceReport)
async def patient_report(patient_id: int, current_user: UserPrincipal = Depends(get_current_user)):
    _ensure_access(current_user, patient_id)
    return await health_intelligence_service.build_report(patient_id)


@router.get("/patients/{patient_id}/disease-patterns")
async def disease_patterns(patient_id: int, current_user: UserPrincipal = Depends(get_current_user)):
    _ensure_access(current_user, patient_id)
    detection = await health_intelligence_service.detect_disease_patterns(patient_id)
    return {
        "patient_id": patient_id,
        "available": detection.ok,
        "disease_patterns": detection.or_default([]),
    }


@router.get("/patients/{patient_id}/allergy-risks", response_model=AllergyRisks)
async def allergy_risks(patient_id: int, current_user: UserPrincipal = Depends(get_current_user)):
    _ensure_access(current_user, patient_id)
    detection = await health_intelligence_service.detect_allergy_risks(patient_id)
    return detection.or_default(AllergyRisks())


@router.post("/patients/{patient_id}/risk-score", response_model=RiskScore)
async def calculate_risk_score(
    patient_id: int,
    policy: Optional[str] = Query(None, description="Scoring policy override: standard | enhanced"),
    current_user: UserPrincipal = Depends(get_current_user),
):
    _ensure_access(current_user, patient_id)
    try:
        selected = get_policy(policy) if policy else None
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return await health_intelligence_service.calculate_risk_score(patient_id, policy=selected)


@router.get("/patients/{patient_id}/medicine-repetition")
async def medicine_repetition(patient_id: int, current_user: UserPrincipal = Depends(get_current_user)):
    _ensure_access(current_user, patient_id)
    detection = await medicine_service.detect_medicine_repetition(patient_id)
    return {
        "patient_id": patient_id,
        "available": detection.ok,
        "medicines": detection.or_default([]),
    }


@router.get("/patients/{patient_id}/dependency-warnings", response_model=DependencyWarnings)
async def dependency_warnings(patient_id: int, current_user: UserPrincipal = Depends(get_current_user)):
    _ensure_access(current_user, patient_id)
    return await medicine_service.get_dependency_warnings(patient_id)


@router.get("/patients/{patient_id}/usage-stats", response_model=MedicineUsageStats)
async def usage_stats(patient_id: int, current_user: UserPrincipal = Depends(get_current_user)):
    _ensure_access(current_user, patient_id)
    return await medicine_service.get_usage_stats(patient_id)
