from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession
from app.auth import require_role
from app.database import get_db
from app.services.analytics_service import analytics_service

router = APIRouter(dependencies=[Depends(require_role("admin"))])


@router.get("/dashboard")
async def dashboard(db: AsyncSession = Depends(get_db)):
    return await analytics_service.get_dashboard(db)


@router.get("/stats")
async def system_stats(db: AsyncSession = Depends(get_db)):
    return await analytics_service.get_system_stats(db)


@router.get("/diseases")
async def disease_analytics(limit: int = Query(10, ge=1, le=100), db: AsyncSession = Depends(get_db)):
    return {"diseases": await analytics_service.get_disease_analytics(db, limit)}


@router.get("/medicines")
async def medicine_analytics(limit: int = Query(10, ge=1, le=100), db: AsyncSession = Depends(get_db)):
    return {"medicines": await analytics_service.get_medicine_analytics(db, limit)}


@router.get("/appointments")
async def appointment_analytics(db: AsyncSession = Depends(get_db)):
    return {"statuses": await analytics_service.get_appointment_analytics(db)}


@router.get("/doctors")
async def doctor_analytics(db: AsyncSession = Depends(get_db)):
    return {"doctors": await analytics_service.get_doctor_analytics(db)}


@router.get("/monthly-trends")
async def monthly_trends(months: int = Query(12, ge=1, le=60), db: AsyncSession = Depends(get_db)):
    return {"months": await analytics_service.get_monthly_trends(db, months)}


@router.get("/risk-distribution")
async def risk_distribution(db: AsyncSession = Depends(get_db)):
    return await analytics_service.get_risk_distribution(db)


@router.get("/specializations")
async def specialization_analytics(db: AsyncSession = Depends(get_db)):
    return {"specializations": await analytics_service.get_specialization_analytics(db)}
