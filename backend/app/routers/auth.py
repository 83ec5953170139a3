from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from app.database import get_db
from app.models.doctor import Doctor
from app.models.patient import Patient
from app.models.user import User
from app.auth import create_token, require_role
from app.services.admin_service import admin_service

router = APIRouter()


@router.get("/users", dependencies=[Depends(require_role("admin"))])
async def list_users(db: AsyncSession = Depends(get_db)):
    """Return all users (no secrets exposed)."""
    result = await db.execute(select(User).order_by(User.id))
    users = result.scalars().all()
    return {
        "users": [
            {
                "username": u.username,
                "display_name": u.display_name,
                "role": u.role,
                "patient_id": u.patient_id,
                "doctor_id": u.doctor_id,
            }
            for u in users
        ]
    }


@router.post("/token")
async def get_token(body: dict, db: AsyncSession = Depends(get_db)):
    """
    Exchange a username for a JWT token.
    Body: {"username": "dr.smith"}
    """
    username = (body.get("username") or "").strip()
    if not username:
        raise HTTPException(status_code=400, detail="username required")

    result = await db.execute(select(User).where(User.username == username))
    user = result.scalar_one_or_none()
    if not user:
        raise HTTPException(status_code=404, detail=f"User '{username}' not found")

    if user.role == "doctor":
        doctor = await db.get(Doctor, user.doctor_id)
        if doctor is None or not doctor.is_active:
            raise HTTPException(status_code=403, detail="Doctor account is deactivated")
        if not doctor.is_verified:
            raise HTTPException(status_code=403, detail="Doctor not verified by admin")
    elif user.role == "patient":
        patient = await db.get(Patient, user.patient_id)
        if patient is None or not patient.is_active:
            raise HTTPException(status_code=403, detail="Patient account is deactivated")

    await admin_service.audit(
        db, user.role, f"Token issued for {user.username}", "login",
        {"username": user.username}, user_id=user.patient_id or user.doctor_id,
    )
    token = create_token(user)
    return {
        "access_token": token,
        "token_type": "bearer",
        "username": user.username,
        "display_name": user.display_name,
        "role": user.role,
        "patient_id": user.patient_id,
        "doctor_id": user.doctor_id,
    }
