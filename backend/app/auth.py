"""
Auth module: JWT creation/validation and the FastAPI role dependencies.

Tokens are issued for known usernames only (password handling lives outside
this service). Each token carries the role plus the linked patient or doctor
id, so routers never need a users lookup per request.
"""

import time
from dataclasses import dataclass
from typing import Optional
from jose import jwt, JWTError
from fastapi import Depends, HTTPException, Request
from app.config import get_settings

ALGORITHM = "HS256"
ROLES = ("patient", "doctor", "admin")


@dataclass
class UserPrincipal:
    """Resolved identity attached to each request."""
    username: str
    display_name: str
    role: str                     # "patient" | "doctor" | "admin"
    patient_id: Optional[int] = None
    doctor_id: Optional[int] = None

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"

    @property
    def actor_id(self) -> Optional[int]:
        """The patient/doctor id this user acts as (None for admins)."""
        if self.role == "patient":
            return self.patient_id
        if self.role == "doctor":
            return self.doctor_id
        return None

    def can_view_patient(self, patient_id: int) -> bool:
        if self.role in ("admin", "doctor"):
            return True
        return self.patient_id == patient_id


def create_token(user) -> str:
    """Create a signed JWT for the given User model instance."""
    settings = get_settings()
    payload = {
        "sub": user.username,
        "display_name": user.display_name,
        "role": user.role,
        "patient_id": user.patient_id,
        "doctor_id": user.doctor_id,
        "exp": int(time.time()) + settings.jwt_expiration_seconds,
    }
    return jwt.encode(payload, settings.jwt_secret_key, algorithm=ALGORITHM)


def decode_token(token: str) -> Optional[UserPrincipal]:
    """Decode and validate a JWT. Returns None if invalid/expired."""
    try:
        settings = get_settings()
        payload = jwt.decode(token, settings.jwt_secret_key, algorithms=[ALGORITHM])
    except JWTError:
        return None
    role = payload.get("role")
    if role not in ROLES:
        return None
    return UserPrincipal(
        username=payload["sub"],
        display_name=payload.get("display_name", payload["sub"]),
        role=role,
        patient_id=payload.get("patient_id"),
        doctor_id=payload.get("doctor_id"),
    )


async def get_current_user(request: Request) -> UserPrincipal:
    """FastAPI dependency. Extracts the JWT from the Authorization header or raises 401."""
    auth_header = request.headers.get("Authorization", "")
    if not auth_header.startswith("Bearer "):
        raise HTTPException(status_code=401, detail="Missing bearer token")
    principal = decode_token(auth_header[7:])
    if principal is None:
        raise HTTPException(status_code=401, detail="Invalid or expired token")
    return principal


def require_role(*roles: str):
    async def dependency(current_user: UserPrincipal = Depends(get_current_user)) -> UserPrincipal:
        if current_user.role not in roles:
            raise HTTPException(
                status_code=403,
                detail=f"Your role ({current_user.role}) does not permit this action",
            )
        return current_user

    return dependency
