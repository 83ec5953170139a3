from app.models.patient import Patient
from app.models.doctor import Doctor
from app.models.user import User
from app.models.appointment import Appointment
from app.models.prescription import Prescription
from app.models.disease_history import DiseaseHistory
from app.models.medicine_side_effect import MedicineSideEffect
from app.models.health_risk_score import HealthRiskScore
from app.models.message import Message
from app.models.audit_log import AuditLog

__all__ = ["Patient", "Doctor", "User", "Appointment", "Prescription", "DiseaseHistory",
           "MedicineSideEffect", "HealthRiskScore", "Message", "AuditLog"]
