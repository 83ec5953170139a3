from sqlalchemy import Column, Integer, String, Text, DateTime, JSON, CheckConstraint
from sqlalchemy.sql import func
from app.database import Base

AUDIT_ROLES = ("patient", "doctor", "admin")
AUDIT_ACTION_TYPES = ("login", "logout", "create", "update", "delete", "verify", "view")


class AuditLog(Base):
    __tablename__ = "audit_logs"
    __table_args__ = (
        CheckConstraint("user_role IN ('patient', 'doctor', 'admin')", name="ck_audit_user_role"),
        CheckConstraint(
            "action_type IN ('login', 'logout', 'create', 'update', 'delete', 'verify', 'view')",
            name="ck_audit_action_type",
        ),
    )

    id = Column(Integer, primary_key=True, index=True)
    # Not a foreign key: admins act without a patient/doctor row
    user_id = Column(Integer, index=True)
    user_role = Column(String(20), nullable=False)
    action = Column(Text, nullable=False)
    action_type = Column(String(20), nullable=False, index=True)
    details = Column(JSON, default=dict)
    timestamp = Column(DateTime(timezone=True), server_default=func.now(), index=True)
