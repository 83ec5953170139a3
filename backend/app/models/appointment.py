from sqlalchemy import Column, Integer, String, Text, DateTime, ForeignKey, CheckConstraint
from sqlalchemy.orm import relationship
from app.database import Base

APPOINTMENT_STATUSES = ("pending", "accepted", "rejected", "completed")
ACTIVE_STATUSES = ("pending", "accepted")


class Appointment(Base):
    __tablename__ = "appointments"
    __table_args__ = (
        CheckConstraint(
            "status IN ('pending', 'accepted', 'rejected', 'completed')",
            name="ck_appointments_status",
        ),
    )

    id = Column(Integer, primary_key=True, index=True)
    patient_id = Column(Integer, ForeignKey("patients.id", ondelete="CASCADE"), nullable=False, index=True)
    doctor_id = Column(Integer, ForeignKey("doctors.id", ondelete="CASCADE"), nullable=False, index=True)
    start_time = Column(DateTime(timezone=True), nullable=False)
    end_time = Column(DateTime(timezone=True), nullable=False)
    reason = Column(Text)
    status = Column(String(20), nullable=False, default="pending")

    patient = relationship("Patient", back_populates="appointments")
    doctor = relationship("Doctor", back_populates="appointments")
    prescriptions = relationship(
        "Prescription",
        back_populates="appointment",
        cascade="all, delete-orphan",
    )
    messages = relationship(
        "Message",
        back_populates="appointment",
        order_by="Message.timestamp",
        cascade="all, delete-orphan",
    )
