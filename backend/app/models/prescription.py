from sqlalchemy import Column, Integer, String, Text, Boolean, DateTime, ForeignKey
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from app.database import Base


class Prescription(Base):
    __tablename__ = "prescriptions"

    id = Column(Integer, primary_key=True, index=True)
    appointment_id = Column(Integer, ForeignKey("appointments.id", ondelete="CASCADE"), nullable=False, index=True)
    medicine_name = Column(String(200), nullable=False, index=True)
    dosage = Column(String(100), nullable=False)
    duration = Column(String(100), nullable=False)
    instructions = Column(Text)
    side_effects = Column(Text)
    reported_allergy = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), index=True)

    appointment = relationship("Appointment", back_populates="prescriptions")
