from sqlalchemy import Column, Integer, String, Date, ForeignKey
from sqlalchemy.orm import relationship
from app.database import Base


class DiseaseHistory(Base):
    __tablename__ = "disease_history"

    id = Column(Integer, primary_key=True, index=True)
    patient_id = Column(Integer, ForeignKey("patients.id", ondelete="CASCADE"), nullable=False, index=True)
    disease_name = Column(String(200), nullable=False)
    diagnosed_date = Column(Date, nullable=False, index=True)

    patient = relationship("Patient", back_populates="disease_history")
