from sqlalchemy import Column, Integer, String, CheckConstraint, UniqueConstraint
from app.database import Base


class MedicineSideEffect(Base):
    """Static reference catalog; read by the allergy detector, never written by it."""

    __tablename__ = "medicine_side_effects"
    __table_args__ = (
        UniqueConstraint("medicine_name", "side_effect", name="uq_medicine_side_effect"),
        CheckConstraint("severity IN ('mild', 'moderate', 'severe')", name="ck_side_effect_severity"),
    )

    id = Column(Integer, primary_key=True, index=True)
    medicine_name = Column(String(200), nullable=False, index=True)
    side_effect = Column(String(200), nullable=False)
    severity = Column(String(20), nullable=False)
