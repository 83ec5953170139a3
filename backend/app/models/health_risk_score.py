from sqlalchemy import Column, Integer, String, Date, DateTime, JSON, ForeignKey, CheckConstraint, UniqueConstraint
from sqlalchemy.sql import func
from app.database import Base


class HealthRiskScore(Base):
    __tablename__ = "health_risk_score"
    __table_args__ = (
        # One score per patient per calendar day; recalculation upserts on this key
        UniqueConstraint("patient_id", "calculated_on", name="uq_health_risk_per_day"),
        CheckConstraint("risk_score >= 0 AND risk_score <= 100", name="ck_risk_score_range"),
        CheckConstraint(
            "risk_level IN ('low', 'moderate', 'high', 'critical')",
            name="ck_risk_level",
        ),
    )

    id = Column(Integer, primary_key=True, index=True)
    patient_id = Column(Integer, ForeignKey("patients.id", ondelete="CASCADE"), nullable=False, index=True)
    risk_score = Column(Integer, nullable=False)
    risk_level = Column(String(20), nullable=False)
    policy = Column(String(20), nullable=False, default="standard")
    factors = Column(JSON, default=list)
    calculated_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    calculated_on = Column(Date, nullable=False)
