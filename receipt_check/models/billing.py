import uuid
from datetime import datetime
from enum import Enum

from sqlalchemy import Column, Integer, String, DateTime, Float, ForeignKey, Boolean, JSON
from sqlalchemy.orm import relationship

from ..database import Base


def _uuid() -> str:
    return str(uuid.uuid4())


class PaymentStatus(str, Enum):
    UNPAID = "unpaid"
    PAID = "paid"


class ClaimStatus(str, Enum):
    PENDING = "pending"
    CLAIMED = "claimed"
    RETURNED = "returned"


class Billing(Base):
    __tablename__ = "billing"

    id = Column(String(36), primary_key=True, default=_uuid)
    record_id = Column(String(36), nullable=True, index=True)
    patient_id = Column(String(36), ForeignKey("patients.id"), nullable=False, index=True)

    total_points = Column(Integer, nullable=False, default=0)
    patient_burden = Column(Integer, nullable=False, default=0)
    insurance_claim = Column(Integer, nullable=False, default=0)
    burden_ratio = Column(Float, nullable=False, default=0.3)

    # [{code, name, points, category, count, note, tooth_numbers}]
    procedures_detail = Column(JSON, nullable=False, default=list)
    ai_check_warnings = Column(JSON, nullable=False, default=list)
    document_provided = Column(Boolean, nullable=False, default=False)

    claim_status = Column(String(20), nullable=False, default=ClaimStatus.PENDING.value)
    payment_status = Column(String(20), nullable=False, default=PaymentStatus.UNPAID.value, index=True)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False, index=True)

    patient = relationship("Patient", back_populates="billings")
