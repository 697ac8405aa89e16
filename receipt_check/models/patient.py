import uuid
from enum import Enum

from sqlalchemy import Column, String, Date, Float, ForeignKey, Boolean
from sqlalchemy.orm import relationship

from ..database import Base


def _uuid() -> str:
    return str(uuid.uuid4())


class DiagnosisOutcome(str, Enum):
    ONGOING = "ongoing"
    CURED = "cured"
    DISCONTINUED = "discontinued"
    DECEASED = "deceased"


class Patient(Base):
    __tablename__ = "patients"

    id = Column(String(36), primary_key=True, default=_uuid)
    name_kanji = Column(String(100), nullable=True)
    name_kana = Column(String(100), nullable=True)
    insurance_type = Column(String(50), nullable=True)
    date_of_birth = Column(Date, nullable=True)
    burden_ratio = Column(Float, nullable=True)

    billings = relationship("Billing", back_populates="patient")
    diagnoses = relationship("PatientDiagnosis", back_populates="patient")


class PatientDiagnosis(Base):
    __tablename__ = "patient_diagnoses"

    id = Column(String(36), primary_key=True, default=_uuid)
    patient_id = Column(String(36), ForeignKey("patients.id"), nullable=False, index=True)
    diagnosis_code = Column(String(20), nullable=False, default="")
    diagnosis_name = Column(String(200), nullable=False, default="")
    tooth_number = Column(String(20), nullable=True)
    start_date = Column(Date, nullable=True)
    end_date = Column(Date, nullable=True)
    outcome = Column(String(20), nullable=False, default=DiagnosisOutcome.ONGOING.value)
    is_primary = Column(Boolean, nullable=False, default=False)

    patient = relationship("Patient", back_populates="diagnoses")
