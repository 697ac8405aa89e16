from sqlalchemy import Column, Integer, String, Boolean, JSON, Text, Index

from ..database import Base


class FeeMasterReceipt(Base):
    """Maps a clinic kubun/sub-code pair to the official 9-digit receipt code."""

    __tablename__ = "fee_master_receipt"

    id = Column(Integer, primary_key=True, index=True)
    kubun_code = Column(String(20), nullable=False)
    sub_code = Column(String(50), nullable=False, default="")
    receipt_code = Column(String(9), nullable=False)
    shinryo_shikibetsu = Column(String(10), nullable=True)

    __table_args__ = (
        Index("idx_fee_master_receipt_kubun_sub", "kubun_code", "sub_code"),
    )


class DiagnosisRequirement(Base):
    __tablename__ = "diagnosis_requirements"

    id = Column(Integer, primary_key=True, index=True)
    procedure_code_pattern = Column(String(50), nullable=False)
    required_diagnosis_keywords = Column(JSON, nullable=False, default=list)
    required_icd_prefixes = Column(JSON, nullable=False, default=list)
    error_level = Column(String(10), nullable=False, default="error")  # error | warning
    message = Column(Text, nullable=False)
    legal_basis = Column(String(200), nullable=True)
    is_active = Column(Boolean, nullable=False, default=True, index=True)
