"""Official claim-check reference tables.

Loaded read-only by the receipt check; rows are maintained by data imports,
never by the checking process.
"""
from sqlalchemy import Column, Integer, String, Boolean, JSON, Index

from ..database import Base


class FrequencyLimitRule(Base):
    __tablename__ = "check_frequency_limits"

    id = Column(Integer, primary_key=True, index=True)
    shinryo_code = Column(String(9), nullable=False, index=True)
    name = Column(String(200), nullable=False, default="")
    limit_type = Column(String(20), nullable=False)  # per_day | per_month | per_period
    max_count = Column(Integer, nullable=False)
    period_months = Column(Integer, nullable=True)
    exception_conditions = Column(JSON, nullable=True)


class ExclusivePairRule(Base):
    __tablename__ = "check_exclusive_pairs"

    id = Column(Integer, primary_key=True, index=True)
    code_a = Column(String(9), nullable=False)
    name_a = Column(String(200), nullable=False, default="")
    code_b = Column(String(9), nullable=False)
    name_b = Column(String(200), nullable=False, default="")
    exclusion_type = Column(String(20), nullable=False)  # same_day | same_month
    exception_conditions = Column(JSON, nullable=True)

    __table_args__ = (
        Index("idx_check_exclusive_pairs_codes", "code_a", "code_b"),
    )


class AdditionRule(Base):
    __tablename__ = "check_addition_rules"

    id = Column(Integer, primary_key=True, index=True)
    base_code = Column(String(9), nullable=False)
    base_name = Column(String(200), nullable=False, default="")
    addition_code = Column(String(9), nullable=False, index=True)
    addition_name = Column(String(200), nullable=False, default="")
    addition_type = Column(String(50), nullable=True)
    required_facility = Column(String(200), nullable=True)
    conditions = Column(JSON, nullable=True)


class ProcedureMaterialRule(Base):
    __tablename__ = "check_procedure_materials"

    id = Column(Integer, primary_key=True, index=True)
    procedure_code = Column(String(9), nullable=False, index=True)
    procedure_name = Column(String(200), nullable=False, default="")
    material_code = Column(String(9), nullable=False)
    material_name = Column(String(200), nullable=False, default="")
    is_required = Column(Boolean, nullable=False, default=False)
    default_quantity = Column(Integer, nullable=False, default=1)
    conditions = Column(JSON, nullable=True)


class AgeLimitRule(Base):
    __tablename__ = "check_age_limits"

    id = Column(Integer, primary_key=True, index=True)
    shinryo_code = Column(String(9), nullable=False, index=True)
    name = Column(String(200), nullable=False, default="")
    min_age = Column(Integer, nullable=True)
    max_age = Column(Integer, nullable=True)
    age_type = Column(String(10), nullable=False, default="years")  # years | months
    exception_conditions = Column(JSON, nullable=True)


class IncrementalFeeRule(Base):
    __tablename__ = "check_incremental_fees"

    id = Column(Integer, primary_key=True, index=True)
    shinryo_code = Column(String(9), nullable=False, index=True)
    name = Column(String(200), nullable=False, default="")
    base_points = Column(Integer, nullable=False, default=0)
    increment_points = Column(Integer, nullable=False, default=0)
    increment_unit = Column(String(50), nullable=True)
    base_count = Column(Integer, nullable=False, default=0)
    max_count = Column(Integer, nullable=True)
    conditions = Column(JSON, nullable=True)
