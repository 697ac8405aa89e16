"""Initial receipt check schema: patients, billing, reference and rule tables, audit log

Revision ID: receipt_check_v1
Revises:
Create Date: 2026-10-16

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


revision: str = 'receipt_check_v1'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table('patients',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('name_kanji', sa.String(length=100), nullable=True),
        sa.Column('name_kana', sa.String(length=100), nullable=True),
        sa.Column('insurance_type', sa.String(length=50), nullable=True),
        sa.Column('date_of_birth', sa.Date(), nullable=True),
        sa.Column('burden_ratio', sa.Float(), nullable=True),
        sa.PrimaryKeyConstraint('id')
    )

    op.create_table('patient_diagnoses',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('patient_id', sa.String(length=36), nullable=False),
        sa.Column('diagnosis_code', sa.String(length=20), nullable=False, server_default=''),
        sa.Column('diagnosis_name', sa.String(length=200), nullable=False, server_default=''),
        sa.Column('tooth_number', sa.String(length=20), nullable=True),
        sa.Column('start_date', sa.Date(), nullable=True),
        sa.Column('end_date', sa.Date(), nullable=True),
        sa.Column('outcome', sa.String(length=20), nullable=False, server_default='ongoing'),
        sa.Column('is_primary', sa.Boolean(), nullable=False, server_default='false'),
        sa.ForeignKeyConstraint(['patient_id'], ['patients.id'], name='fk_patient_diagnoses_patient_id'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_patient_diagnoses_patient_id', 'patient_diagnoses', ['patient_id'], unique=False)

    op.create_table('billing',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('record_id', sa.String(length=36), nullable=True),
        sa.Column('patient_id', sa.String(length=36), nullable=False),
        sa.Column('total_points', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('patient_burden', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('insurance_claim', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('burden_ratio', sa.Float(), nullable=False, server_default='0.3'),
        sa.Column('procedures_detail', sa.JSON(), nullable=False),
        sa.Column('ai_check_warnings', sa.JSON(), nullable=False),
        sa.Column('document_provided', sa.Boolean(), nullable=False, server_default='false'),
        sa.Column('claim_status', sa.String(length=20), nullable=False, server_default='pending'),
        sa.Column('payment_status', sa.String(length=20), nullable=False, server_default='unpaid'),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.ForeignKeyConstraint(['patient_id'], ['patients.id'], name='fk_billing_patient_id'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_billing_record_id', 'billing', ['record_id'], unique=False)
    op.create_index('ix_billing_patient_id', 'billing', ['patient_id'], unique=False)
    op.create_index('ix_billing_payment_status', 'billing', ['payment_status'], unique=False)
    op.create_index('ix_billing_created_at', 'billing', ['created_at'], unique=False)

    op.create_table('fee_master_receipt',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('kubun_code', sa.String(length=20), nullable=False),
        sa.Column('sub_code', sa.String(length=50), nullable=False, server_default=''),
        sa.Column('receipt_code', sa.String(length=9), nullable=False),
        sa.Column('shinryo_shikibetsu', sa.String(length=10), nullable=True),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('idx_fee_master_receipt_kubun_sub', 'fee_master_receipt', ['kubun_code', 'sub_code'], unique=False)

    op.create_table('diagnosis_requirements',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('procedure_code_pattern', sa.String(length=50), nullable=False),
        sa.Column('required_diagnosis_keywords', sa.JSON(), nullable=False),
        sa.Column('required_icd_prefixes', sa.JSON(), nullable=False),
        sa.Column('error_level', sa.String(length=10), nullable=False, server_default='error'),
        sa.Column('message', sa.Text(), nullable=False),
        sa.Column('legal_basis', sa.String(length=200), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='true'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_diagnosis_requirements_is_active', 'diagnosis_requirements', ['is_active'], unique=False)

    op.create_table('check_frequency_limits',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('shinryo_code', sa.String(length=9), nullable=False),
        sa.Column('name', sa.String(length=200), nullable=False, server_default=''),
        sa.Column('limit_type', sa.String(length=20), nullable=False),
        sa.Column('max_count', sa.Integer(), nullable=False),
        sa.Column('period_months', sa.Integer(), nullable=True),
        sa.Column('exception_conditions', sa.JSON(), nullable=True),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_check_frequency_limits_shinryo_code', 'check_frequency_limits', ['shinryo_code'], unique=False)

    op.create_table('check_exclusive_pairs',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('code_a', sa.String(length=9), nullable=False),
        sa.Column('name_a', sa.String(length=200), nullable=False, server_default=''),
        sa.Column('code_b', sa.String(length=9), nullable=False),
        sa.Column('name_b', sa.String(length=200), nullable=False, server_default=''),
        sa.Column('exclusion_type', sa.String(length=20), nullable=False),
        sa.Column('exception_conditions', sa.JSON(), nullable=True),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('idx_check_exclusive_pairs_codes', 'check_exclusive_pairs', ['code_a', 'code_b'], unique=False)

    op.create_table('check_addition_rules',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('base_code', sa.String(length=9), nullable=False),
        sa.Column('base_name', sa.String(length=200), nullable=False, server_default=''),
        sa.Column('addition_code', sa.String(length=9), nullable=False),
        sa.Column('addition_name', sa.String(length=200), nullable=False, server_default=''),
        sa.Column('addition_type', sa.String(length=50), nullable=True),
        sa.Column('required_facility', sa.String(length=200), nullable=True),
        sa.Column('conditions', sa.JSON(), nullable=True),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_check_addition_rules_addition_code', 'check_addition_rules', ['addition_code'], unique=False)

    op.create_table('check_procedure_materials',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('procedure_code', sa.String(length=9), nullable=False),
        sa.Column('procedure_name', sa.String(length=200), nullable=False, server_default=''),
        sa.Column('material_code', sa.String(length=9), nullable=False),
        sa.Column('material_name', sa.String(length=200), nullable=False, server_default=''),
        sa.Column('is_required', sa.Boolean(), nullable=False, server_default='false'),
        sa.Column('default_quantity', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('conditions', sa.JSON(), nullable=True),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_check_procedure_materials_procedure_code', 'check_procedure_materials', ['procedure_code'], unique=False)

    op.create_table('check_age_limits',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('shinryo_code', sa.String(length=9), nullable=False),
        sa.Column('name', sa.String(length=200), nullable=False, server_default=''),
        sa.Column('min_age', sa.Integer(), nullable=True),
        sa.Column('max_age', sa.Integer(), nullable=True),
        sa.Column('age_type', sa.String(length=10), nullable=False, server_default='years'),
        sa.Column('exception_conditions', sa.JSON(), nullable=True),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_check_age_limits_shinryo_code', 'check_age_limits', ['shinryo_code'], unique=False)

    op.create_table('check_incremental_fees',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('shinryo_code', sa.String(length=9), nullable=False),
        sa.Column('name', sa.String(length=200), nullable=False, server_default=''),
        sa.Column('base_points', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('increment_points', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('increment_unit', sa.String(length=50), nullable=True),
        sa.Column('base_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('max_count', sa.Integer(), nullable=True),
        sa.Column('conditions', sa.JSON(), nullable=True),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_check_incremental_fees_shinryo_code', 'check_incremental_fees', ['shinryo_code'], unique=False)

    op.create_table('audit_logs',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('table_name', sa.String(length=100), nullable=False),
        sa.Column('record_id', sa.String(length=36), nullable=True),
        sa.Column('action', sa.String(length=50), nullable=False),
        sa.Column('changed_fields', sa.JSON(), nullable=True),
        sa.Column('new_data', sa.JSON(), nullable=True),
        sa.Column('performed_by', sa.String(length=100), nullable=True),
        sa.Column('performed_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_audit_logs_performed_at', 'audit_logs', ['performed_at'], unique=False)


def downgrade() -> None:
    op.drop_index('ix_audit_logs_performed_at', table_name='audit_logs')
    op.drop_table('audit_logs')
    op.drop_index('ix_check_incremental_fees_shinryo_code', table_name='check_incremental_fees')
    op.drop_table('check_incremental_fees')
    op.drop_index('ix_check_age_limits_shinryo_code', table_name='check_age_limits')
    op.drop_table('check_age_limits')
    op.drop_index('ix_check_procedure_materials_procedure_code', table_name='check_procedure_materials')
    op.drop_table('check_procedure_materials')
    op.drop_index('ix_check_addition_rules_addition_code', table_name='check_addition_rules')
    op.drop_table('check_addition_rules')
    op.drop_index('idx_check_exclusive_pairs_codes', table_name='check_exclusive_pairs')
    op.drop_table('check_exclusive_pairs')
    op.drop_index('ix_check_frequency_limits_shinryo_code', table_name='check_frequency_limits')
    op.drop_table('check_frequency_limits')
    op.drop_index('ix_diagnosis_requirements_is_active', table_name='diagnosis_requirements')
    op.drop_table('diagnosis_requirements')
    op.drop_index('idx_fee_master_receipt_kubun_sub', table_name='fee_master_receipt')
    op.drop_table('fee_master_receipt')
    op.drop_index('ix_billing_created_at', table_name='billing')
    op.drop_index('ix_billing_payment_status', table_name='billing')
    op.drop_index('ix_billing_patient_id', table_name='billing')
    op.drop_index('ix_billing_record_id', table_name='billing')
    op.drop_table('billing')
    op.drop_index('ix_patient_diagnoses_patient_id', table_name='patient_diagnoses')
    op.drop_table('patient_diagnoses')
    op.drop_table('patients')
