import uuid
from datetime import datetime

from sqlalchemy import Column, String, DateTime, JSON

from ..database import Base


class AuditLog(Base):
    __tablename__ = "audit_logs"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    table_name = Column(String(100), nullable=False)
    record_id = Column(String(36), nullable=True)  # Nullable for run-level events (e.g., a monthly check)
    action = Column(String(50), nullable=False)
    changed_fields = Column(JSON, nullable=True)
    new_data = Column(JSON, nullable=True)
    performed_by = Column(String(100), nullable=True)
    performed_at = Column(DateTime, default=datetime.utcnow, nullable=False, index=True)
