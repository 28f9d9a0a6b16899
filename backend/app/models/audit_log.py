"""
SQLAlchemy ORM model for the administrative audit trail.
"""
import uuid

from sqlalchemy import Column, String, DateTime, Index
from sqlalchemy.sql import func

from app.database import Base, JSONType


class AuditLogModel(Base):
    """
    Append-only record of administrative mutations.

    `user_id` is a soft reference so entries outlive the user row.
    """
    __tablename__ = "audit_logs"

    id = Column(String(50), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String(50), nullable=False)
    action = Column(String(100), nullable=False)  # PRICE_HISTORY_DELETE, PROPERTY_ACCESS_GRANT, ...
    target_type = Column(String(50), nullable=False)
    target_id = Column(String(50), nullable=False)
    metadata_ = Column("metadata", JSONType, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    __table_args__ = (
        Index('idx_audit_logs_user', 'user_id'),
        Index('idx_audit_logs_target', 'target_type', 'target_id'),
    )

    def __repr__(self):
        return f"<AuditLog {self.id}: {self.action} on {self.target_type}/{self.target_id}>"
