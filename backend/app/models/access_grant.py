"""
SQLAlchemy ORM model for explicit per-property access grants.
"""
from sqlalchemy import Column, String, DateTime, ForeignKey, Index
from sqlalchemy.sql import func

from app.database import Base
from app.entities import AccessGrant, AccessLevel


class AccessGrantModel(Base):
    """
    ACL entry giving a user a level on a property they may not own.
    At most one row per (user, property): the pair is the primary key.
    """
    __tablename__ = "property_access"

    user_id = Column(String(50), ForeignKey("users.id", ondelete="CASCADE"), primary_key=True)
    property_id = Column(String(50), ForeignKey("properties.id", ondelete="CASCADE"), primary_key=True)
    level = Column(String(20), nullable=False, default=AccessLevel.VIEWER.value)  # VIEWER, OWNER, ADMIN
    granted_by = Column(String(50), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        Index('idx_property_access_property', 'property_id'),
    )

    def to_entity(self) -> AccessGrant:
        return AccessGrant(
            user_id=self.user_id,
            property_id=self.property_id,
            level=AccessLevel(self.level),
            granted_by=self.granted_by,
        )

    def __repr__(self):
        return f"<AccessGrant {self.user_id} -> {self.property_id}: {self.level}>"
