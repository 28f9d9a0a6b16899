"""
SQLAlchemy ORM model for dashboard users.
"""
import uuid

from sqlalchemy import Column, String, DateTime, Index
from sqlalchemy.sql import func

from app.database import Base
from app.entities import Role, User


class UserModel(Base):
    """
    ORM model for users. Credentials are issued by the external auth
    provider; the id matches the provider's `sub` claim.
    """
    __tablename__ = "users"

    id = Column(String(50), primary_key=True, default=lambda: str(uuid.uuid4()))
    email = Column(String(255), nullable=False, unique=True)
    display_name = Column(String(255), nullable=True)
    password_hash = Column(String(255), nullable=True)
    role = Column(String(20), nullable=False, default=Role.VIEWER.value)  # VIEWER, OWNER, ADMIN, SUPER_ADMIN

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        Index('idx_users_role', 'role'),
    )

    def to_entity(self) -> User:
        return User(
            id=self.id,
            email=self.email,
            role=Role(self.role),
            display_name=self.display_name,
        )

    def __repr__(self):
        return f"<User {self.id}: {self.email} ({self.role})>"
