"""
User Model
Account that owns a tenant's records (the JWT ``sub`` claim)
"""
from sqlalchemy import Column, String, DateTime
from sqlalchemy.sql import func
from database import Base
from app.models.records import generate_uuid, utcnow


class User(Base):
    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    email = Column(String(255), nullable=False, unique=True, index=True)
    full_name = Column(String(255), nullable=True)
    password_hash = Column(String(255), nullable=False)
    role = Column(String(50), nullable=False, default="psicologo")

    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False)

    def to_public_dict(self) -> dict:
        return {
            "id": self.id,
            "email": self.email,
            "fullName": self.full_name,
            "role": self.role,
            "createdAt": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<User(id={self.id}, email='{self.email}')>"
