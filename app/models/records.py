"""
Clinic record models
Every entity is a row holding an opaque JSON payload plus the owner and timestamps.
Financial transactions also promote ``category`` and ``session_id`` to columns so the
session link can be indexed and kept unique.
"""
import uuid
from datetime import datetime, timezone
from sqlalchemy import Column, String, DateTime, JSON, Index, text
from database import Base


def generate_uuid() -> str:
    return str(uuid.uuid4())


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class RecordMixin:
    """Columns shared by every payload-backed entity"""

    id = Column(String(36), primary_key=True, default=generate_uuid)
    # Nullable for legacy rows created before ownership existed (see owner_backfill)
    owner_id = Column(String(36), nullable=True, index=True)
    data = Column(JSON, nullable=False, default=dict)

    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False, index=True)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)

    def to_dict(self) -> dict:
        return {"id": self.id, **(self.data or {})}

    def __repr__(self):
        return f"<{type(self).__name__}(id={self.id}, owner_id={self.owner_id})>"


class Patient(RecordMixin, Base):
    __tablename__ = "patients"


class TherapySession(RecordMixin, Base):
    """Scheduled or completed appointment (``/sessions``)"""
    __tablename__ = "sessions"


class MedicalRecord(RecordMixin, Base):
    __tablename__ = "medical_records"


class ClinicSettings(RecordMixin, Base):
    __tablename__ = "clinic_settings"


SESSION_CATEGORY = "sessao"


class FinancialTransaction(RecordMixin, Base):
    __tablename__ = "financial_transactions"

    category = Column(String(30), nullable=True, index=True)
    session_id = Column(String(36), nullable=True, index=True)

    __table_args__ = (
        # At most one session billing row per session
        Index(
            "uq_financial_transactions_session_link",
            "owner_id",
            "session_id",
            unique=True,
            sqlite_where=text("category = 'sessao' AND session_id IS NOT NULL"),
            postgresql_where=text("category = 'sessao' AND session_id IS NOT NULL"),
        ),
    )
