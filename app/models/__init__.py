from app.models.user import User
from app.models.records import (
    Patient,
    TherapySession,
    MedicalRecord,
    ClinicSettings,
    FinancialTransaction,
    SESSION_CATEGORY,
)

__all__ = [
    "User",
    "Patient",
    "TherapySession",
    "MedicalRecord",
    "ClinicSettings",
    "FinancialTransaction",
    "SESSION_CATEGORY",
]
