"""
LGPD Service
Data-subject rights over a patient's personal data: consent overview,
portability export and permanent erasure.
"""
import logging
import re
import unicodedata
from datetime import date
from typing import Any, Dict, List

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.error_handling import NotFoundException
from app.services.record_store import (
    FinancialStore,
    MedicalRecordStore,
    PatientStore,
    SessionStore,
)

logger = logging.getLogger(__name__)


class LGPDService:
    """Privacy operations, always scoped to the authenticated owner"""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.patients = PatientStore(db)
        self.sessions = SessionStore(db)
        self.records = MedicalRecordStore(db)
        self.transactions = FinancialStore(db)

    async def consent_summary(self, owner_id: str) -> Dict[str, Any]:
        """
        Consent overview for the LGPD dashboard

        Returns:
            Dictionary with patient totals, consent split and protected-record count
        """
        patients = await self.patients.list(owner_id)
        consented = [p["id"] for p in patients if p.get("consent_lgpd")]
        not_consented = [p["id"] for p in patients if not p.get("consent_lgpd")]
        records = await self.records.list(owner_id)

        return {
            "total_patients": len(patients),
            "consented": len(consented),
            "not_consented": len(not_consented),
            "consented_patient_ids": consented,
            "not_consented_patient_ids": not_consented,
            "confidential_records": sum(1 for r in records if r.get("is_confidential")),
        }

    async def export_patient(self, owner_id: str, patient_id: str) -> Dict[str, Any]:
        """Portability document for one patient (right of access)"""
        patient = await self.patients.get(owner_id, patient_id)
        if patient is None:
            raise NotFoundException()

        sessions = await self.sessions.filter(owner_id, patient_id=patient_id)
        records = await self.records.filter(owner_id, patient_id=patient_id)

        logger.info(f"LGPD export generated for patient {patient_id}")
        return {
            "paciente": {
                "nome": patient.get("full_name"),
                "email": patient.get("email"),
                "telefone": patient.get("phone"),
                "data_nascimento": patient.get("birth_date"),
                "endereco": patient.get("address"),
                "data_cadastro": patient.get("created_date"),
                "consentimento_lgpd": patient.get("consent_lgpd"),
                "data_consentimento": patient.get("consent_date"),
            },
            "sessoes": [
                {
                    "data": s.get("date"),
                    "horario": s.get("start_time"),
                    "tipo": s.get("session_type"),
                    "status": s.get("status"),
                }
                for s in sessions
            ],
            "total_sessoes": len(sessions),
            "registros_prontuario": len(records),
        }

    @staticmethod
    def export_filename(export: Dict[str, Any]) -> str:
        name = (export.get("paciente") or {}).get("nome") or "paciente"
        # Header-safe: ASCII only
        ascii_name = unicodedata.normalize("NFKD", str(name)).encode("ascii", "ignore").decode()
        ascii_name = re.sub(r"[^A-Za-z0-9]+", "_", ascii_name).strip("_") or "paciente"
        return f"dados_{ascii_name}_{date.today().isoformat()}.json"

    async def erase_patient(self, owner_id: str, patient_id: str) -> Dict[str, int]:
        """
        Permanently delete a patient and every record that references it
        (right to erasure). The caller commits.
        """
        patient = await self.patients.get(owner_id, patient_id)
        if patient is None:
            raise NotFoundException()

        counts = {
            "sessions": await self._delete_all(self.sessions, owner_id, patient_id),
            "medical_records": await self._delete_all(self.records, owner_id, patient_id),
            "financial_transactions": await self._delete_all(self.transactions, owner_id, patient_id),
        }
        await self.patients.delete(owner_id, patient_id)
        counts["patients"] = 1

        logger.info(f"LGPD erasure for patient {patient_id}: {counts}")
        return counts

    @staticmethod
    async def _delete_all(store, owner_id: str, patient_id: str) -> int:
        items: List[Dict[str, Any]] = await store.filter(owner_id, patient_id=patient_id)
        for item in items:
            await store.delete(owner_id, item["id"])
        return len(items)
