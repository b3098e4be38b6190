"""
Patient Endpoints
"""
from fastapi import APIRouter, Depends, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from database import get_db
from app.api.endpoints.records import add_record_routes
from app.core.auth import get_owner_id
from app.core.error_handling import NotFoundException
from app.services.lgpd_service import LGPDService
from app.services.record_store import (
    FinancialStore,
    MedicalRecordStore,
    PatientStore,
    SessionStore,
)

router = APIRouter(prefix="/patients", tags=["Patients"])


@router.get("/{patient_id}")
async def get_patient(
    patient_id: str,
    owner_id: str = Depends(get_owner_id),
    db: AsyncSession = Depends(get_db),
):
    """Patient with its sessions, medical records and transactions embedded"""
    patient = await PatientStore(db).get(owner_id, patient_id)
    if patient is None:
        raise NotFoundException()

    return {
        **patient,
        "sessions": await SessionStore(db).filter(owner_id, patient_id=patient_id),
        "medicalRecords": await MedicalRecordStore(db).filter(owner_id, patient_id=patient_id),
        "transactions": await FinancialStore(db).filter(owner_id, patient_id=patient_id),
    }


@router.delete("/{patient_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_patient(
    patient_id: str,
    owner_id: str = Depends(get_owner_id),
    db: AsyncSession = Depends(get_db),
):
    """Delete the patient together with everything that references it"""
    await LGPDService(db).erase_patient(owner_id, patient_id)
    await db.commit()
    return Response(status_code=status.HTTP_204_NO_CONTENT)


add_record_routes(
    router,
    PatientStore,
    required=[("full_name", "full_name_required")],
    exclude={"get", "delete"},
)
