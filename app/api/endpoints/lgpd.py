"""
LGPD Endpoints
Consent overview, data portability and right to erasure
"""
from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from database import get_db
from app.core.auth import get_owner_id
from app.services.lgpd_service import LGPDService

router = APIRouter(prefix="/lgpd", tags=["LGPD"])


@router.get("/summary")
async def consent_summary(
    owner_id: str = Depends(get_owner_id),
    db: AsyncSession = Depends(get_db),
):
    return await LGPDService(db).consent_summary(owner_id)


@router.get("/patients/{patient_id}/export")
async def export_patient_data(
    patient_id: str,
    owner_id: str = Depends(get_owner_id),
    db: AsyncSession = Depends(get_db),
):
    """Downloadable JSON with the patient's personal data"""
    export = await LGPDService(db).export_patient(owner_id, patient_id)
    filename = LGPDService.export_filename(export)
    return JSONResponse(
        content=export,
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@router.delete("/patients/{patient_id}")
async def erase_patient_data(
    patient_id: str,
    owner_id: str = Depends(get_owner_id),
    db: AsyncSession = Depends(get_db),
):
    """Permanently delete the patient and every record that references it"""
    counts = await LGPDService(db).erase_patient(owner_id, patient_id)
    await db.commit()
    return {"ok": True, "deleted": counts}
