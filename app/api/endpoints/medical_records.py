"""
Medical Record Endpoints
Anamnesis, progress notes, reports and certificates
"""
from fastapi import APIRouter

from app.api.endpoints.records import add_record_routes
from app.services.record_store import MedicalRecordStore

router = APIRouter(prefix="/medical-records", tags=["Medical Records"])

add_record_routes(router, MedicalRecordStore)
