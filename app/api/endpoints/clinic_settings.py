"""
Clinic Settings Endpoints
"""
from fastapi import APIRouter

from app.api.endpoints.records import add_record_routes
from app.services.record_store import ClinicSettingsStore

router = APIRouter(prefix="/clinic-settings", tags=["Clinic Settings"])

add_record_routes(router, ClinicSettingsStore)
