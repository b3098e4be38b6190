"""
Integration Endpoints
LLM invocation, session-notes analysis and manual WhatsApp confirmations
"""
import logging

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from database import get_db
from app.core.auth import get_owner_id
from app.core.error_handling import ForbiddenException, NotFoundException, ValidationException
from app.core.feature_flags import is_ai_analysis_enabled
from app.schemas.integrations import AnalyzeSessionNotesRequest, InvokeLLMRequest
from app.services.ai_service import LLMService, analyze_session_notes
from app.services.record_store import PatientStore, SessionStore
from app.services.whatsapp_service import WhatsAppService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/integrations", tags=["Integrations"])


def get_llm_service() -> LLMService:
    return LLMService()


@router.post("/core/invoke-llm")
async def invoke_llm(
    body: InvokeLLMRequest,
    owner_id: str = Depends(get_owner_id),
    llm: LLMService = Depends(get_llm_service),
):
    """
    Ask the configured provider for a JSON answer

    Provider failures are raised as LLMError and rendered with the provider's status.
    """
    if not body.prompt:
        raise ValidationException("prompt_required")
    return await llm.invoke(body.prompt, body.response_json_schema)


@router.post("/ai/analyze-session-notes")
async def analyze_notes(
    body: AnalyzeSessionNotesRequest,
    owner_id: str = Depends(get_owner_id),
    db: AsyncSession = Depends(get_db),
    llm: LLMService = Depends(get_llm_service),
):
    """Sentiment analysis of session notes, with a keyword fallback when the LLM is unavailable"""
    if not is_ai_analysis_enabled():
        raise ForbiddenException("ai_analysis_disabled")

    patient_name = None
    session_count = 0
    if body.patient_id:
        patient = await PatientStore(db).get(owner_id, body.patient_id)
        if patient is None:
            raise NotFoundException()
        patient_name = patient.get("full_name")
        session_count = len(await SessionStore(db).filter(owner_id, patient_id=body.patient_id))

    return await analyze_session_notes(body.session_notes, llm, patient_name, session_count)


@router.post("/whatsapp/sessions/{session_id}/confirmation")
async def send_whatsapp_confirmation(
    session_id: str,
    owner_id: str = Depends(get_owner_id),
    db: AsyncSession = Depends(get_db),
):
    """Send (or prepare) the confirmation message of one session now"""
    if await SessionStore(db).get(owner_id, session_id) is None:
        raise NotFoundException()

    result = await WhatsAppService(db).maybe_send_session_confirmation(owner_id, session_id)
    await db.commit()
    return result
