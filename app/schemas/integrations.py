"""
Integration request schemas
"""
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field


class InvokeLLMRequest(BaseModel):
    # Optional so a missing prompt is reported as prompt_required
    prompt: Optional[str] = None
    response_json_schema: Optional[Dict[str, Any]] = None


class AnalyzeSessionNotesRequest(BaseModel):
    session_notes: str = Field(..., min_length=1)
    patient_id: Optional[str] = None
