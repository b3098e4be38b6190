"""
WhatsApp Service
Sends (or prepares) the appointment confirmation message for a scheduled session.

Providers:
- meta: WhatsApp Cloud API (Graph v19.0), plain text or an approved template
- link: builds a wa.me link for the psychologist to send manually
"""
import json
import logging
import re
from datetime import datetime, timezone
from typing import Any, Dict, Optional
from urllib.parse import quote

import httpx
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.error_handling import AppException
from app.services.record_store import ClinicSettingsStore, PatientStore, SessionStore
from config import Settings, settings as default_settings
from database import Database

logger = logging.getLogger(__name__)

META_GRAPH_URL = "https://graph.facebook.com/v19.0"


class WhatsAppError(AppException):
    """Provider failure carrying the HTTP status to surface to the client"""
    def __init__(self, message: str, status_code: int = 502, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, status_code=status_code, details=details)


def normalize_phone_br(raw: Any) -> Optional[str]:
    """
    Normalize a Brazilian phone number to E.164

    Accepts numbers already carrying the 55 country code (12 or 13 digits) and
    local numbers with area code (10 digits landline, 11 digits mobile).
    """
    if not raw:
        return None
    digits = re.sub(r"\D", "", str(raw))
    if not digits:
        return None

    if digits.startswith("55") and len(digits) in (12, 13):
        return f"+{digits}"

    if len(digits) in (10, 11):
        return f"+55{digits}"

    return None


def format_date_br(value: Any) -> str:
    """YYYY-MM-DD... -> DD/MM/YYYY; anything else is returned as text"""
    if not value:
        return ""
    text = str(value)
    match = re.match(r"^(\d{4})-(\d{2})-(\d{2})", text)
    if not match:
        return text
    year, month, day = match.groups()
    return f"{day}/{month}/{year}"


def compose_confirmation_message(
    patient_name: Optional[str],
    psychologist_name: Optional[str],
    date_br: Optional[str],
    time: Optional[str],
) -> str:
    p_name = patient_name or "Olá"
    psy = psychologist_name or "a psicóloga"
    when = " às ".join(part for part in (date_br, time) if part)

    return (
        f"Olá, {p_name}!\n\n"
        f"Sua sessão com {psy} foi agendada para {when}.\n\n"
        "Por favor, responda CONFIRMO para confirmar.\n"
        "Se precisar reagendar, avise com antecedência. Obrigado!"
    )


def schedule_fingerprint(date: Any, time: Any, psychologist_name: Any) -> str:
    """Identifies the schedule a confirmation was sent for"""
    return json.dumps(
        {"date": date or "", "time": time or "", "psychologistName": psychologist_name or ""},
        separators=(",", ":"),
        ensure_ascii=False,
    )


def _skipped(reason: str) -> Dict[str, Any]:
    return {"ok": True, "skipped": True, "reason": reason}


class WhatsAppService:
    """Session confirmations over WhatsApp for one owner's data"""

    def __init__(
        self,
        db: AsyncSession,
        config: Optional[Settings] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.db = db
        self.config = config or default_settings
        self.transport = transport
        self.sessions = SessionStore(db)
        self.patients = PatientStore(db)
        self.clinic_settings = ClinicSettingsStore(db)

    @property
    def provider(self) -> str:
        return (self.config.WHATSAPP_PROVIDER or "disabled").strip().lower()

    async def maybe_send_session_confirmation(
        self,
        owner_id: str,
        session_id: Optional[str],
        session: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        """
        Send the confirmation for a session when everything needed is in place.

        Returns the provider result, or ``{"ok": True, "skipped": True, "reason": ...}``.
        Provider errors raise WhatsAppError. The caller commits.
        """
        if not self.config.WHATSAPP_ENABLED:
            return _skipped("disabled")

        if not session_id:
            return _skipped("missing_session_id")

        provider = self.provider
        if provider == "disabled":
            return _skipped("provider_disabled")

        stored = await self.sessions.get(owner_id, session_id) or {}
        effective = {**stored, **(session or {})}
        effective.pop("id", None)

        if str(effective.get("status") or "").lower() != "agendada":
            return _skipped("status_not_agendada")

        patient_id = effective.get("patient_id")
        if not patient_id:
            return _skipped("missing_patient_id")

        patient = await self.patients.get(owner_id, patient_id)
        if patient is None:
            return _skipped("patient_not_found")

        patient_name = patient.get("full_name") or patient.get("name") or ""
        raw_phone = (
            patient.get("phone") or patient.get("whatsapp")
            or patient.get("telefone") or patient.get("celular") or ""
        )
        to_e164 = normalize_phone_br(raw_phone)
        if not to_e164:
            return _skipped("invalid_or_missing_phone")

        psychologist_name = await self._psychologist_name(owner_id)
        date_br = format_date_br(effective.get("date"))
        time = effective.get("start_time") or effective.get("time") or ""

        fingerprint = schedule_fingerprint(effective.get("date"), time, psychologist_name)
        if (
            effective.get("whatsapp_confirmation_fingerprint") == fingerprint
            and effective.get("whatsapp_confirmation_sent_at")
        ):
            return _skipped("already_sent_for_same_schedule")

        message = compose_confirmation_message(patient_name, psychologist_name, date_br, time)

        if provider == "meta":
            template = self._build_meta_template(patient_name, psychologist_name, date_br, time)
            result = await self._send_via_meta(to_e164, message, template)
        elif provider == "link":
            to_digits = to_e164.lstrip("+")
            text = quote(message, safe="!*'()")
            result = {
                "ok": True,
                "provider": "link",
                "url": f"https://wa.me/{to_digits}?text={text}",
                "prepared": True,
            }
        else:
            return _skipped("unknown_provider")

        now_iso = datetime.now(timezone.utc).isoformat()
        is_link = result["provider"] == "link"
        effective.update({
            "whatsapp_confirmation_fingerprint": fingerprint,
            "whatsapp_confirmation_provider": result["provider"],
            "whatsapp_confirmation_to": to_e164,
            "whatsapp_confirmation_sent_at": None if is_link else now_iso,
            "whatsapp_confirmation_prepared_at": now_iso if is_link else None,
            "whatsapp_confirmation_message_id": result.get("messageId"),
            "whatsapp_confirmation_error": None,
        })

        if stored:
            await self.sessions.replace(owner_id, session_id, effective)

        logger.info(f"WhatsApp confirmation for session {session_id} handled by {result['provider']}")
        return result

    async def _psychologist_name(self, owner_id: str) -> str:
        if self.config.WHATSAPP_PSYCHOLOGIST_NAME:
            return self.config.WHATSAPP_PSYCHOLOGIST_NAME
        latest = await self.clinic_settings.list(owner_id)
        return (latest[0].get("psychologist_name") or "") if latest else ""

    def _build_meta_template(
        self,
        patient_name: str,
        psychologist_name: str,
        date_br: str,
        time: str,
    ) -> Optional[Dict[str, Any]]:
        name = self.config.WHATSAPP_TEMPLATE_NAME
        if not name:
            return None
        return {
            "name": name,
            "language": {"code": self.config.WHATSAPP_TEMPLATE_LANGUAGE or "pt_BR"},
            "components": [
                {
                    "type": "body",
                    "parameters": [
                        {"type": "text", "text": patient_name or ""},
                        {"type": "text", "text": psychologist_name or ""},
                        {"type": "text", "text": date_br or ""},
                        {"type": "text", "text": time or ""},
                    ],
                }
            ],
        }

    async def _send_via_meta(
        self,
        to_e164: str,
        message: str,
        template: Optional[Dict[str, Any]],
    ) -> Dict[str, Any]:
        token = self.config.WHATSAPP_META_TOKEN
        phone_number_id = self.config.WHATSAPP_META_PHONE_NUMBER_ID
        if not token or not phone_number_id:
            raise WhatsAppError("WHATSAPP_META_not_configured", status_code=503)

        to_digits = to_e164.lstrip("+")
        if template:
            payload = {"messaging_product": "whatsapp", "to": to_digits, "type": "template", "template": template}
        else:
            payload = {"messaging_product": "whatsapp", "to": to_digits, "type": "text", "text": {"body": message}}

        try:
            async with httpx.AsyncClient(timeout=self.config.HTTP_TIMEOUT_SECONDS, transport=self.transport) as client:
                response = await client.post(
                    f"{META_GRAPH_URL}/{phone_number_id}/messages",
                    json=payload,
                    headers={"Authorization": f"Bearer {token}"},
                )
        except httpx.HTTPError as e:
            logger.error(f"WhatsApp Cloud API unreachable: {e}")
            raise WhatsAppError("whatsapp_upstream_unreachable", status_code=502) from e

        try:
            data = response.json()
        except ValueError:
            data = None

        if not response.is_success:
            error = data.get("error") if isinstance(data, dict) else None
            message_text = error.get("message") if isinstance(error, dict) else None
            raise WhatsAppError(message_text or "whatsapp_meta_error", status_code=response.status_code)

        message_id = None
        if isinstance(data, dict) and data.get("messages"):
            message_id = data["messages"][0].get("id")
        return {"ok": True, "provider": "meta", "messageId": message_id}


async def send_confirmation_in_background(
    database: Database,
    owner_id: str,
    session_id: str,
    session: Optional[Dict[str, Any]] = None,
) -> None:
    """Background-task entry point: own database session, failures only logged"""
    async with database.session_factory() as db:
        try:
            result = await WhatsAppService(db).maybe_send_session_confirmation(owner_id, session_id, session)
            await db.commit()
        except Exception as e:
            await db.rollback()
            logger.warning(f"WhatsApp confirmation failed for session {session_id}: {e}")
            return

    if result.get("skipped"):
        logger.debug(f"WhatsApp confirmation skipped for session {session_id}: {result['reason']}")
