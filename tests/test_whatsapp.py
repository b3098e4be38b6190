"""
WhatsApp confirmation tests
"""
import json
from urllib.parse import unquote

import httpx
import pytest

from config import Settings
from app.services.record_store import ClinicSettingsStore, PatientStore, SessionStore
from app.services.whatsapp_service import (
    WhatsAppError,
    WhatsAppService,
    compose_confirmation_message,
    format_date_br,
    normalize_phone_br,
)

OWNER = "owner-1"


def make_settings(**overrides) -> Settings:
    values = {"WHATSAPP_ENABLED": True, "WHATSAPP_PROVIDER": "link", **overrides}
    return Settings(_env_file=None, **values)


@pytest.fixture
async def scheduled(db_session):
    """A patient with a valid phone and one scheduled session"""
    patient = await PatientStore(db_session).create(OWNER, {"full_name": "Maria Lima", "phone": "(11) 98765-4321"})
    session = await SessionStore(db_session).create(OWNER, {
        "patient_id": patient["id"],
        "date": "2024-06-03",
        "start_time": "09:00",
        "status": "agendada",
    })
    await db_session.commit()
    return session


# ----------------- helpers -----------------

@pytest.mark.unit
@pytest.mark.parametrize("raw,expected", [
    ("(11) 98765-4321", "+5511987654321"),
    ("1133334444", "+551133334444"),
    ("+55 11 98765-4321", "+5511987654321"),
    ("5511987654321", "+5511987654321"),
    ("98765-4321", None),
    ("", None),
    (None, None),
])
def test_normalize_phone_br(raw, expected):
    assert normalize_phone_br(raw) == expected


@pytest.mark.unit
def test_format_date_br():
    assert format_date_br("2024-06-03") == "03/06/2024"
    assert format_date_br("2024-06-03T09:00:00Z") == "03/06/2024"
    assert format_date_br("amanhã") == "amanhã"
    assert format_date_br(None) == ""


@pytest.mark.unit
def test_confirmation_message():
    message = compose_confirmation_message("Maria", "Dra. Ana", "03/06/2024", "09:00")

    assert message.startswith("Olá, Maria!")
    assert "Sua sessão com Dra. Ana foi agendada para 03/06/2024 às 09:00." in message
    assert "CONFIRMO" in message


@pytest.mark.unit
def test_confirmation_message_defaults():
    message = compose_confirmation_message(None, None, "03/06/2024", "")

    assert "a psicóloga" in message
    assert "agendada para 03/06/2024." in message


# ----------------- skip reasons -----------------

@pytest.mark.integration
async def test_disabled(db_session, scheduled):
    service = WhatsAppService(db_session, make_settings(WHATSAPP_ENABLED=False))
    result = await service.maybe_send_session_confirmation(OWNER, scheduled["id"])
    assert result == {"ok": True, "skipped": True, "reason": "disabled"}


@pytest.mark.integration
async def test_provider_disabled(db_session, scheduled):
    service = WhatsAppService(db_session, make_settings(WHATSAPP_PROVIDER="disabled"))
    result = await service.maybe_send_session_confirmation(OWNER, scheduled["id"])
    assert result["reason"] == "provider_disabled"


@pytest.mark.integration
async def test_missing_session_id(db_session):
    result = await WhatsAppService(db_session, make_settings()).maybe_send_session_confirmation(OWNER, None)
    assert result["reason"] == "missing_session_id"


@pytest.mark.integration
async def test_only_scheduled_sessions_are_confirmed(db_session, scheduled):
    service = WhatsAppService(db_session, make_settings())
    result = await service.maybe_send_session_confirmation(OWNER, scheduled["id"], {"status": "concluida"})
    assert result["reason"] == "status_not_agendada"


@pytest.mark.integration
async def test_patient_not_found(db_session):
    session = await SessionStore(db_session).create(OWNER, {"patient_id": "gone", "status": "agendada"})

    result = await WhatsAppService(db_session, make_settings()).maybe_send_session_confirmation(OWNER, session["id"])

    assert result["reason"] == "patient_not_found"


@pytest.mark.integration
async def test_missing_patient_id(db_session):
    session = await SessionStore(db_session).create(OWNER, {"status": "agendada"})

    result = await WhatsAppService(db_session, make_settings()).maybe_send_session_confirmation(OWNER, session["id"])

    assert result["reason"] == "missing_patient_id"


@pytest.mark.integration
async def test_invalid_phone(db_session):
    patient = await PatientStore(db_session).create(OWNER, {"full_name": "Sem Telefone", "phone": "123"})
    session = await SessionStore(db_session).create(OWNER, {"patient_id": patient["id"], "status": "agendada"})

    result = await WhatsAppService(db_session, make_settings()).maybe_send_session_confirmation(OWNER, session["id"])

    assert result["reason"] == "invalid_or_missing_phone"


# ----------------- providers -----------------

@pytest.mark.integration
async def test_link_provider_prepares_message_and_records_it(db_session, scheduled):
    await ClinicSettingsStore(db_session).create(OWNER, {"psychologist_name": "Dra. Ana"})
    service = WhatsAppService(db_session, make_settings())

    result = await service.maybe_send_session_confirmation(OWNER, scheduled["id"])

    assert result["provider"] == "link"
    assert result["prepared"] is True
    assert result["url"].startswith("https://wa.me/5511987654321?text=")
    text = unquote(result["url"].split("text=", 1)[1])
    assert "Sua sessão com Dra. Ana foi agendada para 03/06/2024 às 09:00." in text

    stored = await SessionStore(db_session).get(OWNER, scheduled["id"])
    assert stored["whatsapp_confirmation_provider"] == "link"
    assert stored["whatsapp_confirmation_to"] == "+5511987654321"
    assert stored["whatsapp_confirmation_prepared_at"]
    assert stored["whatsapp_confirmation_sent_at"] is None
    assert json.loads(stored["whatsapp_confirmation_fingerprint"]) == {
        "date": "2024-06-03", "time": "09:00", "psychologistName": "Dra. Ana",
    }


@pytest.mark.integration
async def test_meta_requires_credentials(db_session, scheduled):
    service = WhatsAppService(db_session, make_settings(WHATSAPP_PROVIDER="meta"))

    with pytest.raises(WhatsAppError) as exc_info:
        await service.maybe_send_session_confirmation(OWNER, scheduled["id"])

    assert exc_info.value.status_code == 503
    assert exc_info.value.message == "WHATSAPP_META_not_configured"


def meta_settings(**overrides) -> Settings:
    return make_settings(
        WHATSAPP_PROVIDER="meta",
        WHATSAPP_META_TOKEN="tok",
        WHATSAPP_META_PHONE_NUMBER_ID="12345",
        WHATSAPP_PSYCHOLOGIST_NAME="Dra. Ana",
        **overrides,
    )


@pytest.mark.integration
async def test_meta_sends_text_once_per_schedule(db_session, scheduled):
    requests = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(200, json={"messages": [{"id": "wamid.1"}]})

    service = WhatsAppService(db_session, meta_settings(), transport=httpx.MockTransport(handler))

    first = await service.maybe_send_session_confirmation(OWNER, scheduled["id"])
    second = await service.maybe_send_session_confirmation(OWNER, scheduled["id"])

    assert first == {"ok": True, "provider": "meta", "messageId": "wamid.1"}
    assert second["reason"] == "already_sent_for_same_schedule"
    assert len(requests) == 1
    sent = json.loads(requests[0].content)
    assert str(requests[0].url) == "https://graph.facebook.com/v19.0/12345/messages"
    assert requests[0].headers["Authorization"] == "Bearer tok"
    assert sent["to"] == "5511987654321"
    assert sent["type"] == "text"

    stored = await SessionStore(db_session).get(OWNER, scheduled["id"])
    assert stored["whatsapp_confirmation_message_id"] == "wamid.1"
    assert stored["whatsapp_confirmation_sent_at"]


@pytest.mark.integration
async def test_meta_resends_after_reschedule(db_session, scheduled):
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(200, json={"messages": [{"id": f"wamid.{len(calls)}"}]})

    service = WhatsAppService(db_session, meta_settings(), transport=httpx.MockTransport(handler))
    await service.maybe_send_session_confirmation(OWNER, scheduled["id"])
    await SessionStore(db_session).update(OWNER, scheduled["id"], {"start_time": "10:00"})

    result = await service.maybe_send_session_confirmation(OWNER, scheduled["id"])

    assert result["messageId"] == "wamid.2"
    assert len(calls) == 2


@pytest.mark.integration
async def test_meta_template(db_session, scheduled):
    bodies = []

    def handler(request):
        bodies.append(json.loads(request.content))
        return httpx.Response(200, json={"messages": [{"id": "wamid.t"}]})

    service = WhatsAppService(
        db_session,
        meta_settings(WHATSAPP_TEMPLATE_NAME="confirmacao_sessao"),
        transport=httpx.MockTransport(handler),
    )

    await service.maybe_send_session_confirmation(OWNER, scheduled["id"])

    template = bodies[0]["template"]
    assert bodies[0]["type"] == "template"
    assert template["name"] == "confirmacao_sessao"
    assert template["language"] == {"code": "pt_BR"}
    assert [p["text"] for p in template["components"][0]["parameters"]] == [
        "Maria Lima", "Dra. Ana", "03/06/2024", "09:00",
    ]


@pytest.mark.integration
async def test_meta_upstream_error(db_session, scheduled):
    def handler(request):
        return httpx.Response(400, json={"error": {"message": "Invalid parameter"}})

    service = WhatsAppService(db_session, meta_settings(), transport=httpx.MockTransport(handler))

    with pytest.raises(WhatsAppError) as exc_info:
        await service.maybe_send_session_confirmation(OWNER, scheduled["id"])

    assert exc_info.value.status_code == 400
    assert exc_info.value.message == "Invalid parameter"


# ----------------- endpoint -----------------

@pytest.mark.integration
async def test_confirmation_endpoint(client, auth_headers):
    session = (await client.post("/api/sessions", json={
        "patient_id": "p1", "date": "2024-06-03", "status": "agendada",
    }, headers=auth_headers)).json()

    response = await client.post(
        f"/api/integrations/whatsapp/sessions/{session['id']}/confirmation", headers=auth_headers,
    )
    missing = await client.post("/api/integrations/whatsapp/sessions/nope/confirmation", headers=auth_headers)

    assert response.status_code == 200
    assert response.json() == {"ok": True, "skipped": True, "reason": "disabled"}
    assert missing.status_code == 404
