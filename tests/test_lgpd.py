"""
LGPD endpoint tests: consent summary, portability export, erasure
"""
import pytest

from app.services.lgpd_service import LGPDService

pytestmark = pytest.mark.integration


async def create_patient(client, headers, **fields):
    response = await client.post("/api/patients", json=fields, headers=headers)
    return response.json()


async def test_consent_summary(client, auth_headers):
    yes = await create_patient(client, auth_headers, full_name="Maria", consent_lgpd=True)
    no = await create_patient(client, auth_headers, full_name="Pedro")
    await client.post("/api/medical-records", json={"patient_id": yes["id"], "is_confidential": True}, headers=auth_headers)
    await client.post("/api/medical-records", json={"patient_id": yes["id"]}, headers=auth_headers)

    response = await client.get("/api/lgpd/summary", headers=auth_headers)

    assert response.status_code == 200
    assert response.json() == {
        "total_patients": 2,
        "consented": 1,
        "not_consented": 1,
        "consented_patient_ids": [yes["id"]],
        "not_consented_patient_ids": [no["id"]],
        "confidential_records": 1,
    }


async def test_export_patient(client, auth_headers):
    patient = await create_patient(
        client, auth_headers,
        full_name="João Conceição", email="joao@exemplo.com", phone="11999990000",
        consent_lgpd=True, consent_date="2024-01-10",
    )
    await client.post("/api/sessions", json={
        "patient_id": patient["id"], "date": "2024-06-03", "start_time": "09:00",
        "session_type": "individual", "status": "concluida",
    }, headers=auth_headers)
    await client.post("/api/medical-records", json={"patient_id": patient["id"]}, headers=auth_headers)

    response = await client.get(f"/api/lgpd/patients/{patient['id']}/export", headers=auth_headers)

    assert response.status_code == 200
    disposition = response.headers["Content-Disposition"]
    assert disposition.startswith('attachment; filename="dados_Joao_Conceicao_')
    assert disposition.endswith('.json"')

    data = response.json()
    assert data["paciente"]["nome"] == "João Conceição"
    assert data["paciente"]["telefone"] == "11999990000"
    assert data["paciente"]["consentimento_lgpd"] is True
    assert data["sessoes"] == [
        {"data": "2024-06-03", "horario": "09:00", "tipo": "individual", "status": "concluida"},
    ]
    assert data["total_sessoes"] == 1
    assert data["registros_prontuario"] == 1


async def test_export_of_other_owners_patient(client, auth_headers, other_headers):
    patient = await create_patient(client, auth_headers, full_name="Maria")

    response = await client.get(f"/api/lgpd/patients/{patient['id']}/export", headers=other_headers)

    assert response.status_code == 404


async def test_erase_patient(client, auth_headers):
    patient = await create_patient(client, auth_headers, full_name="Maria")
    for day in ("2024-06-03", "2024-06-10"):
        await client.post("/api/sessions", json={
            "patient_id": patient["id"], "date": day, "price": 100,
        }, headers=auth_headers)
    await client.post("/api/medical-records", json={"patient_id": patient["id"]}, headers=auth_headers)

    response = await client.delete(f"/api/lgpd/patients/{patient['id']}", headers=auth_headers)

    assert response.status_code == 200
    assert response.json() == {
        "ok": True,
        "deleted": {"sessions": 2, "medical_records": 1, "financial_transactions": 2, "patients": 1},
    }
    assert (await client.get(f"/api/patients/{patient['id']}", headers=auth_headers)).status_code == 404
    assert (await client.get("/api/financial", headers=auth_headers)).json() == []


@pytest.mark.unit
def test_export_filename_falls_back_for_missing_name():
    assert LGPDService.export_filename({"paciente": {"nome": None}}).startswith("dados_paciente_")
