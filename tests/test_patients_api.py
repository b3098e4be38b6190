"""
Patient endpoint tests
"""
import pytest

pytestmark = pytest.mark.integration


async def test_create_patient_requires_full_name(client, auth_headers):
    response = await client.post("/api/patients", json={"email": "x@y.com"}, headers=auth_headers)

    assert response.status_code == 400
    assert response.json() == {"error": "full_name_required"}


async def test_create_and_list_patients(client, auth_headers):
    first = await client.post("/api/patients", json={"full_name": "Maria", "status": "ativo"}, headers=auth_headers)
    await client.post("/api/patients", json={"full_name": "Pedro", "status": "inativo"}, headers=auth_headers)

    assert first.status_code == 201
    patient = first.json()
    assert patient["id"]
    assert patient["created_date"] == patient["updated_date"]

    everyone = await client.get("/api/patients", headers=auth_headers)
    active = await client.get("/api/patients", params={"status": "ativo"}, headers=auth_headers)

    # newest first
    assert [p["full_name"] for p in everyone.json()] == ["Pedro", "Maria"]
    assert [p["full_name"] for p in active.json()] == ["Maria"]


async def test_update_merges_fields_and_keeps_identity(client, auth_headers):
    patient = (await client.post(
        "/api/patients", json={"full_name": "Maria", "phone": "11999990000"}, headers=auth_headers,
    )).json()

    response = await client.put(
        f"/api/patients/{patient['id']}",
        json={"email": "maria@exemplo.com", "id": "forged"},
        headers=auth_headers,
    )

    assert response.status_code == 200
    updated = response.json()
    assert updated["id"] == patient["id"]
    assert updated["created_date"] == patient["created_date"]
    assert updated["phone"] == "11999990000"
    assert updated["email"] == "maria@exemplo.com"


async def test_get_patient_embeds_related_records(client, auth_headers):
    patient = (await client.post("/api/patients", json={"full_name": "Maria"}, headers=auth_headers)).json()
    session = (await client.post("/api/sessions", json={
        "patient_id": patient["id"], "patient_name": "Maria", "date": "2024-06-03", "price": 100,
    }, headers=auth_headers)).json()
    await client.post("/api/medical-records", json={
        "patient_id": patient["id"], "session_id": session["id"], "content": "Primeira consulta",
    }, headers=auth_headers)

    response = await client.get(f"/api/patients/{patient['id']}", headers=auth_headers)

    assert response.status_code == 200
    data = response.json()
    assert [s["id"] for s in data["sessions"]] == [session["id"]]
    assert len(data["medicalRecords"]) == 1
    assert [t["session_id"] for t in data["transactions"]] == [session["id"]]


async def test_get_unknown_patient(client, auth_headers):
    response = await client.get("/api/patients/missing", headers=auth_headers)

    assert response.status_code == 404
    assert response.json() == {"error": "not_found"}


async def test_delete_patient_cascades(client, auth_headers):
    patient = (await client.post("/api/patients", json={"full_name": "Maria"}, headers=auth_headers)).json()
    keep = (await client.post("/api/patients", json={"full_name": "Pedro"}, headers=auth_headers)).json()
    for owner in (patient, keep):
        await client.post("/api/sessions", json={
            "patient_id": owner["id"], "date": "2024-06-03", "price": 100,
        }, headers=auth_headers)
    await client.post("/api/medical-records", json={"patient_id": patient["id"]}, headers=auth_headers)

    response = await client.delete(f"/api/patients/{patient['id']}", headers=auth_headers)

    assert response.status_code == 204
    sessions = (await client.get("/api/sessions", headers=auth_headers)).json()
    transactions = (await client.get("/api/financial", headers=auth_headers)).json()
    records = (await client.get("/api/medical-records", headers=auth_headers)).json()
    assert [s["patient_id"] for s in sessions] == [keep["id"]]
    assert [t["patient_id"] for t in transactions] == [keep["id"]]
    assert records == []


async def test_delete_unknown_patient(client, auth_headers):
    response = await client.delete("/api/patients/missing", headers=auth_headers)

    assert response.status_code == 404
