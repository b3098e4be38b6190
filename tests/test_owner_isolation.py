"""
Tenant isolation: every route only sees the token owner's records
"""
import pytest

pytestmark = [pytest.mark.integration, pytest.mark.auth]

RESOURCES = [
    ("patients", {"full_name": "Maria"}),
    ("sessions", {"patient_id": "p1", "date": "2024-06-03", "price": 100}),
    ("medical-records", {"patient_id": "p1", "content": "nota"}),
    ("financial", {"type": "despesa", "category": "aluguel", "amount": 900}),
    ("clinic-settings", {"psychologist_name": "Dra. Ana"}),
]


@pytest.mark.parametrize("resource,body", RESOURCES)
async def test_records_are_invisible_to_other_owners(client, auth_headers, other_headers, resource, body):
    created = await client.post(f"/api/{resource}", json=body, headers=auth_headers)
    assert created.status_code == 201
    record_id = created.json()["id"]

    listed = await client.get(f"/api/{resource}", headers=other_headers)
    fetched = await client.get(f"/api/{resource}/{record_id}", headers=other_headers)
    updated = await client.put(f"/api/{resource}/{record_id}", json={"x": 1}, headers=other_headers)
    deleted = await client.delete(f"/api/{resource}/{record_id}", headers=other_headers)

    assert listed.json() == []
    assert fetched.status_code == 404
    assert updated.status_code == 404
    assert deleted.status_code == 404

    # still there for its owner
    mine = await client.get(f"/api/{resource}/{record_id}", headers=auth_headers)
    assert mine.status_code == 200
    assert "x" not in mine.json()


async def test_session_billing_stays_with_its_owner(client, auth_headers, other_headers):
    await client.post("/api/sessions", json={"patient_id": "p1", "date": "2024-06-03", "price": 100}, headers=auth_headers)

    assert (await client.get("/api/financial", headers=other_headers)).json() == []
    summary = (await client.get("/api/financial/summary", headers=other_headers)).json()
    assert summary["transaction_count"] == 0
