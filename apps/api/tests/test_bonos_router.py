from datetime import date, timedelta

import pytest

from models.bono import Bono
from tests.conftest import ADMIN_HEADER, CLIENT_HEADER, CLIENT_ID, OTHER_CLIENT_HEADER, OTHER_CLIENT_ID


def _bono_payload(**overrides):
    payload = {
        "client_id": CLIENT_ID,
        "service": "Mantenimiento web",
        "hours": 10,
        "issue_date": date.today().isoformat(),
        "expiry_date": (date.today() + timedelta(days=90)).isoformat(),
    }
    payload.update(overrides)
    return payload


async def _create_bono(client, **overrides):
    response = await client.post("/bonos", json=_bono_payload(**overrides), headers=ADMIN_HEADER)
    assert response.status_code == 201, response.text
    return response.json()


@pytest.mark.asyncio
async def test_admin_creates_bono_with_client_name_from_account(api_client):
    bono = await _create_bono(api_client)
    assert bono["client_name"] == "Ana Cliente"
    assert bono["hours_used"] == 0
    assert bono["hours_remaining"] == 10
    assert bono["status"] == "active"
    assert bono["stored_status"] == "active"


@pytest.mark.asyncio
async def test_create_bono_reports_field_errors(api_client):
    response = await api_client.post(
        "/bonos",
        json=_bono_payload(hours=0, expiry_date=date.today().isoformat()),
        headers=ADMIN_HEADER,
    )
    assert response.status_code == 422
    errors = response.json()["detail"]["errors"]
    assert set(errors) == {"hours", "expiry_date"}


@pytest.mark.asyncio
async def test_create_bono_for_unknown_client_is_rejected(api_client):
    response = await api_client.post("/bonos", json=_bono_payload(client_id="nobody"), headers=ADMIN_HEADER)
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_clients_cannot_create_or_list_all_bonos(api_client):
    assert (await api_client.post("/bonos", json=_bono_payload(), headers=CLIENT_HEADER)).status_code == 403
    assert (await api_client.get("/bonos", headers=CLIENT_HEADER)).status_code == 403
    assert (await api_client.get("/bonos")).status_code == 401


@pytest.mark.asyncio
async def test_list_derives_expired_status_and_filters(api_client, session_maker):
    await _create_bono(api_client, service="Vigente")
    async with session_maker() as session:
        session.add(
            Bono(
                id="bono-old",
                client_id=CLIENT_ID,
                client_name="Ana Cliente",
                service="Caducado",
                hours=5,
                hours_used=1,
                hours_remaining=4,
                issue_date=date.today() - timedelta(days=400),
                expiry_date=date.today() - timedelta(days=35),
                never_expires=False,
                status="active",
            )
        )
        await session.commit()

    response = await api_client.get("/bonos", headers=ADMIN_HEADER)
    assert response.status_code == 200
    payload = response.json()
    assert [item["service"] for item in payload] == ["Vigente", "Caducado"]
    old = payload[1]
    assert old["status"] == "expired"
    assert old["stored_status"] == "active"

    expired = await api_client.get("/bonos?status=expired", headers=ADMIN_HEADER)
    assert [item["id"] for item in expired.json()] == ["bono-old"]
    active = await api_client.get("/bonos?status=active", headers=ADMIN_HEADER)
    assert [item["service"] for item in active.json()] == ["Vigente"]


@pytest.mark.asyncio
async def test_client_sees_only_own_bonos(api_client):
    own = await _create_bono(api_client)
    other = await _create_bono(api_client, client_id=OTHER_CLIENT_ID)

    mine = await api_client.get("/bonos/mine", headers=CLIENT_HEADER)
    assert [item["id"] for item in mine.json()] == [own["id"]]

    assert (await api_client.get(f"/bonos/{own['id']}", headers=CLIENT_HEADER)).status_code == 200
    assert (await api_client.get(f"/bonos/{other['id']}", headers=CLIENT_HEADER)).status_code == 403
    assert (await api_client.get(f"/bonos/{other['id']}/interventions", headers=CLIENT_HEADER)).status_code == 403
    assert (await api_client.get(f"/bonos/{other['id']}", headers=OTHER_CLIENT_HEADER)).status_code == 200


@pytest.mark.asyncio
async def test_client_summary_totals_balances(api_client):
    first = await _create_bono(api_client, hours=10)
    await _create_bono(api_client, hours=4, never_expires=True, expiry_date=None)
    record = await api_client.post(
        "/interventions",
        json={"bono_id": first["id"], "hours_used": 3},
        headers=ADMIN_HEADER,
    )
    assert record.status_code == 201

    summary = await api_client.get("/bonos/mine/summary", headers=CLIENT_HEADER)
    assert summary.status_code == 200
    assert summary.json() == {
        "client_id": CLIENT_ID,
        "total_hours": 14,
        "used_hours": 3,
        "remaining_hours": 11,
        "active_bonos": 2,
        "bono_count": 2,
    }


@pytest.mark.asyncio
async def test_edit_bono_keeps_hours_used(api_client):
    bono = await _create_bono(api_client)
    await api_client.post("/interventions", json={"bono_id": bono["id"], "hours_used": 3}, headers=ADMIN_HEADER)

    response = await api_client.put(f"/bonos/{bono['id']}", json={"hours": 8}, headers=ADMIN_HEADER)
    assert response.status_code == 200
    edited = response.json()
    assert edited["hours"] == 8
    assert edited["hours_used"] == 3
    assert edited["hours_remaining"] == 5


@pytest.mark.asyncio
async def test_edit_bono_rejects_invalid_hours(api_client):
    bono = await _create_bono(api_client)
    response = await api_client.put(f"/bonos/{bono['id']}", json={"hours": -2}, headers=ADMIN_HEADER)
    assert response.status_code == 422
    assert "hours" in response.json()["detail"]["errors"]


@pytest.mark.asyncio
async def test_record_and_delete_intervention_round_trip(api_client):
    bono = await _create_bono(api_client)

    created = await api_client.post(
        "/interventions",
        json={"bono_id": bono["id"], "hours_used": 10, "notes": "Migración", "images": ["http://test/blobs/a.png"]},
        headers=ADMIN_HEADER,
    )
    assert created.status_code == 201
    payload = created.json()
    assert payload["bono"]["status"] == "depleted"
    assert payload["bono"]["hours_remaining"] == 0
    assert payload["intervention"]["images"] == ["http://test/blobs/a.png"]
    intervention_id = payload["intervention"]["id"]

    history = await api_client.get("/interventions/mine", headers=CLIENT_HEADER)
    assert [item["id"] for item in history.json()] == [intervention_id]
    by_client = await api_client.get(f"/interventions?client_id={CLIENT_ID}", headers=ADMIN_HEADER)
    assert [item["id"] for item in by_client.json()] == [intervention_id]
    by_bono = await api_client.get(f"/bonos/{bono['id']}/interventions", headers=CLIENT_HEADER)
    assert [item["id"] for item in by_bono.json()] == [intervention_id]

    deleted = await api_client.delete(f"/interventions/{intervention_id}", headers=ADMIN_HEADER)
    assert deleted.status_code == 200
    assert deleted.json()["bono"]["status"] == "active"
    assert deleted.json()["bono"]["hours_remaining"] == 10
    assert (await api_client.get("/interventions/mine", headers=CLIENT_HEADER)).json() == []


@pytest.mark.asyncio
async def test_patch_intervention_edits_notes(api_client):
    bono = await _create_bono(api_client)
    created = await api_client.post(
        "/interventions",
        json={"bono_id": bono["id"], "hours_used": 1.5},
        headers=ADMIN_HEADER,
    )
    intervention_id = created.json()["intervention"]["id"]

    response = await api_client.patch(
        f"/interventions/{intervention_id}",
        json={"notes": "Actualizado"},
        headers=ADMIN_HEADER,
    )
    assert response.status_code == 200
    assert response.json()["intervention"]["notes"] == "Actualizado"
    assert response.json()["bono"] is None


@pytest.mark.asyncio
async def test_clients_cannot_record_usage(api_client):
    bono = await _create_bono(api_client)
    response = await api_client.post(
        "/interventions",
        json={"bono_id": bono["id"], "hours_used": 1},
        headers=CLIENT_HEADER,
    )
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_delete_bono_removes_its_interventions(api_client):
    bono = await _create_bono(api_client)
    await api_client.post("/interventions", json={"bono_id": bono["id"], "hours_used": 2}, headers=ADMIN_HEADER)

    response = await api_client.delete(f"/bonos/{bono['id']}", headers=ADMIN_HEADER)
    assert response.status_code == 200
    assert (await api_client.get(f"/bonos/{bono['id']}", headers=ADMIN_HEADER)).status_code == 404
    assert (await api_client.get("/interventions/mine", headers=CLIENT_HEADER)).json() == []


@pytest.mark.asyncio
async def test_edit_bono_requires_issue_date(api_client):
    bono = await _create_bono(api_client)
    response = await api_client.put(f"/bonos/{bono['id']}", json={"issue_date": None}, headers=ADMIN_HEADER)
    assert response.status_code == 422
    assert "issue_date" in response.json()["detail"]["errors"]

    kept = await api_client.put(f"/bonos/{bono['id']}", json={"status": None, "notes": "Revisado"}, headers=ADMIN_HEADER)
    assert kept.status_code == 200
    assert kept.json()["stored_status"] == "active"
    assert kept.json()["issue_date"].startswith(bono["issue_date"][:10])


@pytest.mark.asyncio
async def test_reassigning_bono_moves_its_interventions(api_client):
    bono = await _create_bono(api_client)
    created = await api_client.post("/interventions", json={"bono_id": bono["id"], "hours_used": 2}, headers=ADMIN_HEADER)
    intervention_id = created.json()["intervention"]["id"]

    response = await api_client.put(f"/bonos/{bono['id']}", json={"client_id": OTHER_CLIENT_ID}, headers=ADMIN_HEADER)
    assert response.status_code == 200
    assert response.json()["client_name"] == "Otro Cliente"

    assert (await api_client.get("/interventions/mine", headers=CLIENT_HEADER)).json() == []
    moved = (await api_client.get("/interventions/mine", headers=OTHER_CLIENT_HEADER)).json()
    assert [item["id"] for item in moved] == [intervention_id]
    assert moved[0]["client_id"] == OTHER_CLIENT_ID
    assert moved[0]["client_name"] == "Otro Cliente"
