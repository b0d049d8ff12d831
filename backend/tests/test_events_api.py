from datetime import date, datetime

import pytest
from fastapi.testclient import TestClient
from sqlmodel import Session

from dojo_tournaments.models.event import Event
from dojo_tournaments.services.bracket_lock import registry as bracket_locks


@pytest.fixture
def created_event(client: TestClient):
    response = client.post(
        "/api/events",
        json={"name": "Spring Open", "location": "Main Dojo", "start_date": "2026-06-13", "end_date": "2026-06-14"},
    )
    assert response.status_code == 201
    return response.json()


def test_create_event(created_event):
    assert created_event["name"] == "Spring Open"
    assert created_event["split_by_belt"] is False


def test_event_rejects_blank_name(client: TestClient):
    response = client.post("/api/events", json={"name": "  ", "start_date": "2026-06-13", "end_date": "2026-06-13"})
    assert response.status_code == 422


def test_event_rejects_inverted_dates(client: TestClient):
    response = client.post(
        "/api/events", json={"name": "Backwards", "start_date": "2026-06-14", "end_date": "2026-06-13"}
    )
    assert response.status_code == 422


def test_get_list_update(created_event, client: TestClient):
    event_id = created_event["id"]
    assert client.get(f"/api/events/{event_id}").json()["location"] == "Main Dojo"
    assert [e["id"] for e in client.get("/api/events").json()] == [event_id]

    response = client.put(f"/api/events/{event_id}", json={"split_by_belt": True, "notes": "Belt divisions"})
    assert response.status_code == 200
    assert response.json()["split_by_belt"] is True

    response = client.put(f"/api/events/{event_id}", json={"end_date": "2026-06-01"})
    assert response.status_code == 422


def test_missing_event(client: TestClient):
    assert client.get("/api/events/999").status_code == 404
    assert client.delete("/api/events/999").status_code == 404


def test_delete_event_removes_brackets(created_event, client: TestClient):
    event_id = created_event["id"]
    roster = [
        {"user_id": f"M-{i}", "name": f"Member {i}", "date_of_birth": "2000-01-01", "weight_kg": 65}
        for i in range(4)
    ]
    assert client.post(f"/api/events/{event_id}/participants/bulk", json=roster).status_code == 201
    bracket_id = client.post(f"/api/events/{event_id}/brackets/generate").json()["brackets"][0]["id"]
    bracket_locks.lock_for(bracket_id)

    assert client.delete(f"/api/events/{event_id}").status_code == 204
    assert client.get(f"/api/events/{event_id}").status_code == 404
    assert client.get(f"/api/brackets/{bracket_id}").status_code == 404
    assert bracket_id not in bracket_locks._locks


def test_health(client: TestClient):
    assert client.get("/api/health").json() == {"status": "ok"}


def test_event_timestamps_round_trip(session: Session):
    event = Event(name="Stored", start_date=date(2026, 6, 13), end_date=date(2026, 6, 13))
    session.add(event)
    session.commit()
    event_id = event.id
    session.expire_all()

    stored = session.get(Event, event_id)
    assert isinstance(stored.created_at, datetime)
    assert stored.updated_at >= stored.created_at
