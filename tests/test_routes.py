from __future__ import annotations

import pytest


DISASTER = {
    "title": "NYC Flood",
    "description": "Heavy flooding in Manhattan, NYC",
    "location_name": "Manhattan, NYC",
    "latitude": 40.7831,
    "longitude": -73.9712,
    "tags": ["flood", "urgent"],
}


@pytest.fixture
def disaster_id(client) -> str:
    response = client.post("/disasters", json=DISASTER)
    assert response.status_code == 201
    return response.json()["disaster"]["id"]


def test_root_and_health(client) -> None:
    assert client.get("/").json()["status"] == "running"
    health = client.get("/health").json()
    assert health["status"] == "healthy"
    assert health["store"] == "memory"
    assert client.get("/health/db").json()["connected"] is True


def test_create_and_get_disaster(client, disaster_id) -> None:
    body = client.get(f"/disasters/{disaster_id}").json()
    assert body["title"] == "NYC Flood"
    assert body["owner_id"] == "netrunnerX"
    assert body["location"] == {"latitude": 40.7831, "longitude": -73.9712}
    assert len(body["audit_trail"]) == 1


def test_create_validation_error(client) -> None:
    response = client.post("/disasters", json={"title": "", "description": "x"})
    assert response.status_code == 422


def test_list_disasters_by_tag(client, disaster_id) -> None:
    client.post("/disasters", json={**DISASTER, "title": "LA Fire", "tags": ["fire"]})
    flood = client.get("/disasters", params={"tag": "flood"}).json()
    assert [d["id"] for d in flood] == [disaster_id]
    assert len(client.get("/disasters").json()) == 2


def test_update_and_audit_trail(client, disaster_id) -> None:
    response = client.put(f"/disasters/{disaster_id}", json={"title": "NYC Flood - Updated"})
    assert response.status_code == 200
    assert response.json()["disaster"]["title"] == "NYC Flood - Updated"

    trail = client.get(f"/disasters/{disaster_id}/audit-trail").json()
    assert trail["total"] == 2
    assert [e["action"] for e in trail["entries"]] == ["create", "update"]
    assert trail["entries"][1]["changes"]["title"]["to"] == "NYC Flood - Updated"


def test_update_by_non_owner_is_forbidden(client, disaster_id) -> None:
    response = client.put(
        f"/disasters/{disaster_id}",
        json={"title": "Hijacked"},
        headers={"X-User-ID": "stranger", "X-User-Role": "contributor"},
    )
    assert response.status_code == 403
    assert client.get(f"/disasters/{disaster_id}").json()["title"] == "NYC Flood"


def test_delete_keeps_audit_trail(client, disaster_id) -> None:
    response = client.delete(f"/disasters/{disaster_id}")
    assert response.status_code == 200
    assert response.json()["audit_entries"] == 2

    assert client.get(f"/disasters/{disaster_id}").status_code == 404
    trail = client.get(f"/disasters/{disaster_id}/audit-trail").json()
    assert [e["action"] for e in trail["entries"]] == ["create", "delete"]


def test_unknown_disaster_is_404(client) -> None:
    assert client.get("/disasters/missing").status_code == 404
    assert client.put("/disasters/missing", json={"title": "x"}).status_code == 404
    assert client.get("/disasters/missing/social-media").status_code == 404


def test_nearby_resources_seed_and_rank(client, disaster_id) -> None:
    body = client.get(f"/disasters/{disaster_id}/resources").json()
    assert body["seeded"] is True
    assert body["count"] == 4
    assert body["radius_meters"] == 10000
    distances = [r["distance_meters"] for r in body["resources"]]
    assert distances == sorted(distances)


def test_nearby_resources_explicit_center_and_radius(client, disaster_id) -> None:
    created = client.post(f"/disasters/{disaster_id}/resources", json={
        "name": "Red Cross Shelter",
        "location_name": "Lower East Side, NYC",
        "latitude": 40.7150,
        "longitude": -73.9850,
        "type": "shelter",
        "capacity": 150,
    })
    assert created.status_code == 201

    body = client.get(
        f"/disasters/{disaster_id}/resources", params={"lat": 40.7150, "lon": -73.9843, "radius": 500}
    ).json()
    assert body["seeded"] is False
    assert [r["resource"]["name"] for r in body["resources"]] == ["Red Cross Shelter"]


def test_nearby_resources_bad_query(client, disaster_id) -> None:
    assert client.get(f"/disasters/{disaster_id}/resources", params={"lat": 40.7}).status_code == 400
    assert client.get(f"/disasters/{disaster_id}/resources", params={"radius": -5}).status_code == 422


def test_resource_status_update(client, disaster_id) -> None:
    resource = client.post(f"/disasters/{disaster_id}/resources", json={
        "name": "Water Point", "latitude": 40.78, "longitude": -73.97, "type": "water",
    }).json()

    response = client.patch(f"/resources/{resource['id']}/status", json={"status": "inactive"})
    assert response.status_code == 200
    assert response.json()["status"] == "inactive"
    assert client.patch("/resources/missing/status", json={"status": "active"}).status_code == 404


def test_feeds(client, disaster_id) -> None:
    social = client.get(f"/disasters/{disaster_id}/social-media").json()
    assert len(social["reports"]) == 3
    priority = client.get(f"/disasters/{disaster_id}/social-media/priority").json()
    assert [r["id"] for r in priority["priority_reports"]] == ["mock_1"]

    updates = client.get(f"/disasters/{disaster_id}/official-updates").json()
    assert len(updates["updates"]) == 3
    urgent = client.get(f"/disasters/{disaster_id}/official-updates/urgent").json()
    assert len(urgent["urgent_updates"]) == 1


def test_verify_image(client, disaster_id) -> None:
    response = client.post(
        f"/disasters/{disaster_id}/verify-image", json={"image_url": "https://example.com/flood.jpg"}
    )
    assert response.status_code == 200
    assert response.json()["verification"]["is_authentic"] is False

    listed = client.get(f"/disasters/{disaster_id}/verifications").json()
    assert len(listed["verifications"]) == 1


def test_geocode(client) -> None:
    body = client.post("/geocode", json={"location_name": "Brooklyn, NYC"}).json()
    assert body["coordinates"]["latitude"] == pytest.approx(40.6782)
    assert client.post("/geocode", json={}).status_code == 400


def test_cache_sweep_requires_admin(client) -> None:
    assert client.post("/admin/cache/sweep").json() == {"removed": 0}
    denied = client.post("/admin/cache/sweep", headers={"X-User-ID": "someone", "X-User-Role": "contributor"})
    assert denied.status_code == 403


def test_websocket_receives_incident_events(client) -> None:
    with client.websocket_connect("/ws?topic=global") as ws:
        assert ws.receive_json() == {"event": "subscribed", "topic": "global"}
        ws.send_text("ping")
        assert ws.receive_json() == {"event": "pong"}

        created = client.post("/disasters", json=DISASTER).json()["disaster"]
        message = ws.receive_json()
        assert message["event"] == "incident_created"
        assert message["data"]["disaster_id"] == created["id"]


def test_websocket_subscribe_to_incident_topic(client, disaster_id) -> None:
    with client.websocket_connect("/ws?topic=unused") as ws:
        ws.receive_json()
        ws.send_json({"action": "subscribe", "topic": f"incident_{disaster_id}"})
        assert ws.receive_json() == {"event": "subscribed", "topic": f"incident_{disaster_id}"}

        client.put(f"/disasters/{disaster_id}", json={"description": "Water rising"})
        message = ws.receive_json()
        assert message["event"] == "incident_updated"
        assert message["topic"] == f"incident_{disaster_id}"

        ws.send_json({"action": "unsubscribe", "topic": f"incident_{disaster_id}"})
        assert ws.receive_json() == {"event": "unsubscribed", "topic": f"incident_{disaster_id}"}

        ws.send_text("not json")
        assert ws.receive_json()["event"] == "error"


def test_all_official_updates(client, disaster_id) -> None:
    client.get(f"/disasters/{disaster_id}/official-updates")
    body = client.get("/updates/all").json()
    assert body["count"] == 3
    assert body["filter"] == {"urgency": "all"}

    high = client.get("/updates/all", params={"urgency": "high"}).json()
    assert high["filter"] == {"urgency": "high"}
    assert [u["urgency"] for u in high["updates"]] == ["high"]
    assert client.get("/updates/all", params={"urgency": "panic"}).status_code == 422


def test_suspicious_verifications(client, disaster_id) -> None:
    client.post(f"/disasters/{disaster_id}/verify-image", json={"image_url": "https://example.com/flood.jpg"})

    flagged = client.get("/verifications/suspicious", params={"threshold": 60}).json()
    assert flagged["threshold"] == 60
    assert flagged["count"] == 1
    assert flagged["suspicious_images"][0]["image_url"] == "https://example.com/flood.jpg"

    assert client.get("/verifications/suspicious").json()["count"] == 0
    assert client.get("/verifications/suspicious", params={"threshold": 101}).status_code == 422


def test_geocode_location_by_name(client) -> None:
    body = client.get("/geocode/location/Brooklyn, NYC").json()
    assert body["location_name"] == "Brooklyn, NYC"
    assert body["coordinates"]["latitude"] == pytest.approx(40.6782)

    missing = client.get("/geocode/location/Atlantis")
    assert missing.status_code == 404
    assert missing.json()["detail"] == "Location not found: Atlantis"


def test_websocket_rejects_non_string_topic(client, disaster_id) -> None:
    with client.websocket_connect("/ws?topic=global") as ws:
        ws.receive_json()
        ws.send_json({"action": "subscribe", "topic": ["a"]})
        assert ws.receive_json()["event"] == "error"
        ws.send_json({"action": "subscribe", "topic": {"name": "a"}})
        assert ws.receive_json()["event"] == "error"

        # connection and its existing subscription survive
        ws.send_text("ping")
        assert ws.receive_json() == {"event": "pong"}
        client.put(f"/disasters/{disaster_id}", json={"description": "Water rising"})
        assert ws.receive_json()["event"] == "incident_updated"
