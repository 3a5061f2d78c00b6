import models
from conftest import HOODIE, STICKERS, register


def test_draft_hidden_from_public(client, organizer_client, make_event, make_participant):
    draft = make_event(status="draft", name="Secret Draft")
    published = make_event(status="published", name="Open Night")
    p = make_participant()

    names = [e["name"] for e in client.get("/api/events").json()]

    assert "Open Night" in names
    assert "Secret Draft" not in names
    assert organizer_client.get(f"/api/events/{draft['id']}").status_code == 200
    assert p.get(f"/api/events/{draft['id']}").status_code == 404
    assert client.get(f"/api/events/{published['id']}").status_code == 200


def test_browse_filters(client, make_event):
    make_event(name="Robo Wars", event_type="normal")
    make_event(name="Club Tees", event_type="merchandise", items=[STICKERS])

    merch = client.get("/api/events", params={"event_type": "merchandise"}).json()
    found = client.get("/api/events", params={"search": "robo"}).json()

    assert [e["name"] for e in merch] == ["Club Tees"]
    assert [e["name"] for e in found] == ["Robo Wars"]


def test_create_merchandise_event(client, organizer_client):
    r = organizer_client.post("/api/events", json={
        "name": "Fest Merch",
        "event_type": "merchandise",
        "start_date": "2030-01-01T09:00:00",
        "end_date": "2030-01-03T18:00:00",
        "merchandise_items": [HOODIE],
    })

    assert r.status_code == 201
    event = r.json()
    assert event["status"] == "draft"
    assert event["organizer_id"] == organizer_client.organizer_id
    assert event["items"][0]["max_purchase_per_participant"] == 1
    assert event["items"][0]["sizes"] == ["S", "M", "L"]


def test_items_only_on_merchandise_events(client, organizer_client):
    r = organizer_client.post("/api/events", json={
        "name": "Talk",
        "start_date": "2030-01-01T09:00:00",
        "end_date": "2030-01-01T10:00:00",
        "merchandise_items": [HOODIE],
    })
    assert r.status_code == 422


def test_end_before_start_rejected(client, organizer_client):
    r = organizer_client.post("/api/events", json={
        "name": "Backwards",
        "start_date": "2030-01-02T09:00:00",
        "end_date": "2030-01-01T09:00:00",
    })
    assert r.status_code == 422


def test_only_organizers_create_events(client, make_participant):
    body = {"name": "X", "start_date": "2030-01-01T09:00:00", "end_date": "2030-01-01T10:00:00"}
    assert client.post("/api/events", json=body).status_code == 401
    assert make_participant().post("/api/events", json=body).status_code == 403


def test_status_moves_forward_only(client, organizer_client, make_event):
    event = make_event(status="draft")
    url = f"/api/events/{event['id']}/status"

    skip = organizer_client.patch(url, json={"status": "ongoing"})
    assert skip.status_code == 400
    assert skip.json()["detail"] == "Cannot change status from draft to ongoing"

    for status in ("published", "ongoing", "completed"):
        assert organizer_client.patch(url, json={"status": status}).json()["status"] == status

    back = organizer_client.patch(url, json={"status": "draft"})
    assert back.status_code == 400


def test_status_change_by_other_organizer_forbidden(client, make_organizer, make_event):
    event = make_event(status="draft")
    other = make_organizer("Quiz Club")
    r = other.patch(f"/api/events/{event['id']}/status", json={"status": "published"})
    assert r.status_code == 403


def test_edit_rules_after_publish(client, organizer_client, make_event):
    event = make_event(status="published", registration_limit=50)
    url = f"/api/events/{event['id']}"

    renamed = organizer_client.put(url, json={"name": "New name"})
    lowered = organizer_client.put(url, json={"registration_limit": 10})
    raised = organizer_client.put(url, json={"registration_limit": 80, "description": "Bigger"})

    assert renamed.status_code == 400
    assert lowered.status_code == 400
    assert raised.status_code == 200
    assert raised.json()["registration_limit"] == 80
    assert raised.json()["description"] == "Bigger"


def test_unlimited_event_cannot_gain_a_limit_after_publish(client, organizer_client, make_event, make_participant):
    event = make_event(status="published")
    for _ in range(3):
        register(make_participant(), event["id"])
    url = f"/api/events/{event['id']}"

    capped = organizer_client.put(url, json={"registration_limit": 1})

    assert event["registration_limit"] is None
    assert capped.status_code == 400
    assert organizer_client.get(url).json()["registration_limit"] is None


def test_limit_cannot_drop_below_registrations(client, organizer_client, make_event, make_participant, db):
    event = make_event(status="published", registration_limit=2)
    register(make_participant(), event["id"])
    register(make_participant(), event["id"])
    # Stored limit already below the live count
    db.get(models.Event, event["id"]).registration_limit = 1
    db.commit()
    url = f"/api/events/{event['id']}"

    r = organizer_client.put(url, json={"registration_limit": 1})
    ok = organizer_client.put(url, json={"registration_limit": 2})

    assert r.status_code == 400
    assert ok.status_code == 200
    assert ok.json()["registration_limit"] == 2


def test_draft_fully_editable(client, organizer_client, make_event):
    event = make_event(status="draft")
    r = organizer_client.put(f"/api/events/{event['id']}", json={"name": "Renamed", "venue": "Amphitheatre"})
    assert r.status_code == 200
    assert r.json()["name"] == "Renamed"
    assert r.json()["venue"] == "Amphitheatre"


def test_register_duplicate_conflict(client, make_event, make_participant):
    event = make_event()
    p = make_participant()
    reg = register(p, event["id"])

    r = p.post(f"/api/events/{event['id']}/register")

    assert reg["status"] == "confirmed"
    assert reg["ticket_id"].startswith("TKT-")
    assert r.status_code == 409


def test_register_limit(client, make_event, make_participant):
    event = make_event(registration_limit=1)
    register(make_participant(), event["id"])

    r = make_participant("Late").post(f"/api/events/{event['id']}/register")

    assert r.status_code == 400
    assert r.json()["detail"] == "Registration limit reached"


def test_register_after_deadline(client, make_event, make_participant):
    event = make_event(registration_deadline="2020-01-01T00:00:00")
    r = make_participant().post(f"/api/events/{event['id']}/register")
    assert r.status_code == 400
    assert r.json()["detail"] == "Registration deadline has passed"


def test_register_closed_and_draft(client, make_event, make_participant):
    draft = make_event(status="draft")
    done = make_event(status="completed")
    p = make_participant()
    assert p.post(f"/api/events/{draft['id']}/register").status_code == 404
    assert p.post(f"/api/events/{done['id']}/register").status_code == 400


def test_owner_lists_registrations(client, organizer_client, make_event, make_participant):
    event = make_event()
    register(make_participant(), event["id"])
    register(make_participant("Ravi"), event["id"])

    r = organizer_client.get(f"/api/events/{event['id']}/registrations")

    assert r.status_code == 200
    assert len(r.json()) == 2


def test_completed_event_items_are_read_only(client, organizer_client, merch_event):
    hoodie = merch_event["items"][0]
    advance_url = f"/api/events/{merch_event['id']}/status"
    assert organizer_client.patch(advance_url, json={"status": "completed"}).status_code == 200

    r = organizer_client.patch(
        f"/api/events/{merch_event['id']}/merchandise/{hoodie['id']}",
        json={"quantity": 40, "price": 1.0},
    )

    assert r.status_code == 400
    assert r.json()["detail"] == "Event has already completed"
    item = organizer_client.get(f"/api/events/{merch_event['id']}").json()["items"][0]
    assert item["quantity"] == hoodie["quantity"]
    assert item["price"] == hoodie["price"]


def test_restock_item_is_audited(client, organizer_client, admin_client, merch_event):
    hoodie = merch_event["items"][0]

    r = organizer_client.patch(
        f"/api/events/{merch_event['id']}/merchandise/{hoodie['id']}",
        json={"quantity": 40},
    )

    assert r.status_code == 200
    assert r.json()["quantity"] == 40
    log = admin_client.get("/api/admin/audit-log").json()
    assert log[0]["action"] == "stock_update"
    assert "quantity=40" in log[0]["detail"]


def test_negative_stock_rejected(client, organizer_client, merch_event):
    hoodie = merch_event["items"][0]
    r = organizer_client.patch(
        f"/api/events/{merch_event['id']}/merchandise/{hoodie['id']}",
        json={"quantity": -1},
    )
    assert r.status_code == 422


def test_add_item_to_normal_event_rejected(client, organizer_client, make_event):
    event = make_event()
    r = organizer_client.post(f"/api/events/{event['id']}/merchandise", json=STICKERS)
    assert r.status_code == 400
