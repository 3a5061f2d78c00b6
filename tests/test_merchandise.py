import pytest
from fastapi import HTTPException
from sqlalchemy.exc import IntegrityError

import merchandise
import models
import schemas
from conftest import HOODIE, TestingSessionLocal, register


def _item_id(event, name):
    return next(i["id"] for i in event["items"] if i["name"] == name)


def _stock(client, event_id, name):
    event = client.get(f"/api/events/{event_id}").json()
    return next(i["quantity"] for i in event["items"] if i["name"] == name)


def _buy(participant, registration_id, *lines):
    return participant.post(
        f"/api/registrations/{registration_id}/add-merchandise",
        json={"items": list(lines)},
    )


def test_purchase_decrements_stock_and_records_order(client, make_participant, merch_event):
    p = make_participant()
    reg = register(p, merch_event["id"])
    hoodie = _item_id(merch_event, "Hoodie")

    r = _buy(p, reg["id"], {"item_id": hoodie, "quantity": 1, "selected_size": "M"})

    assert r.status_code == 200, r.text
    body = r.json()
    assert body["message"] == "Merchandise added to order successfully"
    assert body["total_amount"] == 799.0
    purchase = body["registration"]["merchandise_purchase"]
    assert purchase["payment_status"] == "pending"
    assert purchase["items"] == [{
        "item_id": hoodie,
        "item_name": "Hoodie",
        "quantity": 1,
        "selected_size": "M",
        "selected_color": None,
        "unit_price": 799.0,
    }]
    assert _stock(client, merch_event["id"], "Hoodie") == 1


def test_cap_exceeded_leaves_stock_unchanged(client, make_participant, merch_event):
    hoodie = _item_id(merch_event, "Hoodie")
    first, second = make_participant(), make_participant("Ravi")
    r = _buy(first, register(first, merch_event["id"])["id"], {"item_id": hoodie, "quantity": 1})
    assert r.status_code == 200
    assert _stock(client, merch_event["id"], "Hoodie") == 1

    reg = register(second, merch_event["id"])
    r = _buy(second, reg["id"], {"item_id": hoodie, "quantity": 2})

    assert r.status_code == 400
    assert r.json()["detail"] == "Maximum 1 items allowed for Hoodie"
    assert _stock(client, merch_event["id"], "Hoodie") == 1


def test_cap_counts_earlier_purchases(client, make_participant, merch_event):
    stickers = _item_id(merch_event, "Sticker pack")
    p = make_participant()
    reg = register(p, merch_event["id"])

    assert _buy(p, reg["id"], {"item_id": stickers, "quantity": 3}).status_code == 200
    r = _buy(p, reg["id"], {"item_id": stickers, "quantity": 3})

    assert r.status_code == 400
    assert r.json()["detail"] == "Maximum 5 items allowed for Sticker pack"
    assert _stock(client, merch_event["id"], "Sticker pack") == 97


def test_duplicate_lines_in_one_request_count_towards_cap(client, make_participant, merch_event):
    stickers = _item_id(merch_event, "Sticker pack")
    p = make_participant()
    reg = register(p, merch_event["id"])

    r = _buy(
        p, reg["id"],
        {"item_id": stickers, "quantity": 3},
        {"item_id": stickers, "quantity": 3},
    )

    assert r.status_code == 400
    assert _stock(client, merch_event["id"], "Sticker pack") == 100


def test_one_bad_item_aborts_whole_purchase(client, make_participant, merch_event):
    stickers = _item_id(merch_event, "Sticker pack")
    p = make_participant()
    reg = register(p, merch_event["id"])

    r = _buy(
        p, reg["id"],
        {"item_id": stickers, "quantity": 2},
        {"item_id": 9999, "quantity": 1},
    )

    assert r.status_code == 400
    assert r.json()["detail"] == "Invalid merchandise item"
    assert _stock(client, merch_event["id"], "Sticker pack") == 100
    mine = p.get("/api/participants/me/registrations").json()
    assert mine[0]["merchandise_purchase"] is None


def test_insufficient_stock(client, organizer_client, make_participant, merch_event):
    r = organizer_client.post(
        f"/api/events/{merch_event['id']}/merchandise",
        json={"name": "Mug", "price": 200, "quantity": 1, "max_purchase_per_participant": 3},
    )
    assert r.status_code == 201
    mug = r.json()["id"]
    p = make_participant()
    reg = register(p, merch_event["id"])

    r = _buy(p, reg["id"], {"item_id": mug, "quantity": 2})

    assert r.status_code == 400
    assert r.json()["detail"] == "Insufficient stock for Mug"
    assert _stock(client, merch_event["id"], "Mug") == 1


def test_purchases_append_and_total_accumulates(client, make_participant, merch_event):
    hoodie = _item_id(merch_event, "Hoodie")
    stickers = _item_id(merch_event, "Sticker pack")
    p = make_participant()
    reg = register(p, merch_event["id"])

    _buy(p, reg["id"], {"item_id": stickers, "quantity": 2})
    r = _buy(p, reg["id"], {"item_id": hoodie, "quantity": 1, "selected_size": "L", "selected_color": "Black"})

    body = r.json()
    assert body["total_amount"] == 899.0
    names = [i["item_name"] for i in body["registration"]["merchandise_purchase"]["items"]]
    assert names == ["Sticker pack", "Hoodie"]


def test_unknown_size_rejected(client, make_participant, merch_event):
    p = make_participant()
    reg = register(p, merch_event["id"])

    r = _buy(p, reg["id"], {"item_id": _item_id(merch_event, "Hoodie"), "quantity": 1, "selected_size": "XXL"})

    assert r.status_code == 400
    assert r.json()["detail"] == "Size XXL is not available for Hoodie"
    assert _stock(client, merch_event["id"], "Hoodie") == 2


def test_published_event_is_not_ongoing(client, make_event, make_participant):
    event = make_event(status="published", event_type="merchandise", items=[HOODIE])
    p = make_participant()
    reg = register(p, event["id"])

    r = _buy(p, reg["id"], {"item_id": event["items"][0]["id"], "quantity": 1})

    assert r.status_code == 400
    assert r.json()["detail"] == "Event is not currently ongoing"


def test_draft_event_rejected_regardless_of_stock(client, db, make_event, make_participant):
    event = make_event(status="draft", event_type="merchandise", items=[dict(HOODIE, quantity=50)])
    p = make_participant()
    db.add(models.Registration(ticket_id="TKT-DRAFT", participant_id=p.participant_id, event_id=event["id"]))
    db.commit()
    reg_id = db.query(models.Registration).filter_by(ticket_id="TKT-DRAFT").one().id

    r = _buy(p, reg_id, {"item_id": event["items"][0]["id"], "quantity": 1})

    assert r.status_code == 400
    assert r.json()["detail"] == "Event is not currently ongoing"


def test_normal_event_rejected(client, make_event, make_participant):
    event = make_event(status="ongoing")
    p = make_participant()
    reg = register(p, event["id"])

    r = _buy(p, reg["id"], {"item_id": 1, "quantity": 1})

    assert r.status_code == 400
    assert r.json()["detail"] == "This is not a merchandise event"


def test_other_participant_forbidden(client, make_participant, merch_event):
    owner, intruder = make_participant(), make_participant("Meera")
    reg = register(owner, merch_event["id"])

    r = _buy(intruder, reg["id"], {"item_id": _item_id(merch_event, "Hoodie"), "quantity": 1})

    assert r.status_code == 403
    assert r.json()["detail"] == "Access denied"
    assert _stock(client, merch_event["id"], "Hoodie") == 2


def test_unknown_registration(client, make_participant):
    p = make_participant()
    r = _buy(p, 424242, {"item_id": 1, "quantity": 1})
    assert r.status_code == 404
    assert r.json()["detail"] == "Registration not found"


def test_cancelled_registration_cannot_buy(client, make_participant, merch_event):
    p = make_participant()
    reg = register(p, merch_event["id"])
    assert p.post(f"/api/registrations/{reg['id']}/cancel").status_code == 200

    r = _buy(p, reg["id"], {"item_id": _item_id(merch_event, "Hoodie"), "quantity": 1})

    assert r.status_code == 400
    assert r.json()["detail"] == "Registration has been cancelled"


def test_organizer_marks_order_paid(client, organizer_client, make_participant, merch_event):
    p = make_participant()
    reg = register(p, merch_event["id"])
    _buy(p, reg["id"], {"item_id": _item_id(merch_event, "Hoodie"), "quantity": 1})

    r = organizer_client.patch(f"/api/registrations/{reg['id']}/payment", json={"payment_status": "paid"})

    assert r.status_code == 200
    assert r.json()["merchandise_purchase"]["payment_status"] == "paid"

    failed = organizer_client.patch(f"/api/registrations/{reg['id']}/payment", json={"payment_status": "failed"})
    assert failed.status_code == 422


def test_concurrent_stock_change_is_caught_by_conditional_update(client, db, make_participant, merch_event):
    """Stock taken by someone else between validation and reservation."""
    p = make_participant()
    reg = register(p, merch_event["id"])
    hoodie = _item_id(merch_event, "Hoodie")

    registration = db.get(models.Registration, reg["id"])
    lines = [schemas.PurchaseItem(item_id=hoodie, quantity=1)]
    requested = merchandise.validate_purchase(registration, lines)

    other = TestingSessionLocal()
    other.get(models.MerchandiseItem, hoodie).quantity = 0
    other.commit()
    other.close()

    with pytest.raises(HTTPException) as exc:
        merchandise.reserve_stock(db, requested)

    assert exc.value.status_code == 400
    assert exc.value.detail == "Insufficient stock for Hoodie"
    db.expire_all()
    assert db.get(models.MerchandiseItem, hoodie).quantity == 0


def test_database_rejects_negative_stock(client, db, merch_event):
    item = db.get(models.MerchandiseItem, _item_id(merch_event, "Hoodie"))
    item.quantity = -1

    with pytest.raises(IntegrityError):
        db.commit()
    db.rollback()
