"""
Merchandise purchases against an existing registration.

Validation runs first so that every failure is reported with its own
message and nothing is touched. Stock is then taken with one conditional
UPDATE per item (``quantity >= requested``) inside the same transaction
that records the order lines, so two buyers racing for the last unit
cannot both succeed and a failure leaves no partial mutation behind.
"""
import logging
from collections import OrderedDict

from fastapi import HTTPException
from sqlalchemy import update
from sqlalchemy.orm import Session

import models

logger = logging.getLogger(__name__)


def _check_variant(item, line) -> None:
    if line.selected_size is not None and item.sizes and line.selected_size not in item.sizes:
        raise HTTPException(
            status_code=400,
            detail=f"Size {line.selected_size} is not available for {item.name}",
        )
    if line.selected_color is not None and item.colors and line.selected_color not in item.colors:
        raise HTTPException(
            status_code=400,
            detail=f"Color {line.selected_color} is not available for {item.name}",
        )


def validate_purchase(registration, lines) -> "OrderedDict[int, int]":
    """Check a purchase request against the registration's event.

    Returns the requested quantity per item id (in request order). Raises
    HTTPException(400) on the first failing line.
    """
    event = registration.event
    if event.event_type != "merchandise":
        raise HTTPException(status_code=400, detail="This is not a merchandise event")
    if event.status != "ongoing":
        raise HTTPException(status_code=400, detail="Event is not currently ongoing")
    if registration.status == "cancelled":
        raise HTTPException(status_code=400, detail="Registration has been cancelled")

    items = {item.id: item for item in event.items}

    already = {}
    for bought in registration.purchase_items:
        already[bought.item_id] = already.get(bought.item_id, 0) + bought.quantity

    requested = OrderedDict()
    for line in lines:
        item = items.get(line.item_id)
        if item is None:
            raise HTTPException(status_code=400, detail="Invalid merchandise item")
        _check_variant(item, line)

        requested[item.id] = requested.get(item.id, 0) + line.quantity
        # The per-participant cap counts everything this registration already bought
        if already.get(item.id, 0) + requested[item.id] > item.max_purchase_per_participant:
            raise HTTPException(
                status_code=400,
                detail=f"Maximum {item.max_purchase_per_participant} items allowed for {item.name}",
            )
        if item.quantity < requested[item.id]:
            raise HTTPException(status_code=400, detail=f"Insufficient stock for {item.name}")

    return requested


def reserve_stock(db: Session, requested) -> None:
    """Atomically take stock for every item, or raise without committing.

    The caller owns the transaction; on failure it is rolled back here.
    """
    for item_id, qty in requested.items():
        result = db.execute(
            update(models.MerchandiseItem)
            .where(
                models.MerchandiseItem.id == item_id,
                models.MerchandiseItem.quantity >= qty,
            )
            .values(quantity=models.MerchandiseItem.quantity - qty)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            item = db.get(models.MerchandiseItem, item_id)
            name = item.name if item else "item"
            db.rollback()
            raise HTTPException(status_code=400, detail=f"Insufficient stock for {name}")


def add_merchandise(db: Session, registration_id: int, participant_id: int, lines):
    """Append a merchandise order to a registration and decrement event stock.

    Returns ``(registration, new_order_lines, amount_added)``.
    """
    registration = db.get(models.Registration, registration_id)
    if not registration:
        raise HTTPException(status_code=404, detail="Registration not found")
    if registration.participant_id != participant_id:
        raise HTTPException(status_code=403, detail="Access denied")

    requested = validate_purchase(registration, lines)
    items = {item.id: item for item in registration.event.items}

    reserve_stock(db, requested)

    new_lines = []
    amount = 0.0
    for line in lines:
        item = items[line.item_id]
        order_line = models.MerchandiseOrderItem(
            item_id        = item.id,
            item_name      = item.name,
            quantity       = line.quantity,
            selected_size  = line.selected_size,
            selected_color = line.selected_color,
            unit_price     = item.price,
        )
        registration.purchase_items.append(order_line)
        new_lines.append(order_line)
        amount += item.price * line.quantity

    if registration.merch_total_amount is None:
        registration.merch_total_amount = amount
        registration.merch_payment_status = "pending"
    else:
        registration.merch_total_amount += amount

    # Commit expires the session's items, so their stock reloads from SQL
    db.commit()
    db.refresh(registration)

    logger.info(
        "Merchandise purchase on %s: %d line(s), amount %.2f",
        registration.ticket_id, len(new_lines), amount,
    )
    return registration, new_lines, amount
