# tests/helpers.py
from datetime import datetime, timedelta, timezone

from app.api.dependencies import create_access_token
from app.models.order import Actor, OrderStatus
from app.services.order.order_lifecycle_service import OrderStateMachine

BUYER_PHONE = "+995555123456"
BUYER_ID = "buyer-1"

# A Monday
MONDAY = datetime(2024, 1, 1, tzinfo=timezone.utc)


def at(hour, minute=0, day=MONDAY):
    return day.replace(hour=hour, minute=minute)


class Clock:
    """Mutable reference instant shared with the API's get_now dependency"""

    def __init__(self, now):
        self.now = now

    def advance(self, **kwargs):
        self.now = self.now + timedelta(**kwargs)


def auth_headers(sub=BUYER_ID, phone=BUYER_PHONE, supplier_id=None):
    claims = {"sub": sub, "phone": phone}
    if supplier_id is not None:
        claims["supplier_id"] = str(supplier_id)
    return {"Authorization": f"Bearer {create_access_token(claims)}"}


def deliver(db, order, now):
    """Walk an order from its current state to delivered"""
    if order.status in (OrderStatus.CREATED.value, OrderStatus.WINDOW_CONFIRMED.value):
        OrderStateMachine.mark_dispatched(db, order, order.supplier_id, now=now)
    return OrderStateMachine.mark_delivered(db, order, Actor.SUPPLIER, now=now, supplier_id=order.supplier_id)
